"""Plaid payload models used by the sync loop and aggregators.

Only the fields the service reasons about are declared; everything else
Plaid sends is kept as extra data and returned to the caller untouched.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Transaction(BaseModel):
    """A Plaid transaction. Negative amounts are inflows."""

    model_config = ConfigDict(extra="allow")

    transaction_id: str
    account_id: Optional[str] = None
    date: str
    amount: float
    name: Optional[str] = None
    category: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump()


class RemovedTransaction(BaseModel):
    """Identifier of a transaction removed since the previous cursor."""

    model_config = ConfigDict(extra="allow")

    transaction_id: str
    account_id: Optional[str] = None


class TransactionsSyncPage(BaseModel):
    """One page of /transactions/sync.

    An empty ``next_cursor`` means Plaid has not finished preparing the
    feed yet and the same request should be repeated later.
    """

    model_config = ConfigDict(extra="ignore")

    added: List[Transaction] = Field(default_factory=list)
    modified: List[Transaction] = Field(default_factory=list)
    removed: List[RemovedTransaction] = Field(default_factory=list)
    next_cursor: str = ""
    has_more: bool = False

    @property
    def is_ready(self) -> bool:
        return self.next_cursor != ""
