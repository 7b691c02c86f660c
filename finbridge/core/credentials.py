"""
Per-session Plaid credential store.

Tokens are kept in process memory, keyed by an external session id, so
concurrent requests for different sessions never see each other's
credentials. Writers for the same session are serialized by a per-key
lock; the last write wins.
"""

from __future__ import annotations

import asyncio
from typing import Dict, Optional

import structlog
from fastapi import Header
from pydantic import BaseModel

from finbridge.core.errors import MissingCredentialError

logger = structlog.get_logger()

DEFAULT_SESSION_ID = "default"


class AccessCredential(BaseModel):
    """Tokens and identifiers established by the exchange and report calls."""

    access_token: Optional[str] = None
    item_id: Optional[str] = None
    public_token: Optional[str] = None
    account_id: Optional[str] = None
    user_token: Optional[str] = None
    authorization_id: Optional[str] = None
    transfer_id: Optional[str] = None
    payment_id: Optional[str] = None

    def require(self, field_name: str) -> str:
        value = getattr(self, field_name)
        if not value:
            raise MissingCredentialError(
                f"{field_name} is not set for this session; "
                "complete the corresponding Link or create step first"
            )
        return value


class CredentialStore:
    """In-memory credential store keyed by session id."""

    def __init__(self) -> None:
        self._credentials: Dict[str, AccessCredential] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    def get(self, session_id: str) -> AccessCredential:
        """Return a snapshot of the session's credentials."""
        credential = self._credentials.get(session_id)
        return credential.model_copy() if credential else AccessCredential()

    async def update(self, session_id: str, **fields: Optional[str]) -> AccessCredential:
        """Merge the given fields into the session's credentials."""
        async with self._lock_for(session_id):
            current = self._credentials.get(session_id) or AccessCredential()
            updated = current.model_copy(update=fields)
            self._credentials[session_id] = updated

        logger.info(
            "credentials.updated",
            session_id=session_id,
            fields=sorted(fields),
        )
        return updated.model_copy()

    async def clear(self, session_id: str) -> None:
        """Forget the session's credentials and its lock."""
        async with self._lock_for(session_id):
            self._credentials.pop(session_id, None)
            self._locks.pop(session_id, None)


_store_instance: Optional[CredentialStore] = None


def get_credential_store() -> CredentialStore:
    """Get or create the process-wide credential store."""
    global _store_instance
    if _store_instance is None:
        _store_instance = CredentialStore()
    return _store_instance


def get_session_id(
    x_session_id: Optional[str] = Header(default=None),
) -> str:
    """FastAPI dependency: session key from the X-Session-ID header."""
    return x_session_id or DEFAULT_SESSION_ID
