"""FastAPI dependencies shared by the API routes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends

from finbridge.core.config import Settings, get_settings
from finbridge.core.credentials import (
    AccessCredential,
    CredentialStore,
    get_credential_store,
    get_session_id,
)
from finbridge.plaid.client import PlaidClient

_client_instance: Optional[PlaidClient] = None


def get_plaid_client() -> PlaidClient:
    """Get or create the shared Plaid client."""
    global _client_instance
    if _client_instance is None:
        _client_instance = PlaidClient.from_settings(get_settings())
    return _client_instance


async def close_plaid_client() -> None:
    global _client_instance
    if _client_instance is not None:
        await _client_instance.aclose()
        _client_instance = None


@dataclass
class RequestContext:
    """Everything a route needs: the client, settings and the caller's session."""

    client: PlaidClient
    store: CredentialStore
    session_id: str
    settings: Settings

    @property
    def credential(self) -> AccessCredential:
        return self.store.get(self.session_id)

    def require(self, field_name: str) -> str:
        return self.credential.require(field_name)

    async def save(self, **fields: Optional[str]) -> AccessCredential:
        return await self.store.update(self.session_id, **fields)


def get_context(
    client: PlaidClient = Depends(get_plaid_client),
    store: CredentialStore = Depends(get_credential_store),
    session_id: str = Depends(get_session_id),
    settings: Settings = Depends(get_settings),
) -> RequestContext:
    return RequestContext(
        client=client, store=store, session_id=session_id, settings=settings
    )
