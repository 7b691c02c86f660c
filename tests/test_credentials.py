"""
Tests for the per-session credential store.
"""

import asyncio

import pytest

from finbridge.core.credentials import (
    DEFAULT_SESSION_ID,
    AccessCredential,
    CredentialStore,
    get_credential_store,
    get_session_id,
)
from finbridge.core.errors import MissingCredentialError


class TestAccessCredential:
    def test_require_returns_value(self):
        credential = AccessCredential(access_token="access-1")
        assert credential.require("access_token") == "access-1"

    def test_require_missing_raises(self):
        with pytest.raises(MissingCredentialError, match="user_token"):
            AccessCredential().require("user_token")


class TestCredentialStore:
    """Tests for CredentialStore."""

    @pytest.mark.asyncio
    async def test_update_merges_fields(self):
        store = CredentialStore()

        await store.update("s1", access_token="access-1", item_id="item-1")
        await store.update("s1", user_token="user-1")

        credential = store.get("s1")
        assert credential.access_token == "access-1"
        assert credential.item_id == "item-1"
        assert credential.user_token == "user-1"

    @pytest.mark.asyncio
    async def test_sessions_are_isolated(self):
        store = CredentialStore()

        await store.update("alice", access_token="access-a")
        await store.update("bob", access_token="access-b")

        assert store.get("alice").access_token == "access-a"
        assert store.get("bob").access_token == "access-b"
        assert store.get("carol").access_token is None

    @pytest.mark.asyncio
    async def test_get_returns_snapshot(self):
        store = CredentialStore()
        await store.update("s1", access_token="access-1")

        snapshot = store.get("s1")
        snapshot.access_token = "tampered"

        assert store.get("s1").access_token == "access-1"

    @pytest.mark.asyncio
    async def test_concurrent_writers_keep_all_fields(self):
        store = CredentialStore()

        await asyncio.gather(
            store.update("s1", access_token="access-1"),
            store.update("s1", user_token="user-1"),
            store.update("s1", payment_id="pay-1"),
        )

        credential = store.get("s1")
        assert credential.access_token == "access-1"
        assert credential.user_token == "user-1"
        assert credential.payment_id == "pay-1"

    @pytest.mark.asyncio
    async def test_clear(self):
        store = CredentialStore()
        await store.update("s1", access_token="access-1")

        await store.clear("s1")

        assert store.get("s1").access_token is None

    @pytest.mark.asyncio
    async def test_clear_releases_session_lock(self):
        store = CredentialStore()
        for i in range(5):
            await store.update(f"s{i}", access_token="access")

        for i in range(5):
            await store.clear(f"s{i}")

        assert store._locks == {}


def test_store_singleton():
    assert get_credential_store() is get_credential_store()


def test_session_id_default():
    assert get_session_id(None) == DEFAULT_SESSION_ID
    assert get_session_id("abc") == "abc"
