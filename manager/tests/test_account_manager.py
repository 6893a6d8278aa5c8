"""Tests for the account registry."""

import json
from dataclasses import dataclass

import pytest

from vpnhost_manager.account_manager import ACCOUNTS_STORAGE_KEY, AccountManager
from vpnhost_shared.models import AccountId, CloudProviderId
from vpnhost_shared.storage import JsonFileStore, MemoryStore


@dataclass
class FakeAccount:
    cloud_specific_id: str
    credentials: str

    def get_id(self) -> AccountId:
        return AccountId(cloud_provider_id=CloudProviderId.DIGITALOCEAN, cloud_specific_id=self.cloud_specific_id)

    def get_credentials(self) -> str:
        return self.credentials


class TestAccountManager:
    """Test registration and persistence."""

    @pytest.mark.asyncio
    async def test_add_and_get(self):
        manager = AccountManager(MemoryStore())
        account = FakeAccount("uuid-1", "token-1")

        await manager.add(account)

        assert manager.get(account.get_id()) is account
        assert manager.list_accounts() == [account]

    @pytest.mark.asyncio
    async def test_credentials_survive_restart(self, tmp_path):
        path = tmp_path / "state.json"
        await AccountManager(JsonFileStore(path)).add(FakeAccount("uuid-1", "token-1"))

        saved = await AccountManager(JsonFileStore(path)).saved_credentials()

        assert saved == [(FakeAccount("uuid-1", "").get_id(), "token-1")]

    @pytest.mark.asyncio
    async def test_re_adding_replaces_credentials(self):
        store = MemoryStore()
        manager = AccountManager(store)

        await manager.add(FakeAccount("uuid-1", "old-token"))
        await manager.add(FakeAccount("uuid-1", "new-token"))

        saved = json.loads(await store.get_item(ACCOUNTS_STORAGE_KEY))
        assert [entry["credentials"] for entry in saved] == ["new-token"]

    @pytest.mark.asyncio
    async def test_remove(self):
        manager = AccountManager(MemoryStore())
        first = FakeAccount("uuid-1", "token-1")
        second = FakeAccount("uuid-2", "token-2")
        await manager.add(first)
        await manager.add(second)

        await manager.remove(first.get_id())

        assert manager.get(first.get_id()) is None
        assert manager.list_accounts() == [second]
        assert await manager.saved_credentials() == [(second.get_id(), "token-2")]

    @pytest.mark.asyncio
    async def test_unreadable_saved_accounts(self):
        manager = AccountManager(MemoryStore({ACCOUNTS_STORAGE_KEY: "not json"}))

        assert await manager.saved_credentials() == []
