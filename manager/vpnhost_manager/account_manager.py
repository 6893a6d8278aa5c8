"""Registry of connected cloud accounts."""

import json
from typing import Any, Dict, List, Optional, Tuple

from vpnhost_shared.logging import get_logger
from vpnhost_shared.models import AccountId, CloudProviderId

logger = get_logger(__name__)

ACCOUNTS_STORAGE_KEY = "accounts"


class AccountManager:
    """
    Keeps connected accounts in memory and their credentials in the state store.

    Accounts are anything with a ``get_id() -> AccountId`` and a
    ``get_credentials()`` method.
    """

    def __init__(self, store):
        self.store = store
        self._accounts: Dict[AccountId, Any] = {}

    async def add(self, account: Any) -> None:
        """Register ``account`` and persist its credentials."""
        account_id = account.get_id()
        self._accounts[account_id] = account
        saved = await self._load_saved()
        saved = [entry for entry in saved if self._entry_id(entry) != account_id]
        saved.append(
            {
                "cloud_provider_id": account_id.cloud_provider_id.value,
                "cloud_specific_id": account_id.cloud_specific_id,
                "credentials": account.get_credentials(),
            }
        )
        await self.store.set_item(ACCOUNTS_STORAGE_KEY, json.dumps(saved))
        logger.info("Account added", cloud_specific_id=account_id.cloud_specific_id)

    def get(self, account_id: AccountId) -> Optional[Any]:
        return self._accounts.get(account_id)

    def list_accounts(self) -> List[Any]:
        return list(self._accounts.values())

    async def remove(self, account_id: AccountId) -> None:
        """Forget ``account_id`` and its persisted credentials."""
        self._accounts.pop(account_id, None)
        saved = await self._load_saved()
        remaining = [entry for entry in saved if self._entry_id(entry) != account_id]
        if len(remaining) != len(saved):
            await self.store.set_item(ACCOUNTS_STORAGE_KEY, json.dumps(remaining))
        logger.info("Account removed", cloud_specific_id=account_id.cloud_specific_id)

    async def saved_credentials(self) -> List[Tuple[AccountId, str]]:
        """Credentials of every account persisted by earlier sessions."""
        return [(self._entry_id(entry), entry["credentials"]) for entry in await self._load_saved()]

    async def _load_saved(self) -> List[Dict[str, Any]]:
        raw = await self.store.get_item(ACCOUNTS_STORAGE_KEY)
        if not raw:
            return []
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable saved accounts")
            return []

    @staticmethod
    def _entry_id(entry: Dict[str, Any]) -> AccountId:
        return AccountId(
            cloud_provider_id=CloudProviderId(entry["cloud_provider_id"]),
            cloud_specific_id=entry["cloud_specific_id"],
        )
