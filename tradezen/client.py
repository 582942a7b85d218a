# -*- coding: utf-8 -*-
"""
tradezen.client

Collaborator-facing entry point. Builds the session, the remote adapters and
the cache once and hands callers a query/mutate surface over them.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from tradezen.config import DEFAULT_SETTINGS, StoreConfig, get_store_config
from tradezen.credentials.session import Credential, SessionManager
from tradezen.exceptions import NotFoundError
from tradezen.state_store import LocalStateStore
from tradezen.store.asset_channel import BinaryAssetChannel
from tradezen.store.entity_cache import EntityCache, MutationOp
from tradezen.store.schema import SETTINGS, TRADES, Setting
from tradezen.store.tabular_store import TabularStoreAdapter


class TradeZenClient:
    """
    Usage:
        client = TradeZenClient()
        client.initialize()
        await client.sign_in()
        trades = await client.month_trades(2024, 3)
        await client.mutate("create", "tags", {"record": Tag(id="t1", name="Breakout")})
    """

    def __init__(
        self,
        state: Optional[LocalStateStore] = None,
        config: Optional[StoreConfig] = None,
        *,
        session: Optional[SessionManager] = None,
        adapter: Optional[TabularStoreAdapter] = None,
        assets: Optional[BinaryAssetChannel] = None,
        cache: Optional[EntityCache] = None,
    ) -> None:
        self.config = config or get_store_config()
        self.state = state or LocalStateStore()
        self.session = session or SessionManager(self.state, self.config)
        self.adapter = adapter or TabularStoreAdapter(self.session, self.state)
        self.assets = assets or BinaryAssetChannel(self.session, self.state, self.config)
        self.cache = cache or EntityCache(self.adapter, self.assets, self.config)
        self.session.add_sign_out_listener(self.cache.clear)

    # --------------------------------------------------
    # Session
    # --------------------------------------------------
    def initialize(self) -> None:
        self.session.initialize()

    async def sign_in(self) -> Credential:
        return await self.session.sign_in()

    def sign_out(self) -> None:
        self.session.sign_out()

    def is_signed_in(self) -> bool:
        return self.session.is_signed_in()

    def close(self) -> None:
        self.session.close()

    # --------------------------------------------------
    # Query / mutate
    # --------------------------------------------------
    async def query(self, collection: str, scope: Optional[Sequence[Any]] = None) -> List[Any]:
        return await self.cache.query(collection, scope)

    async def month_trades(self, year: int, month: int) -> List[Any]:
        return await self.cache.query(TRADES, (year, month))

    async def mutate(self, op: Any, collection: str, payload: Dict[str, Any]) -> Any:
        return await self.cache.mutate(op, collection, payload)

    # --------------------------------------------------
    # Settings
    # --------------------------------------------------
    async def settings(self) -> Dict[str, str]:
        """Stored settings merged over ``DEFAULT_SETTINGS``."""
        merged = dict(DEFAULT_SETTINGS)
        seen = set()
        for setting in await self.cache.query(SETTINGS):
            # Updates land on the first row holding a key, so that row wins
            if setting.key in seen:
                continue
            seen.add(setting.key)
            merged[setting.key] = setting.value
        return merged

    async def save_setting(self, key: str, value: Any) -> Setting:
        """Overwrite the row holding ``key``; append one only when the key column lacks it."""
        value = str(value)
        try:
            return await self.cache.mutate(MutationOp.UPDATE, SETTINGS, {"id": key, "changes": {"value": value}})
        except NotFoundError:
            return await self.cache.mutate(MutationOp.CREATE, SETTINGS, {"record": Setting(key=key, value=value)})

    def image_url(self, file_id: str) -> str:
        return self.assets.url_for(file_id)
