# -*- coding: utf-8 -*-
"""
tradezen.store

Remote-backed entity store: spreadsheet rows, Drive attachments and the
optimistic client-side cache layered over them.
"""

from .schema import SETTINGS, TAGS, TRADES, Setting, Tag, Trade, get_schema
from .tabular_store import TabularStoreAdapter
from .asset_channel import BinaryAssetChannel
from .entity_cache import CacheKey, EntityCache, MutationOp, MutationState

__all__ = [
    # Collections
    "TRADES",
    "TAGS",
    "SETTINGS",
    "Trade",
    "Tag",
    "Setting",
    "get_schema",
    # Services
    "TabularStoreAdapter",
    "BinaryAssetChannel",
    "EntityCache",
    "CacheKey",
    "MutationOp",
    "MutationState",
]
