# -*- coding: utf-8 -*-
"""
tradezen.store.entity_cache

Process-local cache of query results with optimistic mutations.

A mutation snapshots every cached entry of its collection, applies its effect
to those entries straight away, performs the remote write, and either keeps
going (success) or restores the snapshot (failure). Either way the entries are
invalidated afterwards so the next read goes back to the document.
"""

from __future__ import annotations

import asyncio
import copy
import dataclasses
import time
from collections import defaultdict
from contextlib import AsyncExitStack
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from tradezen.config import StoreConfig, get_store_config
from tradezen.logger import logger
from tradezen.store.asset_channel import BinaryAssetChannel
from tradezen.store.schema import SETTINGS, TAGS, TRADES, attachment_filename, get_schema
from tradezen.store.tabular_store import TabularStoreAdapter


class MutationOp(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    REORDER = "reorder"


class MutationState(str, Enum):
    IDLE = "idle"
    OPTIMISTIC_APPLIED = "optimistic_applied"
    REMOTE_PENDING = "remote_pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True)
class CacheKey:
    collection: str
    scope: Tuple[Any, ...] = ()

    @classmethod
    def month(cls, year: int, month: int) -> "CacheKey":
        """Trades dated in ``year``-``month`` (1-based month)."""
        return cls(TRADES, (year, month))

    def matches(self, record: Any) -> bool:
        if not self.scope:
            return True
        if self.collection == TRADES:
            year, month = self.scope
            return record.in_month(year, month)
        return True


@dataclass
class CacheEntry:
    value: List[Any]
    fetched_at: float
    invalid: bool = False


class EntityCache:

    def __init__(
        self,
        adapter: TabularStoreAdapter,
        assets: BinaryAssetChannel,
        config: Optional[StoreConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._adapter = adapter
        self._assets = assets
        self._config = config or get_store_config()
        self._clock = clock

        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._inflight: Dict[CacheKey, asyncio.Future] = {}
        # Bumped on every invalidation; a fetch that straddles one is stored invalid
        self._generations: Dict[str, int] = defaultdict(int)
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = {}
        self._lock_claims: Dict[Tuple[str, str], int] = defaultdict(int)
        self._states: Dict[Tuple[str, str], MutationState] = {}

    # --------------------------------------------------
    # Inspection
    # --------------------------------------------------
    def freshness_window(self, collection: str) -> int:
        return {
            TRADES: self._config.trade_freshness,
            TAGS: self._config.tag_freshness,
            SETTINGS: self._config.setting_freshness,
        }[collection]

    def peek(self, key: CacheKey) -> Optional[List[Any]]:
        """Cached value for ``key`` whether or not it is still valid."""
        entry = self._entries.get(key)
        return list(entry.value) if entry is not None else None

    def is_stale(self, key: CacheKey) -> bool:
        entry = self._entries.get(key)
        if entry is None or entry.invalid:
            return True
        return self._clock() - entry.fetched_at > self.freshness_window(key.collection)

    def is_valid(self, key: CacheKey) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not entry.invalid

    def mutation_state(self, collection: str, record_id: str) -> MutationState:
        return self._states.get((collection, record_id), MutationState.IDLE)

    def invalidate(self, collection: str) -> None:
        """Mark every entry of ``collection`` (all scopes) for re-fetch."""
        self._generations[collection] += 1
        for key, entry in self._entries.items():
            if key.collection == collection:
                entry.invalid = True

    def clear(self) -> None:
        for collection in list(self._generations) + [TRADES, TAGS, SETTINGS]:
            self._generations[collection] += 1
        self._entries.clear()
        logger.debug("[CACHE] Cleared")

    # --------------------------------------------------
    # Reads
    # --------------------------------------------------
    async def query(self, collection: str, scope: Optional[Sequence[Any]] = None) -> List[Any]:
        """
        Serve the cached list for ``(collection, scope)``; fetch it when absent
        or invalidated. Age alone never forces a fetch, see ``is_stale``.
        Concurrent queries for one key share a single fetch.
        """
        get_schema(collection)
        key = CacheKey(collection, tuple(scope) if scope else ())
        entry = self._entries.get(key)
        if entry is not None and not entry.invalid:
            return list(entry.value)

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fetch(key))
            self._inflight[key] = task
            task.add_done_callback(lambda _done, k=key: self._inflight.pop(k, None))
        return list(await asyncio.shield(task))

    async def _fetch(self, key: CacheKey) -> List[Any]:
        generation = self._generations[key.collection]
        records = await self._adapter.fetch_all(key.collection)
        if key.scope:
            records = [record for record in records if key.matches(record)]

        self._entries[key] = CacheEntry(
            value=records,
            fetched_at=self._clock(),
            invalid=generation != self._generations[key.collection],
        )
        return records

    # --------------------------------------------------
    # Mutations
    # --------------------------------------------------
    async def mutate(self, op: Any, collection: str, payload: Dict[str, Any]) -> Any:
        """
        Run one optimistic mutation.

        Payloads:
            create:  {"record": Trade|Tag|Setting, "attachment": bytes (trades, optional)}
            update:  {"id": str, "changes": {...}, "attachment": bytes (trades, optional)}
            delete:  {"id": str}
            reorder: {"ids": [str, ...]} (tags only)

        Mutations touching the same record run one at a time.
        """
        op = MutationOp(op)
        schema = get_schema(collection)
        if op is MutationOp.REORDER and collection != TAGS:
            raise ValueError(f"Only {TAGS} can be reordered, not {collection}")
        record_ids = self._record_ids(op, payload)

        lock_keys = [(schema.name, record_id) for record_id in sorted(set(record_ids))]
        locks = [self._claim_lock(key) for key in lock_keys]
        try:
            async with AsyncExitStack() as stack:
                for lock in locks:
                    await stack.enter_async_context(lock)
                return await self._run_mutation(op, collection, payload, record_ids)
        finally:
            for key in lock_keys:
                self._release_lock(key)

    @staticmethod
    def _record_ids(op: MutationOp, payload: Dict[str, Any]) -> List[str]:
        if op is MutationOp.CREATE:
            return [payload["record"].id]
        if op is MutationOp.REORDER:
            return list(payload["ids"])
        return [payload["id"]]

    def _claim_lock(self, key: Tuple[str, str]) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_claims[key] += 1
        return lock

    def _release_lock(self, key: Tuple[str, str]) -> None:
        # Dropped once no running or waiting mutation holds a claim on it
        self._lock_claims[key] -= 1
        if self._lock_claims[key] <= 0:
            del self._lock_claims[key]
            self._locks.pop(key, None)

    def _set_state(self, collection: str, record_ids: Sequence[str], state: MutationState) -> None:
        for record_id in record_ids:
            self._states[(collection, record_id)] = state

    async def _run_mutation(self, op: MutationOp, collection: str, payload: Dict[str, Any], record_ids: List[str]) -> Any:
        keys = [key for key in self._entries if key.collection == collection]
        snapshot = {key: copy.deepcopy(self._entries[key]) for key in keys}

        try:
            for key in keys:
                self._apply_optimistic(op, key, self._entries[key], payload)
            self._set_state(collection, record_ids, MutationState.OPTIMISTIC_APPLIED)

            self._set_state(collection, record_ids, MutationState.REMOTE_PENDING)
            result = await self._execute(op, collection, payload)
        except (Exception, asyncio.CancelledError) as e:
            self._entries.update(snapshot)
            self._set_state(collection, record_ids, MutationState.ROLLED_BACK)
            logger.warning(f"[CACHE] {op.value} on {collection} rolled back: {e!r}")
            raise
        else:
            self._set_state(collection, record_ids, MutationState.COMMITTED)
            logger.debug(f"[CACHE] {op.value} on {collection} committed")
            return result
        finally:
            self.invalidate(collection)
            for record_id in record_ids:
                self._states.pop((collection, record_id), None)

    def _apply_optimistic(self, op: MutationOp, key: CacheKey, entry: CacheEntry, payload: Dict[str, Any]) -> None:
        schema = get_schema(key.collection)
        records = list(entry.value)

        if op is MutationOp.CREATE:
            record = payload["record"]
            if key.matches(record):
                records.append(record)
        elif op is MutationOp.UPDATE:
            updated = []
            for record in records:
                if record.id == payload["id"]:
                    record = schema.merge(record, payload.get("changes", {}))
                    if not key.matches(record):
                        continue
                updated.append(record)
            records = updated
        elif op is MutationOp.DELETE:
            records = [record for record in records if record.id != payload["id"]]
        elif op is MutationOp.REORDER:
            positions = {record_id: index for index, record_id in enumerate(payload["ids"])}
            records = [
                dataclasses.replace(record, order=positions[record.id]) if record.id in positions else record
                for record in records
            ]

        if schema.sort_key is not None:
            records.sort(key=schema.sort_key)
        entry.value = records

    async def _execute(self, op: MutationOp, collection: str, payload: Dict[str, Any]) -> Any:
        attachment = payload.get("attachment")
        if attachment is not None and collection != TRADES:
            raise ValueError("Only trades carry attachments")

        if op is MutationOp.CREATE:
            record = payload["record"]
            if attachment is not None:
                file_id = await self._assets.upload(attachment, attachment_filename(record.date, record.time))
                record = dataclasses.replace(record, attachment_id=file_id)
            return await self._adapter.append(collection, record)

        if op is MutationOp.UPDATE:
            changes = dict(payload.get("changes", {}))
            if attachment is not None:
                date, time_of_day = self._filename_context(payload["id"], changes)
                changes["attachment_id"] = await self._assets.upload(attachment, attachment_filename(date, time_of_day))
            return await self._adapter.update_by_id(collection, payload["id"], changes)

        if op is MutationOp.DELETE:
            await self._adapter.delete_by_id(collection, payload["id"])
            return None

        return await self._adapter.reorder(collection, payload["ids"])

    def _filename_context(self, record_id: str, changes: Dict[str, Any]) -> Tuple[str, str]:
        known = None
        for key, entry in self._entries.items():
            if key.collection != TRADES:
                continue
            known = next((record for record in entry.value if record.id == record_id), None)
            if known is not None:
                break
        date = changes.get("date", known.date if known else "")
        time_of_day = changes.get("time", known.time if known else "")
        return date, time_of_day
