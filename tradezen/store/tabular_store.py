# -*- coding: utf-8 -*-
"""
tradezen.store.tabular_store

Collection-level CRUD on top of the user's TradeZen spreadsheet.

The spreadsheet has no key index, so updates and deletes scan the identifier
column to find a row number and then act on that row. Nothing here is atomic
with respect to other writers: a second client editing the same document can
shift rows between the scan and the write.
"""

from __future__ import annotations

import dataclasses
from typing import Any, Dict, List, Optional, Sequence, Tuple

from tradezen.config import SHEET_NAME, STORAGE_KEYS
from tradezen.credentials.session import SessionManager
from tradezen.exceptions import AuthorizationError, NotFoundError, ProvisioningError, RowValidationError, TransportError
from tradezen.google_workspace.helpers import google_drive_helpers as drive_api
from tradezen.google_workspace.helpers import google_sheets_helpers as sheets_api
from tradezen.logger import logger
from tradezen.state_store import LocalStateStore
from tradezen.store.schema import SCHEMAS, TAGS, CollectionSchema, get_schema, utc_timestamp


class TabularStoreAdapter:
    """Maps Trade/Tag/Setting records onto rows of the remote document."""

    def __init__(self, session: SessionManager, state: LocalStateStore) -> None:
        self._session = session
        self._state = state
        # Document id that has been checked for the required tabs in this process
        self._validated_id: Optional[str] = None
        self._tab_ids: Dict[str, int] = {}
        # collection -> record id -> 1-based sheet row, from the last scan
        self._row_hints: Dict[str, Dict[str, int]] = {}

    @property
    def document_id(self) -> Optional[str]:
        return self._state.get(STORAGE_KEYS["SHEET_ID"])

    async def _token(self) -> str:
        credential = await self._session.get_credential()
        return credential.token

    # --------------------------------------------------
    # Document resolution
    # --------------------------------------------------
    async def resolve_document(self, create: bool = True) -> Optional[str]:
        """
        Find the user's document, or provision a new one.

        A previously stored handle is re-checked once per process. Otherwise
        Drive is searched for documents named ``SHEET_NAME`` (newest first)
        and the first one carrying every required tab is adopted. With
        ``create=False`` a missing document yields ``None``.

        Only a definite answer (404 or missing tabs) counts as "not this
        document". If a document could not be loaded for any other reason,
        nothing is created and the last such error is raised instead.
        """
        stored = self.document_id
        if stored and stored == self._validated_id:
            return stored

        if stored:
            if await self._check_candidate(stored):
                return self._adopt_document(stored)
            logger.warning(f"[SHEETS] Stored document {stored} is unusable, resolving again")
            self._state.remove(STORAGE_KEYS["SHEET_ID"])
            self._forget_document()

        token = await self._token()
        candidates = await drive_api.find_spreadsheets_by_name(token, SHEET_NAME)
        logger.debug(f"[SHEETS] Found {len(candidates)} candidate document(s) named {SHEET_NAME}")

        deferred: Optional[TransportError] = None
        for candidate in candidates:
            try:
                usable = await self._check_candidate(candidate["id"])
            except AuthorizationError:
                raise
            except TransportError as e:
                logger.info(f"[SHEETS] Skipping document {candidate['id']} for now: {e}")
                deferred = e
                continue
            if usable:
                return self._adopt_document(candidate["id"])

        if deferred is not None:
            raise deferred
        if not create:
            return None
        return await self._create_document()

    async def _check_candidate(self, spreadsheet_id: str) -> bool:
        """
        True when the document is reachable and holds every required tab,
        False when it is gone (404) or incomplete. Other failures propagate.
        """
        try:
            metadata = await sheets_api.get_spreadsheet(await self._token(), spreadsheet_id)
        except TransportError as e:
            if not e.is_not_found:
                raise
            logger.info(f"[SHEETS] Document {spreadsheet_id} no longer exists")
            return False

        tabs = sheets_api.tab_ids(metadata)
        missing = [schema.tab for schema in SCHEMAS.values() if schema.tab not in tabs]
        if missing:
            logger.info(f"[SHEETS] Document {spreadsheet_id} is missing tabs: {', '.join(missing)}")
            return False

        self._tab_ids = tabs
        return True

    async def _create_document(self) -> str:
        token = await self._token()
        tabs = [(schema.tab, schema.width) for schema in SCHEMAS.values()]
        try:
            created = await sheets_api.create_spreadsheet(token, SHEET_NAME, tabs)
            spreadsheet_id = created["spreadsheetId"]
            tab_ids = sheets_api.tab_ids(created)
            requests = [sheets_api.header_request(tab_ids[schema.tab], schema.headers) for schema in SCHEMAS.values()]
            await sheets_api.batch_update(token, spreadsheet_id, requests)
        except AuthorizationError:
            raise
        except (TransportError, KeyError) as e:
            raise ProvisioningError(f"Could not create {SHEET_NAME}: {e}") from e

        logger.info(f"[SHEETS] Created document {spreadsheet_id}")
        self._tab_ids = tab_ids
        return self._adopt_document(spreadsheet_id)

    def _adopt_document(self, spreadsheet_id: str) -> str:
        if spreadsheet_id != self._validated_id:
            self._row_hints.clear()
        self._validated_id = spreadsheet_id
        self._state.set(STORAGE_KEYS["SHEET_ID"], spreadsheet_id)
        return spreadsheet_id

    def _forget_document(self) -> None:
        self._validated_id = None
        self._tab_ids = {}
        self._row_hints.clear()

    async def _tab_id(self, spreadsheet_id: str, schema: CollectionSchema) -> int:
        if schema.tab not in self._tab_ids:
            metadata = await sheets_api.get_spreadsheet(await self._token(), spreadsheet_id)
            self._tab_ids = sheets_api.tab_ids(metadata)
        try:
            return self._tab_ids[schema.tab]
        except KeyError:
            raise ProvisioningError(f"Tab {schema.tab} missing from document {spreadsheet_id}") from None

    # --------------------------------------------------
    # Reads
    # --------------------------------------------------
    async def fetch_all(self, collection: str) -> List[Any]:
        """
        Every parseable record of a collection, in sheet order (tags by
        ``order``). Short or malformed rows are dropped with a warning. No
        document yet means no data, not an error.
        """
        schema = get_schema(collection)
        spreadsheet_id = await self.resolve_document(create=False)
        if not spreadsheet_id:
            return []

        rows = await sheets_api.get_values(await self._token(), spreadsheet_id, schema.data_range())
        records = []
        hints: Dict[str, int] = {}
        for offset, row in enumerate(rows):
            try:
                record = schema.parse(row)
            except RowValidationError as e:
                logger.warning(f"[SHEETS] Dropping {collection} row {offset + 2}: {e}")
                continue
            records.append(record)
            hints.setdefault(record.id, offset + 2)
        self._row_hints[collection] = hints

        if schema.sort_key is not None:
            records.sort(key=schema.sort_key)
        logger.debug(f"[SHEETS] Fetched {len(records)} {collection} record(s)")
        return records

    async def _locate(
        self,
        spreadsheet_id: str,
        schema: CollectionSchema,
        record_id: str,
        with_cells: bool = True,
    ) -> Tuple[int, List[Any]]:
        """Row number and current cells of a record; raises ``NotFoundError``."""
        token = await self._token()

        hint = self._row_hints.get(schema.name, {}).get(record_id)
        if hint is not None:
            rows = await sheets_api.get_values(token, spreadsheet_id, schema.row_range(hint))
            if rows and rows[0] and str(rows[0][0]) == record_id:
                return hint, rows[0]
            logger.debug(f"[SHEETS] Row hint for {schema.name}/{record_id} is stale, rescanning")

        column = await sheets_api.get_values(token, spreadsheet_id, schema.id_range())
        hints: Dict[str, int] = {}
        for index, cells in enumerate(column):
            if index == 0 or not cells:
                continue  # header row / blank row
            hints.setdefault(str(cells[0]), index + 1)
        self._row_hints[schema.name] = hints

        row_number = hints.get(record_id)
        if row_number is None:
            raise NotFoundError(schema.name, record_id)
        if not with_cells:
            return row_number, []
        rows = await sheets_api.get_values(token, spreadsheet_id, schema.row_range(row_number))
        return row_number, rows[0] if rows else []

    # --------------------------------------------------
    # Writes
    # --------------------------------------------------
    async def append(self, collection: str, record: Any) -> Any:
        """Append one record; no identifier collision check is made."""
        schema = get_schema(collection)
        spreadsheet_id = await self.resolve_document()

        if schema.timestamped:
            now = utc_timestamp()
            record = dataclasses.replace(record, created_at=now, updated_at=now)

        await sheets_api.append_values(await self._token(), spreadsheet_id, schema.append_range(), [schema.serialize(record)])
        self._row_hints.pop(collection, None)
        logger.info(f"[SHEETS] Appended {collection} record {record.id}")
        return record

    async def update_by_id(self, collection: str, record_id: str, changes: Dict[str, Any]) -> Any:
        """
        Overwrite a row in place with ``changes`` merged over its current
        values. Last writer wins against concurrent edits of the same row.
        """
        schema = get_schema(collection)
        spreadsheet_id = await self.resolve_document()
        row_number, cells = await self._locate(spreadsheet_id, schema, record_id)
        try:
            existing = schema.parse(cells)
        except RowValidationError as e:
            raise RowValidationError(f"{collection} row {row_number} cannot be updated: {e}") from e

        merged = schema.merge(existing, changes)
        if schema.timestamped:
            # ISO strings in one format compare chronologically
            merged = dataclasses.replace(merged, updated_at=max(utc_timestamp(), existing.updated_at or ""))

        await sheets_api.update_values(await self._token(), spreadsheet_id, schema.row_range(row_number), [schema.serialize(merged)])
        logger.info(f"[SHEETS] Updated {collection} record {record_id} at row {row_number}")
        return merged

    async def delete_by_id(self, collection: str, record_id: str) -> None:
        """Remove a row, shifting later rows up."""
        schema = get_schema(collection)
        spreadsheet_id = await self.resolve_document()
        row_number, _ = await self._locate(spreadsheet_id, schema, record_id, with_cells=False)
        tab_id = await self._tab_id(spreadsheet_id, schema)

        await sheets_api.batch_update(
            await self._token(),
            spreadsheet_id,
            [sheets_api.delete_row_request(tab_id, row_number - 1)],
        )
        self._row_hints.pop(collection, None)
        logger.info(f"[SHEETS] Deleted {collection} record {record_id} from row {row_number}")

    async def reorder(self, collection: str, ordered_ids: Sequence[str]) -> List[Any]:
        """
        Give each tag its position in ``ordered_ids`` as its order. Updates
        run one after another, never concurrently.
        """
        if collection != TAGS:
            raise ValueError(f"Only {TAGS} can be reordered, not {collection}")

        updated = []
        for position, record_id in enumerate(ordered_ids):
            updated.append(await self.update_by_id(collection, record_id, {"order": position}))
        return updated
