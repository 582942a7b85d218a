# -*- coding: utf-8 -*-
"""
tradezen.store.asset_channel

Trade screenshots live in Drive under ``TradeZen/Screenshots``. Rows only keep
the Drive file id; display URLs are derived from it on demand. Replaced or
deleted attachments are left in Drive.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from tradezen.config import APP_NAME, ATTACHMENT_FOLDER_NAME, STORAGE_KEYS, StoreConfig, get_store_config
from tradezen.credentials.session import SessionManager
from tradezen.exceptions import AuthorizationError, ProvisioningError, TransportError
from tradezen.google_workspace.helpers import google_drive_helpers as drive_api
from tradezen.logger import logger
from tradezen.state_store import LocalStateStore
from tradezen.store.images import compress_image


class BinaryAssetChannel:

    def __init__(self, session: SessionManager, state: LocalStateStore, config: Optional[StoreConfig] = None) -> None:
        self._session = session
        self._state = state
        self._config = config or get_store_config()
        self._verified_id: Optional[str] = None

    async def _token(self) -> str:
        credential = await self._session.get_credential()
        return credential.token

    async def resolve_folder(self) -> str:
        """
        Locate or create ``TradeZen/Screenshots`` and remember its id. A stored
        id that Drive no longer knows (or has trashed) is resolved again.
        """
        token = await self._token()
        stored = self._state.get(STORAGE_KEYS["DRIVE_FOLDER_ID"])
        if stored and stored == self._verified_id:
            return stored

        if stored:
            try:
                info = await drive_api.get_drive_file(token, stored)
            except AuthorizationError:
                raise
            except TransportError as e:
                if not e.is_not_found:
                    raise
                info = None
            if info and not info.get("trashed"):
                self._verified_id = stored
                return stored
            logger.warning(f"[DRIVE] Stored folder {stored} is gone, resolving again")
            self._state.remove(STORAGE_KEYS["DRIVE_FOLDER_ID"])

        root_id = await self._find_or_create(token, APP_NAME)
        folder_id = await self._find_or_create(token, ATTACHMENT_FOLDER_NAME, parent_folder_id=root_id)

        self._verified_id = folder_id
        self._state.set(STORAGE_KEYS["DRIVE_FOLDER_ID"], folder_id)
        return folder_id

    async def _find_or_create(self, token: str, name: str, parent_folder_id: Optional[str] = None) -> str:
        folder = await drive_api.find_drive_folder_by_name(token, name, parent_folder_id=parent_folder_id)
        if folder:
            return folder["id"]

        try:
            created = await drive_api.create_drive_folder(token, name, parent_folder_id=parent_folder_id)
        except AuthorizationError:
            raise
        except TransportError as e:
            raise ProvisioningError(f"Could not create Drive folder {name}: {e}") from e
        if not created.get("id"):
            raise ProvisioningError(f"Drive returned no id for folder {name}")
        logger.info(f"[DRIVE] Created folder {name} ({created['id']})")
        return created["id"]

    async def upload(self, blob: bytes, filename: str) -> str:
        """Compress and upload an image; returns the Drive file id."""
        folder_id = await self.resolve_folder()
        payload = await asyncio.to_thread(
            compress_image,
            blob,
            self._config.image_max_bytes,
            self._config.image_max_dimension,
        )

        result = await drive_api.upload_drive_file(await self._token(), payload, filename, folder_id)
        file_id = result.get("id")
        if not file_id:
            raise TransportError("Drive upload returned no file id")
        logger.info(f"[DRIVE] Uploaded {filename} ({len(payload)} bytes) as {file_id}")
        return file_id

    @staticmethod
    def url_for(file_id: str) -> str:
        return drive_api.drive_thumbnail_url(file_id)
