# -*- coding: utf-8 -*-
"""
tradezen.config

Root config for the TradeZen store. Values can be overridden through
environment variables (a ``.env`` file is honoured by ``tradezen.main``).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional


def get_project_root() -> Path:
    """Get the project root directory"""
    return Path(__file__).resolve().parent.parent


PROJECT_ROOT = get_project_root()
WORKSPACE_ROOT = Path(os.getenv("TRADEZEN_HOME", str(PROJECT_ROOT / "workspace")))
STATE_FILE = "tradezen_state.json"

# Google OAuth client (installed-app flow)
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET", "")
GOOGLE_SCOPES = " ".join([
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive.file",
    "https://www.googleapis.com/auth/userinfo.email",
])

# Remote document layout
APP_NAME = "TradeZen"
SHEET_NAME = "TradeZen_Data"
ATTACHMENT_FOLDER_NAME = "Screenshots"

SHEETS: Dict[str, str] = {
    "TRADES": "Trades",
    "TAGS": "Tags",
    "SETTINGS": "Settings",
}

# Keys inside the persisted local state file
STORAGE_KEYS: Dict[str, str] = {
    "AUTH_TOKEN": "tradezen_auth_token",
    "SHEET_ID": "tradezen_sheet_id",
    "DRIVE_FOLDER_ID": "tradezen_drive_folder_id",
    "USER_INFO": "tradezen_user_info",
}

DEFAULT_SETTINGS: Dict[str, str] = {
    "currency": "$",
    "theme": "dark",
    "weekStartsOn": "0",  # 0 = Sunday
    "firstLaunchCompleted": "false",
}


@dataclass
class StoreConfig:
    """Tunables shared by the session, the adapters and the cache.

    Attributes:
        token_lifetime: Assumed credential horizon in seconds. Google does not
            hand the browser flow an expiry, so the store works from a fixed
            assumption.
        refresh_lead: How long before the horizon the silent refresh fires.
        trade_freshness / tag_freshness / setting_freshness: Soft freshness
            windows for cached query results, in seconds.
        request_timeout: Total timeout for a single HTTP call.
        image_max_bytes / image_max_dimension: Attachment budget applied
            before upload.
        oauth_port / oauth_timeout: Loopback server used by interactive consent.
    """
    token_lifetime: int = 3600
    refresh_lead: int = 600
    trade_freshness: int = 300
    tag_freshness: int = 600
    setting_freshness: int = 600
    request_timeout: float = 15.0
    image_max_bytes: int = 1024 * 1024
    image_max_dimension: int = 1200
    oauth_port: int = 8765
    oauth_timeout: int = 120

    @property
    def refresh_delay(self) -> int:
        """Seconds between adopting a credential and refreshing it."""
        return max(self.token_lifetime - self.refresh_lead, 0)

    @classmethod
    def from_env(cls) -> "StoreConfig":
        """Load store configuration from environment variables."""
        return cls(
            token_lifetime=int(os.getenv("TRADEZEN_TOKEN_LIFETIME", "3600")),
            refresh_lead=int(os.getenv("TRADEZEN_REFRESH_LEAD", "600")),
            trade_freshness=int(os.getenv("TRADEZEN_TRADE_FRESHNESS", "300")),
            tag_freshness=int(os.getenv("TRADEZEN_TAG_FRESHNESS", "600")),
            setting_freshness=int(os.getenv("TRADEZEN_SETTING_FRESHNESS", "600")),
            request_timeout=float(os.getenv("TRADEZEN_HTTP_TIMEOUT", "15")),
            image_max_bytes=int(os.getenv("TRADEZEN_IMAGE_MAX_BYTES", str(1024 * 1024))),
            image_max_dimension=int(os.getenv("TRADEZEN_IMAGE_MAX_DIMENSION", "1200")),
            oauth_port=int(os.getenv("TRADEZEN_OAUTH_PORT", "8765")),
            oauth_timeout=int(os.getenv("TRADEZEN_OAUTH_TIMEOUT", "120")),
        )


# Global store configuration instance
_store_config: Optional[StoreConfig] = None


def get_store_config() -> StoreConfig:
    """Get the global store configuration, initializing from env if needed."""
    global _store_config
    if _store_config is None:
        _store_config = StoreConfig.from_env()
    return _store_config
