"""
tradezen.state_store

Durable local state: the persisted credential and the resolved document and
folder handles. Each key is independent so one can be dropped and re-resolved
without touching the others.
"""
import json
from pathlib import Path
from typing import Any, Dict, Optional, Union

from tradezen.config import STATE_FILE, WORKSPACE_ROOT
from tradezen.logger import logger


class LocalStateStore:
    """
    Small key/value store with local JSON persistence.
    Every write is flushed to disk immediately.
    """

    def __init__(self, persistence_path: Optional[Union[str, Path]] = None):
        self.persistence_path = Path(persistence_path) if persistence_path else WORKSPACE_ROOT / ".state" / STATE_FILE
        self.persistence_path.parent.mkdir(parents=True, exist_ok=True)
        self._values: Dict[str, Any] = {}
        self.load()

    def load(self) -> None:
        """Load state from disk. A corrupt file is treated as empty."""
        if not self.persistence_path.exists():
            return

        try:
            with open(self.persistence_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"[STATE] Ignoring unreadable state file {self.persistence_path}: {e}")
            return

        if isinstance(data, dict):
            self._values = data

    def save(self) -> None:
        """Save state to disk."""
        with open(self.persistence_path, "w", encoding="utf-8") as f:
            json.dump(self._values, f, indent=2)

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value
        self.save()

    def remove(self, *keys: str) -> None:
        changed = False
        for key in keys:
            if key in self._values:
                self._values.pop(key)
                changed = True
        if changed:
            self.save()

    def clear(self) -> None:
        self._values = {}
        self.save()

    def __contains__(self, key: str) -> bool:
        return key in self._values
