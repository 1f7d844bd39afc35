from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, Optional

from settings import get_settings

logger = logging.getLogger(__name__)


class DeviceDirectory:
    """Maps customer ids to push registration tokens."""

    def __init__(self, persistence_path: Optional[Path] = None) -> None:
        self._tokens: Dict[str, str] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def register(self, customer_id: str, token: str) -> None:
        if not customer_id or not token:
            raise ValueError("customer_id and token must not be empty.")
        with self._lock:
            self._tokens[customer_id] = token
            self._persist()
        logger.info("Device token registered", extra={"customer_id": customer_id})

    def resolve(self, customer_id: str) -> Optional[str]:
        with self._lock:
            return self._tokens.get(customer_id)

    def forget(self, customer_id: str) -> bool:
        with self._lock:
            removed = self._tokens.pop(customer_id, None) is not None
            if removed:
                self._persist()
        return removed

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        self.persistence_path.write_text(json.dumps(self._tokens, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            data = json.loads(self.persistence_path.read_text() or "{}")
        except (OSError, json.JSONDecodeError):
            logger.warning(
                "Ignoring unreadable device token file",
                extra={"reason": str(self.persistence_path)},
            )
            data = {}

        self._tokens.update(
            {str(customer): str(token) for customer, token in data.items() if token}
        )


@lru_cache
def build_default_directory(path: Optional[str] = None) -> DeviceDirectory:
    settings = get_settings()
    tokens_path = settings.device_tokens_path if path is None else path
    return DeviceDirectory(persistence_path=Path(tokens_path) if tokens_path else None)
