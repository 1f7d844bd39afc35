from __future__ import annotations

import json
import logging
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, Iterable, Optional

from pydantic import TypeAdapter

from app.schemas import AgreementRecord
from models.records import Agreement, ensure_utc
from settings import get_settings

logger = logging.getLogger(__name__)

_RECORDS = TypeAdapter(list[AgreementRecord])


class AgreementStore:
    """In-memory agreement table, optionally seeded from a JSON file.

    Agreements are immutable once stored; provisioning replaces the whole set
    through :meth:`reload` or adds single entries through :meth:`put`.
    """

    def __init__(
        self,
        agreements: Iterable[Agreement] = (),
        seed_path: Optional[Path] = None,
    ) -> None:
        self.seed_path = seed_path
        self._items: Dict[str, Agreement] = {}
        self._lock = Lock()
        if seed_path:
            self._items.update(self._read_seed())
        for agreement in agreements:
            self._items[agreement.id] = agreement

    def find_active(self, asset_id: str, now: datetime) -> Optional[Agreement]:
        """Return the agreement in effect for ``asset_id`` at ``now``, if any.

        If the table holds overlapping agreements for one asset the latest
        ``start_time`` wins, with ``id`` as the final tie-breaker.
        """
        if not asset_id:
            raise ValueError("asset_id must not be empty.")
        instant = ensure_utc(now)
        with self._lock:
            candidates = [
                agreement
                for agreement in self._items.values()
                if agreement.asset_id == asset_id and agreement.is_active_at(instant)
            ]
        if not candidates:
            return None
        if len(candidates) > 1:
            logger.warning(
                "Overlapping agreements for asset; choosing the latest start",
                extra={"asset_id": asset_id, "reason": f"{len(candidates)} active"},
            )
        return max(candidates, key=lambda agreement: (agreement.start_time, agreement.id))

    def put(self, agreement: Agreement) -> None:
        with self._lock:
            self._items[agreement.id] = agreement

    def get(self, agreement_id: str) -> Optional[Agreement]:
        with self._lock:
            return self._items.get(agreement_id)

    def scan(self) -> list[Agreement]:
        with self._lock:
            return list(self._items.values())

    def knows_asset(self, asset_id: str) -> bool:
        with self._lock:
            return any(agreement.asset_id == asset_id for agreement in self._items.values())

    def asset_ids(self) -> set[str]:
        with self._lock:
            return {agreement.asset_id for agreement in self._items.values()}

    def reload(self, agreements: Optional[Iterable[Agreement]] = None) -> int:
        """Replace every stored agreement and return the new count.

        Without ``agreements`` the seed file is read again; a store without a
        seed file is simply emptied.
        """
        if agreements is None:
            fresh = self._read_seed() if self.seed_path else {}
        else:
            fresh = {agreement.id: agreement for agreement in agreements}
        with self._lock:
            self._items = fresh
            count = len(self._items)
        logger.info("Agreement store reloaded", extra={"reason": f"{count} agreements"})
        return count

    def _read_seed(self) -> Dict[str, Agreement]:
        assert self.seed_path is not None
        if not self.seed_path.exists():
            logger.warning(
                "Agreement seed file not found", extra={"reason": str(self.seed_path)}
            )
            return {}

        raw = json.loads(self.seed_path.read_text() or "[]")
        if isinstance(raw, dict):
            raw = raw.get("agreements", [])
        records = _RECORDS.validate_python(raw)
        return {record.id: record.to_agreement() for record in records}


@lru_cache
def build_default_store(path: Optional[str] = None) -> AgreementStore:
    settings = get_settings()
    seed = settings.agreements_path if path is None else path
    return AgreementStore(seed_path=Path(seed) if seed else None)
