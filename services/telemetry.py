"""Subscription table delivering speed samples to per-asset observers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from itertools import count
from threading import Lock
from typing import Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

SpeedObserver = Callable[[float], None]


@dataclass(frozen=True)
class SubscriptionHandle:
    asset_id: str
    token: int


class TelemetryFeed:
    """Routes speed samples to the single observer registered for an asset.

    Subscribing an asset that already has an observer replaces it; the previous
    observer receives nothing afterwards. Observers run on the emitting thread,
    once per sample, in emission order.
    """

    def __init__(self) -> None:
        self._observers: Dict[str, Tuple[SubscriptionHandle, SpeedObserver]] = {}
        self._lock = Lock()
        self._tokens = count(1)

    def subscribe(self, asset_id: str, observer: SpeedObserver) -> SubscriptionHandle:
        if not asset_id:
            raise ValueError("asset_id must not be empty.")
        with self._lock:
            handle = SubscriptionHandle(asset_id=asset_id, token=next(self._tokens))
            replaced = asset_id in self._observers
            self._observers[asset_id] = (handle, observer)
        if replaced:
            logger.warning(
                "Replacing existing speed observer",
                extra={"asset_id": asset_id, "reason": "observer replaced"},
            )
        return handle

    def subscribe_if_absent(
        self, asset_id: str, observer: SpeedObserver
    ) -> Optional[SubscriptionHandle]:
        """Subscribe only when ``asset_id`` has no observer; returns ``None`` otherwise."""
        if not asset_id:
            raise ValueError("asset_id must not be empty.")
        with self._lock:
            if asset_id in self._observers:
                return None
            handle = SubscriptionHandle(asset_id=asset_id, token=next(self._tokens))
            self._observers[asset_id] = (handle, observer)
        return handle

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        """Remove the subscription; handles superseded by a later subscribe are ignored."""
        with self._lock:
            current = self._observers.get(handle.asset_id)
            if current is not None and current[0] == handle:
                del self._observers[handle.asset_id]

    def subscriptions(self) -> list[str]:
        with self._lock:
            return sorted(self._observers)

    def emit(self, asset_id: str, speed: float) -> bool:
        """Deliver one sample; returns ``False`` when nobody listens to ``asset_id``."""
        with self._lock:
            entry = self._observers.get(asset_id)
        if entry is None:
            return False

        _, observer = entry
        try:
            observer(speed)
        except Exception:
            logger.exception("Speed observer failed", extra={"asset_id": asset_id, "speed": speed})
        return True
