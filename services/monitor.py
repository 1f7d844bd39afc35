"""Wiring of feed, evaluator and dispatcher into one speed monitor."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from datastore.agreement_store import AgreementStore, build_default_store
from models.records import SpeedSample, SpeedViolation
from services.dispatcher import NotificationDispatcher, build_default_dispatcher
from services.evaluator import ThresholdEvaluator, validate_speed
from services.telemetry import SpeedObserver, TelemetryFeed
from services.worker import DispatchWorker
from settings import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IngestOutcome:
    sample: SpeedSample
    delivered: bool
    violation: Optional[SpeedViolation] = None


class SpeedMonitor:
    """Subscribes the evaluator to the feed for every watched asset."""

    def __init__(
        self,
        store: AgreementStore,
        dispatcher: NotificationDispatcher,
        feed: Optional[TelemetryFeed] = None,
        worker: Optional[DispatchWorker] = None,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.feed = feed or TelemetryFeed()
        self.worker = worker
        self.evaluator = ThresholdEvaluator(store=store, dispatcher=dispatcher, worker=worker)
        self._local = threading.local()

    def _observer_for(self, asset_id: str) -> SpeedObserver:
        def observer(speed: float) -> None:
            self._local.violation = self.evaluator.on_speed_update(asset_id, speed)

        return observer

    def _ensure_watched(self, asset_id: str) -> bool:
        handle = self.feed.subscribe_if_absent(asset_id, self._observer_for(asset_id))
        if handle is None:
            return False
        logger.info("Watching asset for speed samples", extra={"asset_id": asset_id})
        return True

    def watch_known_assets(self) -> int:
        """Subscribe every asset that has an agreement and is not yet watched."""
        return sum(self._ensure_watched(asset_id) for asset_id in sorted(self.store.asset_ids()))

    def ingest(self, asset_id: str, speed: float) -> IngestOutcome:
        """Validate a sample and push it through the feed.

        Raises :class:`services.errors.InvalidSample` so callers at the edge can
        reject the request; samples reaching the evaluator directly are only logged.
        Assets without any agreement are not subscribed and report ``delivered=False``.
        """
        sample = SpeedSample(asset_id=asset_id, speed=validate_speed(speed))
        if self.store.knows_asset(asset_id):
            self._ensure_watched(asset_id)
        self._local.violation = None
        delivered = self.feed.emit(asset_id, sample.speed)
        return IngestOutcome(sample=sample, delivered=delivered, violation=self._local.violation)

    def shutdown(self) -> None:
        if self.worker is not None:
            self.worker.shutdown()
        self.dispatcher.close()


@lru_cache
def build_default_monitor(workers: Optional[int] = None) -> SpeedMonitor:
    """Factory that wires the monitor from settings."""
    settings = get_settings()
    worker_count = workers or settings.dispatch_workers
    monitor = SpeedMonitor(
        store=build_default_store(),
        dispatcher=build_default_dispatcher(),
        worker=DispatchWorker(workers=worker_count),
    )
    monitor.watch_known_assets()
    return monitor
