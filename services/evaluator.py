"""Speed threshold evaluation against the active rental agreement."""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from datetime import datetime
from threading import Lock
from typing import Callable, DefaultDict, List, Optional, Protocol

from datastore.agreement_store import AgreementStore
from models.records import Agreement, Notification, RecipientClass, SpeedViolation, utc_now
from services.dispatcher import DispatchResult
from services.errors import InvalidSample
from services.worker import DispatchWorker

logger = logging.getLogger(__name__)


class Dispatcher(Protocol):
    def notify_company(self, agreement: Agreement, message: str) -> DispatchResult: ...

    def notify_user(self, agreement: Agreement, message: str) -> DispatchResult: ...


def format_violation(speed: float, limit: float) -> str:
    return f"Speed exceeded: {float(speed)} > {float(limit)}"


def notifications_for(violation: SpeedViolation) -> List[Notification]:
    return [
        Notification(recipient=RecipientClass.company, agreement=violation.agreement, message=violation.message),
        Notification(recipient=RecipientClass.customer, agreement=violation.agreement, message=violation.message),
    ]


def validate_speed(speed: object) -> float:
    """Return ``speed`` as a float or raise :class:`InvalidSample`."""
    if isinstance(speed, bool) or not isinstance(speed, (int, float)):
        raise InvalidSample(f"Speed must be a number, got {speed!r}.")
    value = float(speed)
    if not math.isfinite(value):
        raise InvalidSample(f"Speed must be finite, got {value}.")
    if value < 0:
        raise InvalidSample(f"Speed must not be negative, got {value}.")
    return value


class ThresholdEvaluator:
    """Compares speed samples with the active agreement and raises alerts.

    The evaluator keeps no state of its own besides per-asset locks, which
    serialize samples for one asset while other assets run in parallel.
    """

    def __init__(
        self,
        store: AgreementStore,
        dispatcher: Dispatcher,
        worker: Optional[DispatchWorker] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.worker = worker
        self.clock = clock
        self._asset_locks: DefaultDict[str, Lock] = defaultdict(Lock)
        self._asset_locks_guard = Lock()

    def on_speed_update(self, asset_id: str, speed: float) -> Optional[SpeedViolation]:
        """Evaluate one sample; returns the violation if notifications were triggered."""
        try:
            if not asset_id:
                raise InvalidSample("Sample is missing an asset id.")
            value = validate_speed(speed)
        except InvalidSample as exc:
            logger.warning(
                "Rejecting speed sample",
                extra={"asset_id": asset_id or None, "speed": speed, "reason": str(exc)},
            )
            return None

        # Only assets with an active agreement get a lock.
        if self.store.find_active(asset_id, self.clock()) is None:
            logger.debug("No active agreement for asset", extra={"asset_id": asset_id})
            return None

        with self._lock_for(asset_id):
            agreement = self.store.find_active(asset_id, self.clock())
            if agreement is None:
                return None

            if value <= agreement.speed_limit:
                return None

            violation = SpeedViolation(
                agreement=agreement,
                speed=value,
                message=format_violation(value, agreement.speed_limit),
            )
            logger.info(
                "Speed limit exceeded",
                extra={
                    "asset_id": asset_id,
                    "agreement_id": agreement.id,
                    "speed": value,
                    "speed_limit": agreement.speed_limit,
                },
            )
            if self.worker is not None:
                self.worker.submit(lambda: self.dispatch(violation))
            else:
                self.dispatch(violation)
            return violation

    def dispatch(self, violation: SpeedViolation) -> List[DispatchResult]:
        """Notify the company, then the customer; each is attempted regardless of the other."""
        senders = {
            RecipientClass.company: self.dispatcher.notify_company,
            RecipientClass.customer: self.dispatcher.notify_user,
        }
        results: List[DispatchResult] = []
        for notification in notifications_for(violation):
            send = senders[notification.recipient]
            try:
                results.append(send(notification.agreement, notification.message))
            except Exception:
                logger.exception(
                    "Notification dispatch raised unexpectedly",
                    extra={"agreement_id": violation.agreement.id, "recipient": notification.recipient.value},
                )
        return results

    def _lock_for(self, asset_id: str) -> Lock:
        with self._asset_locks_guard:
            return self._asset_locks[asset_id]
