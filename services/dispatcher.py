"""Push-notification delivery for speed alerts."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Callable, Optional

import httpx

from app.schemas import PushContent, PushMessage
from datastore.device_directory import DeviceDirectory, build_default_directory
from models.records import Agreement, RecipientClass
from services.errors import (
    DispatchError,
    DispatchTimeout,
    TransportRejected,
    UnresolvedRecipient,
    Unreachable,
)
from settings import get_settings

logger = logging.getLogger(__name__)

COMPANY_TITLE = "Speed Alert 🚨"
CUSTOMER_TITLE = "Speed Limit Warning ⚠️"


class DispatchStatus(str, Enum):
    delivered = "delivered"
    unresolved = "unresolved"
    rejected = "rejected"
    unreachable = "unreachable"
    timeout = "timeout"


_STATUS_BY_ERROR = {
    UnresolvedRecipient: DispatchStatus.unresolved,
    TransportRejected: DispatchStatus.rejected,
    Unreachable: DispatchStatus.unreachable,
    DispatchTimeout: DispatchStatus.timeout,
}


@dataclass(frozen=True)
class DispatchResult:
    """What happened to one notification; failures are reported, never raised."""

    recipient: RecipientClass
    status: DispatchStatus
    attempts: int = 0
    status_code: Optional[int] = None
    error: Optional[DispatchError] = None

    @property
    def ok(self) -> bool:
        return self.status is DispatchStatus.delivered


class NotificationDispatcher:
    """Sends company and customer notifications to an FCM-style push backend."""

    def __init__(
        self,
        directory: DeviceDirectory,
        endpoint_url: str,
        server_key: Optional[str],
        company_topic: str = "company-alerts",
        timeout: float = 10.0,
        retry_attempts: int = 3,
        retry_backoff: float = 0.5,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.directory = directory
        self.endpoint_url = endpoint_url
        self.company_topic = company_topic
        self.retry_attempts = max(1, retry_attempts)
        self.retry_backoff = retry_backoff
        self._server_key = server_key
        self._client = client or httpx.Client(timeout=timeout)
        self._sleep = sleep
        if not server_key:
            logger.warning("No push server key configured; the backend will reject requests.")

    def notify_company(self, agreement: Agreement, message: str) -> DispatchResult:
        """Broadcast the alert on the company topic."""
        logger.info(
            "Notifying company",
            extra={"agreement_id": agreement.id, "asset_id": agreement.asset_id},
        )
        payload = PushMessage(
            to=f"/topics/{self.company_topic}",
            notification=PushContent(title=COMPANY_TITLE, body=message),
            data={"assetId": agreement.asset_id, "agreementId": agreement.id},
        )
        return self._dispatch(RecipientClass.company, agreement, lambda: payload)

    def notify_user(self, agreement: Agreement, message: str) -> DispatchResult:
        """Send the alert to the device registered for the agreement's customer."""
        logger.info(
            "Alerting customer",
            extra={"agreement_id": agreement.id, "customer_id": agreement.customer_id},
        )

        def build() -> PushMessage:
            token = self.directory.resolve(agreement.customer_id)
            if not token:
                raise UnresolvedRecipient(agreement.customer_id)
            return PushMessage(
                to=token,
                notification=PushContent(title=CUSTOMER_TITLE, body=message),
                data={"assetId": agreement.asset_id, "customerId": agreement.customer_id},
            )

        return self._dispatch(RecipientClass.customer, agreement, build)

    def rotate_credential(self, server_key: str) -> None:
        if not server_key:
            raise ValueError("server_key must not be empty.")
        self._server_key = server_key
        logger.info("Push server key rotated")

    def close(self) -> None:
        self._client.close()

    def _dispatch(
        self,
        recipient: RecipientClass,
        agreement: Agreement,
        build: Callable[[], PushMessage],
    ) -> DispatchResult:
        attempts = 0
        try:
            payload = build()
            while True:
                attempts += 1
                try:
                    status_code = self._post(payload)
                except DispatchError as exc:
                    if not exc.retryable or attempts >= self.retry_attempts:
                        raise
                    delay = self.retry_backoff * (2 ** (attempts - 1))
                    logger.warning(
                        "Push backend unreachable, retrying in %.2fs",
                        delay,
                        extra={"recipient": recipient.value, "attempt": attempts, "reason": str(exc)},
                    )
                    self._sleep(delay)
                    continue
                break
        except DispatchError as exc:
            logger.error(
                "Failed to send push notification",
                extra={
                    "recipient": recipient.value,
                    "agreement_id": agreement.id,
                    "status_code": getattr(exc, "status_code", None),
                    "attempt": attempts or None,
                    "reason": str(exc),
                },
            )
            return DispatchResult(
                recipient=recipient,
                status=_STATUS_BY_ERROR[type(exc)],
                attempts=attempts,
                status_code=getattr(exc, "status_code", None),
                error=exc,
            )

        logger.info(
            "Push notification sent",
            extra={"recipient": recipient.value, "agreement_id": agreement.id, "status_code": status_code},
        )
        return DispatchResult(
            recipient=recipient,
            status=DispatchStatus.delivered,
            attempts=attempts,
            status_code=status_code,
        )

    def _post(self, payload: PushMessage) -> int:
        headers = {"Content-Type": "application/json"}
        if self._server_key:
            headers["Authorization"] = f"key={self._server_key}"
        try:
            response = self._client.post(
                self.endpoint_url,
                content=payload.model_dump_json(),
                headers=headers,
            )
        except httpx.TimeoutException as exc:
            raise DispatchTimeout(f"Push backend timed out: {exc}") from exc
        except httpx.TransportError as exc:
            raise Unreachable(f"Push backend unreachable: {exc}") from exc

        if not response.is_success:
            raise TransportRejected(response.status_code, response.reason_phrase)
        return response.status_code


@lru_cache
def build_default_dispatcher() -> NotificationDispatcher:
    """Factory that wires the dispatcher from settings."""
    settings = get_settings()
    return NotificationDispatcher(
        directory=build_default_directory(),
        endpoint_url=settings.push_endpoint_url,
        server_key=settings.push_server_key,
        company_topic=settings.company_topic,
        timeout=settings.push_timeout,
        retry_attempts=settings.retry_attempts,
        retry_backoff=settings.retry_backoff,
    )
