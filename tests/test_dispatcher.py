"""Tests for push-notification dispatch against a mocked backend."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Callable, List

import httpx
import pytest

from datastore.device_directory import DeviceDirectory
from models.records import Agreement, RecipientClass
from services.dispatcher import DispatchStatus, NotificationDispatcher
from services.errors import DispatchTimeout, TransportRejected, UnresolvedRecipient, Unreachable

ENDPOINT = "https://push.example.test/fcm/send"
MESSAGE = "Speed exceeded: 65.0 > 60.0"


def _agreement() -> Agreement:
    now = datetime.now(timezone.utc)
    return Agreement(
        id="rental1",
        asset_id="vehicle123",
        customer_id="customerABC",
        speed_limit=60.0,
        start_time=now - timedelta(hours=1),
        end_time=now + timedelta(hours=2),
    )


def _dispatcher(
    handler: Callable[[httpx.Request], httpx.Response],
    directory: DeviceDirectory | None = None,
    sleeps: List[float] | None = None,
    server_key: str | None = "secret-key",
) -> NotificationDispatcher:
    recorded = sleeps if sleeps is not None else []
    return NotificationDispatcher(
        directory=directory or DeviceDirectory(),
        endpoint_url=ENDPOINT,
        server_key=server_key,
        retry_attempts=3,
        retry_backoff=0.5,
        client=httpx.Client(transport=httpx.MockTransport(handler)),
        sleep=recorded.append,
    )


def test_notify_company_posts_topic_payload() -> None:
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"message_id": 1})

    result = _dispatcher(handler).notify_company(_agreement(), MESSAGE)

    assert result.ok
    assert result.recipient is RecipientClass.company
    assert result.status_code == 200
    assert len(requests) == 1
    request = requests[0]
    assert str(request.url) == ENDPOINT
    assert request.headers["Authorization"] == "key=secret-key"
    assert request.headers["Content-Type"] == "application/json"
    body = json.loads(request.content)
    assert body == {
        "to": "/topics/company-alerts",
        "notification": {"title": "Speed Alert 🚨", "body": MESSAGE},
        "data": {"assetId": "vehicle123", "agreementId": "rental1"},
    }


def test_notify_user_addresses_registered_device() -> None:
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200)

    directory = DeviceDirectory()
    directory.register("customerABC", "device-token-1")

    result = _dispatcher(handler, directory=directory).notify_user(_agreement(), MESSAGE)

    assert result.ok
    assert result.recipient is RecipientClass.customer
    body = json.loads(requests[0].content)
    assert body["to"] == "device-token-1"
    assert body["notification"]["title"] == "Speed Limit Warning ⚠️"
    assert body["data"] == {"assetId": "vehicle123", "customerId": "customerABC"}


def test_notify_user_without_token_is_unresolved_and_sends_nothing() -> None:
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200)

    result = _dispatcher(handler).notify_user(_agreement(), MESSAGE)

    assert result.status is DispatchStatus.unresolved
    assert isinstance(result.error, UnresolvedRecipient)
    assert result.attempts == 0
    assert requests == []


def test_non_success_status_is_rejected_without_retry() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(401)

    sleeps: List[float] = []
    result = _dispatcher(handler, sleeps=sleeps).notify_company(_agreement(), MESSAGE)

    assert result.status is DispatchStatus.rejected
    assert result.status_code == 401
    assert isinstance(result.error, TransportRejected)
    assert calls == 1
    assert sleeps == []


def test_unreachable_backend_is_retried_with_backoff() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        if calls < 3:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200)

    sleeps: List[float] = []
    result = _dispatcher(handler, sleeps=sleeps).notify_company(_agreement(), MESSAGE)

    assert result.ok
    assert result.attempts == 3
    assert sleeps == [0.5, 1.0]


def test_unreachable_backend_gives_up_after_retry_budget() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    sleeps: List[float] = []
    result = _dispatcher(handler, sleeps=sleeps).notify_company(_agreement(), MESSAGE)

    assert result.status is DispatchStatus.unreachable
    assert isinstance(result.error, Unreachable)
    assert result.attempts == 3
    assert len(sleeps) == 2


def test_timeout_is_reported_separately_and_not_retried() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        raise httpx.ReadTimeout("too slow", request=request)

    result = _dispatcher(handler).notify_company(_agreement(), MESSAGE)

    assert result.status is DispatchStatus.timeout
    assert isinstance(result.error, DispatchTimeout)
    assert calls == 1


def test_missing_credential_omits_authorization_header() -> None:
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200)

    dispatcher = _dispatcher(handler, server_key=None)
    dispatcher.notify_company(_agreement(), MESSAGE)

    assert "Authorization" not in requests[0].headers


def test_rotate_credential_applies_to_next_request() -> None:
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200)

    dispatcher = _dispatcher(handler)
    dispatcher.rotate_credential("rotated-key")
    dispatcher.notify_company(_agreement(), MESSAGE)

    assert requests[0].headers["Authorization"] == "key=rotated-key"
    with pytest.raises(ValueError):
        dispatcher.rotate_credential("")


def test_failures_are_logged(caplog) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    with caplog.at_level("ERROR"):
        _dispatcher(handler).notify_company(_agreement(), MESSAGE)

    records = [record for record in caplog.records if record.name == "services.dispatcher"]
    assert any(getattr(record, "status_code", None) == 500 for record in records)
    assert any(getattr(record, "recipient", None) == "company" for record in records)
