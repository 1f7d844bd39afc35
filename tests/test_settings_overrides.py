from __future__ import annotations

import json
from typing import Iterable

from datastore.agreement_store import build_default_store
from datastore.device_directory import build_default_directory
from services.dispatcher import build_default_dispatcher
from services.monitor import build_default_monitor
from settings import get_settings

_CACHES = (
    get_settings,
    build_default_store,
    build_default_directory,
    build_default_dispatcher,
    build_default_monitor,
)


def _clear_caches(caches: Iterable) -> None:
    for cache in caches:
        cache.cache_clear()


def test_environment_overrides_apply(monkeypatch, tmp_path) -> None:
    agreements_path = tmp_path / "agreements.json"
    agreements_path.write_text(
        json.dumps(
            [
                {
                    "id": "rental1",
                    "asset_id": "vehicle123",
                    "customer_id": "customerABC",
                    "speed_limit": 60,
                    "start_time": "2024-01-01T00:00:00Z",
                    "end_time": "2099-01-01T00:00:00Z",
                }
            ]
        )
    )
    tokens_path = tmp_path / "tokens.json"

    monkeypatch.setenv("PUSH_ENDPOINT_URL", "https://push.example.test/send")
    monkeypatch.setenv("PUSH_SERVER_KEY", "env-key")
    monkeypatch.setenv("PUSH_COMPANY_TOPIC", "fleet-ops")
    monkeypatch.setenv("PUSH_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("DISPATCH_RETRY_ATTEMPTS", "5")
    monkeypatch.setenv("DISPATCH_RETRY_BACKOFF_SECONDS", "not-a-number")
    monkeypatch.setenv("DISPATCH_WORKER_COUNT", "2")
    monkeypatch.setenv("AGREEMENTS_PATH", str(agreements_path))
    monkeypatch.setenv("DEVICE_TOKENS_PATH", str(tokens_path))
    monkeypatch.setenv("LOG_LEVEL", "debug")

    _clear_caches(_CACHES)
    monitor = build_default_monitor()

    try:
        settings = get_settings()
        assert settings.push_timeout == 2.5
        assert settings.retry_backoff == 0.5
        assert settings.log_level == "DEBUG"

        dispatcher = monitor.dispatcher
        assert dispatcher.endpoint_url == "https://push.example.test/send"
        assert dispatcher.company_topic == "fleet-ops"
        assert dispatcher.retry_attempts == 5
        assert dispatcher.directory.persistence_path == tokens_path
        assert monitor.store.seed_path == agreements_path
        assert monitor.store.get("rental1") is not None
        assert monitor.feed.subscriptions() == ["vehicle123"]
        assert monitor.worker is not None
        assert monitor.worker.executor._max_workers == 2
    finally:
        monitor.shutdown()
        _clear_caches(_CACHES)


def test_server_key_can_come_from_file(monkeypatch, tmp_path) -> None:
    key_file = tmp_path / "server.key"
    key_file.write_text("file-key\n")
    monkeypatch.delenv("PUSH_SERVER_KEY", raising=False)
    monkeypatch.setenv("PUSH_SERVER_KEY_FILE", str(key_file))

    get_settings.cache_clear()
    try:
        assert get_settings().push_server_key == "file-key"
    finally:
        get_settings.cache_clear()


def test_blank_values_fall_back_to_defaults(monkeypatch) -> None:
    monkeypatch.setenv("PUSH_COMPANY_TOPIC", "  ")
    monkeypatch.setenv("DISPATCH_WORKER_COUNT", "0")
    monkeypatch.delenv("PUSH_SERVER_KEY", raising=False)
    monkeypatch.delenv("PUSH_SERVER_KEY_FILE", raising=False)

    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert settings.company_topic == "company-alerts"
        assert settings.dispatch_workers == 4
        assert settings.push_server_key is None
    finally:
        get_settings.cache_clear()
