from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional


_ENDPOINT_URL_ENV = "PUSH_ENDPOINT_URL"
_SERVER_KEY_ENV = "PUSH_SERVER_KEY"
_SERVER_KEY_FILE_ENV = "PUSH_SERVER_KEY_FILE"
_COMPANY_TOPIC_ENV = "PUSH_COMPANY_TOPIC"
_TIMEOUT_ENV = "PUSH_TIMEOUT_SECONDS"
_RETRY_ATTEMPTS_ENV = "DISPATCH_RETRY_ATTEMPTS"
_RETRY_BACKOFF_ENV = "DISPATCH_RETRY_BACKOFF_SECONDS"
_WORKER_COUNT_ENV = "DISPATCH_WORKER_COUNT"
_AGREEMENTS_PATH_ENV = "AGREEMENTS_PATH"
_DEVICE_TOKENS_PATH_ENV = "DEVICE_TOKENS_PATH"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    push_endpoint_url: str
    push_server_key: Optional[str]
    company_topic: str
    push_timeout: float
    retry_attempts: int
    retry_backoff: float
    dispatch_workers: int
    agreements_path: Optional[str]
    device_tokens_path: Optional[str]
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


def _read_server_key() -> Optional[str]:
    """Resolve the push credential from the environment or a mounted secret file.

    The inline variable wins over the file so a rotated key can be injected
    without touching the secret mount.
    """
    key = _read_optional_env(_SERVER_KEY_ENV, None)
    if key:
        return key
    key_file = _read_optional_env(_SERVER_KEY_FILE_ENV, None)
    if not key_file:
        return None
    try:
        contents = Path(key_file).read_text().strip()
    except OSError:
        return None
    return contents or None


@lru_cache
def get_settings() -> Settings:
    return Settings(
        push_endpoint_url=_read_str_env(_ENDPOINT_URL_ENV, "https://fcm.googleapis.com/fcm/send"),
        push_server_key=_read_server_key(),
        company_topic=_read_str_env(_COMPANY_TOPIC_ENV, "company-alerts"),
        push_timeout=_read_positive_float(_TIMEOUT_ENV, 10.0),
        retry_attempts=_read_positive_int(_RETRY_ATTEMPTS_ENV, 3),
        retry_backoff=_read_positive_float(_RETRY_BACKOFF_ENV, 0.5),
        dispatch_workers=_read_positive_int(_WORKER_COUNT_ENV, 4),
        agreements_path=_read_optional_env(_AGREEMENTS_PATH_ENV, None),
        device_tokens_path=_read_optional_env(_DEVICE_TOKENS_PATH_ENV, None),
        log_level=_read_log_level("INFO"),
    )
