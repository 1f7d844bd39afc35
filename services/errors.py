"""Failure types raised while ingesting samples and dispatching notifications."""

from __future__ import annotations


class InvalidSample(ValueError):
    """A speed sample that is not a finite, non-negative number."""


class DispatchError(Exception):
    """Base class for a notification that could not be delivered."""

    retryable = False


class UnresolvedRecipient(DispatchError):
    """No device token is registered for the customer."""

    def __init__(self, customer_id: str) -> None:
        super().__init__(f"No device token registered for customer {customer_id!r}.")
        self.customer_id = customer_id


class TransportRejected(DispatchError):
    """The push backend answered with a non-2xx status."""

    def __init__(self, status_code: int, detail: str = "") -> None:
        message = f"Push backend rejected the request with status {status_code}"
        super().__init__(f"{message}: {detail}" if detail else f"{message}.")
        self.status_code = status_code


class Unreachable(DispatchError):
    """The push backend could not be reached."""

    retryable = True


class DispatchTimeout(DispatchError):
    """The push backend did not answer within the configured timeout."""
