"""
apipie.core.errors — Exception taxonomy for the adapter.

Every failure the adapter raises derives from ``ApipieError`` so callers can
catch the whole family at once.  Underlying ``httpx`` exceptions are chained
via ``raise ... from exc`` and remain reachable through ``__cause__``.
"""

from __future__ import annotations


class ApipieError(Exception):
    """Base class for all adapter errors."""


class ModelUnavailable(ApipieError):
    """The catalog has no available entry matching the requested model id."""

    def __init__(self, model_id: str) -> None:
        self.model_id = model_id
        super().__init__(f"Model not found or unavailable: {model_id}")


class InvalidDescriptor(ApipieError):
    """A request was shaped before a model descriptor was resolved."""

    def __init__(self, message: str = "No resolved model descriptor") -> None:
        super().__init__(message)


class TransportFailure(ApipieError):
    """
    Network, HTTP-status or stream-framing failure while talking to APIpie.

    ``status_code`` is set when the upstream answered with a non-success
    HTTP status.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class MemoryClearFailed(ApipieError):
    """The upstream rejected a session-memory clear request."""

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Failed to clear memory: {status_code} {body}")
