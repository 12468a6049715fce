"""Error taxonomy for qwikhttp.

Every error that ends a request attempt derives from QwikHttpError and is
delivered to the caller's handler rather than raised across the async
boundary.
"""

from __future__ import annotations

from typing import Any


class QwikHttpError(Exception):
    """Base class for qwikhttp errors."""


class InvalidUrlError(QwikHttpError):
    """Raised during finalization when the URL cannot be parsed."""


class EncodingError(QwikHttpError):
    """Raised when a request body cannot be serialized."""


class TransportError(QwikHttpError):
    """Reported by a Sender (connection error, timeout, etc.)."""


class StatusError(QwikHttpError):
    """A response outside the 2xx status band.

    detail is the response body when it parses as a JSON object, otherwise
    {"Error": <raw response text>}.
    """

    def __init__(self, status_code: int, detail: dict[str, Any] | None = None) -> None:
        self.status_code = status_code
        self.detail = detail if detail is not None else {}
        super().__init__(f"Error response code {status_code}")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StatusError):
            return NotImplemented
        return self.status_code == other.status_code and self.detail == other.detail

    def __hash__(self) -> int:
        return hash(self.status_code)


class DecodeError(QwikHttpError):
    """Raised when a successful response cannot be decoded into the requested type."""


class ConfigError(QwikHttpError):
    """Raised when configuration loading fails."""
