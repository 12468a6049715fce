"""Shared data models for qwikhttp.

Enums describing request configuration and the pydantic models that cross
the Sender boundary. Builders themselves are plain mutable objects; see
request_builder.py.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# Request Configuration Enums
# =============================================================================


class HttpMethod(str, Enum):
    """HTTP method of a request."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    HEAD = "HEAD"


class ParameterType(str, Enum):
    """How body parameters are encoded into the request body."""

    JSON = "json"
    FORM_ENCODED = "form_encoded"


class ResponseThread(str, Enum):
    """Where response handlers are invoked."""

    MAIN = "main"  # Posted onto the main scheduler
    BACKGROUND = "background"  # Inline on the sender's completion thread


class CachePolicy(str, Enum):
    """Cache behaviour requested from the transport."""

    USE_PROTOCOL = "use_protocol"
    RELOAD_IGNORING_CACHE = "reload_ignoring_cache"
    RETURN_CACHE_ELSE_LOAD = "return_cache_else_load"
    RETURN_CACHE_DONT_LOAD = "return_cache_dont_load"


class LoggingLevel(int, Enum):
    """Diagnostic verbosity. Each level includes everything below it."""

    NONE = 0
    ERRORS = 1
    REQUESTS = 2
    DEBUG = 3


# =============================================================================
# Transport Models
# =============================================================================


class RequestDescriptor(BaseModel):
    """A finalized, transport-ready request."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    url: str = Field(description="Absolute URL including query string")
    method: HttpMethod = Field(description="HTTP method")
    headers: dict[str, str] = Field(default_factory=dict, description="Request headers")
    body: bytes | None = Field(default=None, description="Encoded request body")
    timeout: float = Field(description="Timeout in seconds")
    cache_policy: CachePolicy = Field(
        default=CachePolicy.RELOAD_IGNORING_CACHE, description="Requested cache behaviour"
    )

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v


class TransportResponse(BaseModel):
    """Transport metadata for one completed exchange.

    Header keys are lowercase.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    status_code: int = Field(description="HTTP status code")
    headers: dict[str, str] = Field(default_factory=dict, description="Response headers")
    url: str | None = Field(default=None, description="Final URL after redirects")

    @property
    def is_success(self) -> bool:
        """True for the 2xx status band."""
        return self.status_code // 100 == 2
