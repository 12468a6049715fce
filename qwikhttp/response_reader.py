"""ResponseReader - Writes a completed exchange onto its RequestBuilder.

Populating happens before response interception, so an interceptor sees the
builder's response_* fields already filled in.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from qwikhttp.errors import StatusError
from qwikhttp.hooks import SendObserver

if TYPE_CHECKING:
    from qwikhttp.models import TransportResponse
    from qwikhttp.request_builder import RequestBuilder

logger = logging.getLogger(__name__)


def decode_response_string(data: bytes | None) -> str | None:
    """UTF-8 decode, or None when data is missing or not valid UTF-8."""
    if data is None:
        return None
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return None


def build_status_error(status_code: int, data: bytes | None) -> StatusError:
    """Synthesize the error for a response outside the 2xx band.

    The response body becomes the detail when it is a JSON object; otherwise
    the raw text is stored under the "Error" key.
    """
    text = decode_response_string(data) or ""
    detail: dict[str, Any]
    try:
        parsed = json.loads(text) if text else None
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict):
        detail = parsed
    else:
        detail = {"Error": text}
    return StatusError(status_code, detail)


class ResponseReader:
    """Populates a builder's result fields from one exchange."""

    def populate(
        self,
        builder: RequestBuilder,
        data: bytes | None,
        response: TransportResponse | None,
        error: Exception | None,
    ) -> None:
        builder.response_data = data
        builder.response_error = error
        builder.response_string = decode_response_string(data)
        builder.response = response

        if response is not None:
            builder.response_status_code = response.status_code
            if not response.is_success and error is None:
                builder.response_error = build_status_error(response.status_code, data)

        interceptor = builder.config.response_interceptor
        if isinstance(interceptor, SendObserver):
            interceptor.did_receive(builder)
