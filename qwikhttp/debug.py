"""Debug output for requests, with redaction of sensitive values.

The debug block is a human-readable string, not a wire format. When filtering
is enabled, values for any configured filter word are replaced with
[FILTERED], both in the header map (case-insensitive key match) and in
"key": value pairs inside body and response text.
"""

from __future__ import annotations

import re
from typing import Iterable, Mapping

FILTERED = "[FILTERED]"

# A JSON value: quoted string (with escapes), or a bare token such as a number,
# true/false/null.
_JSON_VALUE = r'(?:"(?:[^"\\]|\\.)*"|[^,}\]\s]+)'


def filter_headers(headers: Mapping[str, str], filter_words: Iterable[str]) -> dict[str, str]:
    """Return a copy of headers with filtered values replaced."""
    words = {w.lower() for w in filter_words}
    return {key: (FILTERED if key.lower() in words else value) for key, value in headers.items()}


def filter_text(text: str, filter_words: Iterable[str]) -> str:
    """Replace the value of every "word": value pair in JSON-like text."""
    for word in filter_words:
        pattern = re.compile(
            r'("' + re.escape(word) + r'"\s*:\s*)' + _JSON_VALUE,
            re.IGNORECASE,
        )
        text = pattern.sub(lambda m: m.group(1) + '"' + FILTERED + '"', text)
    return text


def format_debug_info(
    method: str,
    url: str,
    headers: Mapping[str, str],
    body: str | None,
    status_code: int | None = None,
    response_text: str | None = None,
    error: BaseException | None = None,
    include_response: bool = True,
    filter_words: Iterable[str] = (),
) -> str:
    """Build the debug block for one request.

    Args:
        method: HTTP method name.
        url: Request URL.
        headers: Request headers.
        body: Request body text, if any.
        status_code: Response status code (0 or None if no response yet).
        response_text: Response body text.
        error: Error delivered for the request.
        include_response: When False, only the request half is included.
        filter_words: Keys whose values are redacted. Empty disables filtering.

    Returns:
        Multi-line debug string.
    """
    words = list(filter_words)
    lines = ["----- QwikHttp Request -----", f"{method} {url}"]

    shown_headers = filter_headers(headers, words) if words else dict(headers)
    if shown_headers:
        lines.append("HEADERS:")
        lines.extend(f"{key}: {value}" for key, value in shown_headers.items())

    if body:
        lines.append("BODY:")
        lines.append(filter_text(body, words) if words else body)

    if include_response:
        if status_code:
            lines.append(f"RESPONSE CODE: {status_code}")
        if response_text:
            lines.append("RESPONSE:")
            lines.append(filter_text(response_text, words) if words else response_text)
        if error is not None:
            lines.append("ERROR:")
            lines.append(f"{type(error).__name__}: {error}")

    lines.append("----------------------------")
    return "\n".join(lines)
