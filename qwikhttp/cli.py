"""CLI entry point for qwikhttp.

Builds one request from command line arguments, sends it through the full
lifecycle and prints the debug block. Mostly useful for trying out a config
file (standard headers, filter words) against a live endpoint.
"""

from __future__ import annotations

import argparse
import logging
import sys
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from qwikhttp.config import ProcessConfig, load_config
from qwikhttp.errors import ConfigError
from qwikhttp.models import HttpMethod, LoggingLevel, ParameterType, ResponseThread
from qwikhttp.request_builder import RequestBuilder
from qwikhttp.sender import HttpxSender

# Extra time to wait beyond the request timeout before giving up on the handler
HANDLER_GRACE_SECONDS = 5.0


@dataclass
class SendArgs:
    """Parsed arguments for a single request."""

    method: HttpMethod
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    params: dict[str, str] = field(default_factory=dict)
    query: list[tuple[str, str]] = field(default_factory=list)
    form: bool = False
    data: str | None = None
    config: Path | None = None
    timeout: float | None = None
    log_level: LoggingLevel | None = None
    headers_only: bool = False


def positive_float(value: str) -> float:
    """Argument type for --timeout: seconds, strictly greater than zero."""
    try:
        seconds = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Timeout '{value}' is not a number of seconds")
    if seconds <= 0:
        raise argparse.ArgumentTypeError(f"Timeout must be greater than zero, got '{value}'")
    return seconds


def header_pair(value: str) -> tuple[str, str]:
    """Parse 'Name: value'."""
    name, sep, header_value = value.partition(":")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"Header must be 'Name: value', got '{value}'")
    return name.strip(), header_value.strip()


def key_value_pair(value: str) -> tuple[str, str]:
    """Parse 'key=value'."""
    key, sep, pair_value = value.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"Expected 'key=value', got '{value}'")
    return key, pair_value


def logging_level(value: str) -> LoggingLevel:
    try:
        return LoggingLevel[value.upper()]
    except KeyError:
        choices = ", ".join(level.name.lower() for level in LoggingLevel)
        raise argparse.ArgumentTypeError(f"Unknown level '{value}'. Choose from: {choices}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="qwikhttp",
        description="Send one HTTP request through the qwikhttp pipeline",
    )
    parser.add_argument(
        "method",
        type=str.upper,
        choices=[m.value for m in HttpMethod],
        help="HTTP method",
    )
    parser.add_argument("url", help="Request URL")
    parser.add_argument(
        "-H", "--header",
        dest="headers",
        type=header_pair,
        action="append",
        default=[],
        metavar="'NAME: VALUE'",
        help="Request header (repeatable)",
    )
    parser.add_argument(
        "-p", "--param",
        dest="params",
        type=key_value_pair,
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Body parameter (repeatable)",
    )
    parser.add_argument(
        "-q", "--query",
        type=key_value_pair,
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Query parameter appended to the URL (repeatable)",
    )
    parser.add_argument(
        "--form",
        action="store_true",
        help="Form-encode body parameters instead of JSON",
    )
    parser.add_argument("--data", help="Raw request body (wins over --param)")
    parser.add_argument("--config", type=Path, help="YAML config file")
    parser.add_argument("--timeout", type=positive_float, help="Timeout in seconds")
    parser.add_argument(
        "--log-level",
        type=logging_level,
        help="Diagnostic level: none, errors, requests, debug",
    )
    parser.add_argument(
        "--headers-only",
        action="store_true",
        help="Print only the request half of the debug block",
    )
    return parser


def parse_args(args: list[str] | None = None) -> SendArgs:
    namespace = build_parser().parse_args(args)
    return SendArgs(
        method=HttpMethod(namespace.method),
        url=namespace.url,
        headers=dict(namespace.headers),
        params=dict(namespace.params),
        query=list(namespace.query),
        form=namespace.form,
        data=namespace.data,
        config=namespace.config,
        timeout=namespace.timeout,
        log_level=namespace.log_level,
        headers_only=namespace.headers_only,
    )


def main() -> int:
    """Main entry point."""
    try:
        parsed = parse_args()
        logging.basicConfig(
            level=logging.DEBUG,
            stream=sys.stderr,
            format="%(levelname)s %(name)s: %(message)s",
        )
        return run_send(parsed)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 1


def run_send(args: SendArgs) -> int:
    """Send the request and print its debug block. Returns the exit code."""
    if args.config is not None:
        try:
            config = load_config(args.config)
        except ConfigError as e:
            print(f"Error loading config: {e}", file=sys.stderr)
            return 1
    else:
        config = ProcessConfig()

    with HttpxSender() as sender:
        builder = build_request(args, config).set_sender(sender)

        done = threading.Event()
        outcome: dict[str, Any] = {}

        def on_complete(result: Any, error: Exception | None) -> None:
            outcome["error"] = error
            done.set()

        builder.get_string_response(on_complete)
        if not done.wait(builder.timeout + HANDLER_GRACE_SECONDS):
            print("Error: no response before timeout", file=sys.stderr)
            return 1

    print(builder.get_debug_info(include_response=not args.headers_only))
    return 0 if outcome.get("error") is None else 1


def build_request(args: SendArgs, config: ProcessConfig) -> RequestBuilder:
    """Translate parsed arguments into a RequestBuilder."""
    builder = (
        RequestBuilder(args.url, args.method, config=config)
        .add_headers(args.headers)
        .add_params(args.params)
        .add_url_params(args.query)
        .set_response_thread(ResponseThread.BACKGROUND)
    )
    if args.form:
        builder.set_parameter_type(ParameterType.FORM_ENCODED)
    if args.data is not None:
        builder.set_body(args.data)
    if args.timeout is not None:
        builder.set_timeout(args.timeout)
    if args.log_level is not None:
        builder.set_logging_level(args.log_level)
    return builder


if __name__ == "__main__":
    sys.exit(main())
