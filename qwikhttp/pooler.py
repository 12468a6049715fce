"""Pooler - Runs the request lifecycle for a RequestBuilder.

For every dispatched builder the Pooler decides whether the request is
replayed from a stored result, intercepted before sending, sent, populated,
intercepted after receiving, classified, and finally delivered:

    NEW -> SHORT_CIRCUIT | FINALIZING
    FINALIZING -> FINALIZE_ERROR | REQUEST_INTERCEPTED | SENT
    SENT -> SEND_ERROR | RECEIVED
    RECEIVED -> RESPONSE_INTERCEPTED | CLASSIFIED
    CLASSIFIED -> DELIVERED

The Pooler holds no mutable state; configuration and hooks come from the
builder's ProcessConfig. Builders are single-owner: two concurrent sends of
the same builder are not supported.
"""

from __future__ import annotations

import logging
from enum import Enum
from threading import Lock
from typing import TYPE_CHECKING

from qwikhttp.errors import QwikHttpError, TransportError
from qwikhttp.hooks import RawHandler, SendObserver
from qwikhttp.models import LoggingLevel
from qwikhttp.response_reader import ResponseReader

if TYPE_CHECKING:
    from qwikhttp.models import TransportResponse
    from qwikhttp.request_builder import RequestBuilder

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    """Lifecycle stages of one logical call."""

    NEW = "new"
    SHORT_CIRCUIT = "short_circuit"
    FINALIZING = "finalizing"
    FINALIZE_ERROR = "finalize_error"
    REQUEST_INTERCEPTED = "request_intercepted"
    SENT = "sent"
    SEND_ERROR = "send_error"
    RECEIVED = "received"
    RESPONSE_INTERCEPTED = "response_intercepted"
    CLASSIFIED = "classified"
    DELIVERED = "delivered"


def log_event(builder: RequestBuilder, level: LoggingLevel, message: str) -> None:
    """Emit a diagnostic if the builder's logging level includes `level`."""
    if level == LoggingLevel.NONE or builder.logging_level < level:
        return
    if level == LoggingLevel.ERRORS:
        logger.error(message)
    elif level == LoggingLevel.REQUESTS:
        logger.info(message)
    else:
        logger.debug(message)


class Pooler:
    """Stateless orchestration engine for the request lifecycle.

    Usage:
        Pooler().send(builder, handler)  # handler(data, response, error)
    """

    def __init__(self, reader: ResponseReader | None = None) -> None:
        self._reader = reader or ResponseReader()

    def send(self, builder: RequestBuilder, handler: RawHandler) -> None:
        """Run the lifecycle; handler is called exactly once unless an interceptor takes over."""
        self._trace(builder, Stage.NEW)

        # A builder with a stored result has already been sent; replay it.
        if builder.response_data is not None or builder.response_error is not None:
            self._trace(builder, Stage.SHORT_CIRCUIT)
            handler(builder.response_data, builder.response, builder.response_error)
            return

        self._trace(builder, Stage.FINALIZING)
        try:
            descriptor = builder.finalize()
        except QwikHttpError as e:
            builder.response_error = e
            self._trace(builder, Stage.FINALIZE_ERROR)
            log_event(
                builder,
                LoggingLevel.ERRORS,
                f"Could not build request {builder.method.value} {builder.url}: {e}",
            )
            handler(None, None, e)
            return

        config = builder.config
        interceptor = config.request_interceptor
        if (
            interceptor is not None
            and not builder.avoid_request_interceptor
            and not builder.request_intercepted
            and interceptor.should_intercept(builder)
        ):
            builder.request_intercepted = True
            self._trace(builder, Stage.REQUEST_INTERCEPTED)
            log_event(
                builder,
                LoggingLevel.REQUESTS,
                f"Request intercepted: {descriptor.method.value} {descriptor.url}",
            )
            interceptor.intercept(builder, handler)
            return

        indicator = config.loading_indicator if builder.loading_title else None
        if indicator is not None:
            indicator.show(builder.loading_title)

        delivered = Lock()
        completed = False

        def on_complete(
            data: bytes | None,
            response: TransportResponse | None,
            error: Exception | None,
        ) -> None:
            nonlocal completed
            with delivered:
                if completed:
                    logger.warning(
                        "Sender called back more than once for %s %s; ignoring",
                        descriptor.method.value,
                        descriptor.url,
                    )
                    return
                completed = True
            if indicator is not None:
                indicator.hide()
            self._receive(builder, data, response, error, handler)

        sender = builder.sender or config.get_sender()
        log_event(
            builder,
            LoggingLevel.REQUESTS,
            f"Sending {descriptor.method.value} {descriptor.url}",
        )
        self._trace(builder, Stage.SENT)
        try:
            sender.send(descriptor, on_complete)
        except Exception as e:
            with delivered:
                already_completed = completed
            # Raised from inside a synchronous callback: the handler's own error.
            if already_completed:
                raise
            if isinstance(e, TransportError):
                error = e
            else:
                error = TransportError(f"Sender failed: {e}")
                error.__cause__ = e
            on_complete(None, None, error)

    def resend(self, builder: RequestBuilder, handler: RawHandler) -> None:
        """Send the builder again, discarding its stored result.

        The interception guards are left set, so a hook the builder already
        consumed is not offered it again. A server that keeps answering 401
        is therefore intercepted once and the second 401 is delivered.
        """
        builder.clear_results()
        self.send(builder, handler)

    def _receive(
        self,
        builder: RequestBuilder,
        data: bytes | None,
        response: TransportResponse | None,
        error: Exception | None,
        handler: RawHandler,
    ) -> None:
        if error is not None and response is None:
            self._trace(builder, Stage.SEND_ERROR)
        else:
            self._trace(builder, Stage.RECEIVED)

        self._reader.populate(builder, data, response, error)

        interceptor = builder.config.response_interceptor
        if (
            response is not None
            and interceptor is not None
            and not builder.response_intercepted
            and not builder.avoid_response_interceptor
            and interceptor.should_intercept(response)
        ):
            builder.response_intercepted = True
            self._trace(builder, Stage.RESPONSE_INTERCEPTED)
            log_event(
                builder,
                LoggingLevel.REQUESTS,
                f"Response intercepted: {response.status_code} for "
                f"{builder.method.value} {builder.url}",
            )
            if isinstance(interceptor, SendObserver):
                interceptor.did_send(builder)
            interceptor.intercept(builder, handler)
            return

        final_error = builder.response_error
        if final_error is None and (response is None or not response.is_success):
            # Sender contract violation: no response and no error.
            final_error = TransportError("No response received")
            builder.response_error = final_error

        self._trace(builder, Stage.CLASSIFIED)
        if final_error is not None:
            log_event(builder, LoggingLevel.ERRORS, builder.get_debug_info())
        else:
            log_event(
                builder,
                LoggingLevel.REQUESTS,
                f"Completed {builder.method.value} {builder.url} "
                f"with {builder.response_status_code}",
            )

        self._trace(builder, Stage.DELIVERED)
        handler(data, response, final_error)

    @staticmethod
    def _trace(builder: RequestBuilder, stage: Stage) -> None:
        builder.stage = stage
        log_event(
            builder,
            LoggingLevel.DEBUG,
            f"[{stage.value}] {builder.method.value} {builder.url}",
        )


default_pooler = Pooler()
