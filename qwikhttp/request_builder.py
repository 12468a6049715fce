"""RequestBuilder - Declarative specification of one HTTP call.

Every setter mutates the builder and returns it, so a request reads as a
single chained expression:

    (RequestBuilder("https://api.example.com/items", HttpMethod.POST)
        .add_header("Authorization", f"Bearer {token}")
        .set_object(Item(name="widget"))
        .get_response(Item, on_item))

Sending hands the builder to the Pooler. Results are written back onto the
builder (response_data, response_error, response_status_code, response,
response_string). A builder with a stored result replays it on the next send
until reset() is called.
"""

from __future__ import annotations

import asyncio
from concurrent.futures import Future
from typing import TYPE_CHECKING, Any, Callable, Mapping, TypeVar
from urllib.parse import unquote_plus, urlencode, urlsplit, urlunsplit

import httpx

from qwikhttp.config import ProcessConfig, get_config
from qwikhttp.debug import format_debug_info
from qwikhttp.errors import DecodeError, EncodingError, InvalidUrlError
from qwikhttp.models import (
    CachePolicy,
    HttpMethod,
    LoggingLevel,
    ParameterType,
    RequestDescriptor,
    ResponseThread,
)
from qwikhttp.pooler import Pooler, Stage, default_pooler, log_event

if TYPE_CHECKING:
    from qwikhttp.hooks import RawHandler
    from qwikhttp.models import TransportResponse
    from qwikhttp.sender import Sender

T = TypeVar("T")

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
JSON_CONTENT_TYPE = "application/json"

# handler(result, error)
ResultHandler = Callable[[Any, "Exception | None"], None]


class RequestBuilder:
    """One logical HTTP call: configuration, dispatch and result.

    Not safe for concurrent sends; use one builder per call.
    """

    def __init__(
        self,
        url: str,
        method: HttpMethod | str = HttpMethod.GET,
        config: ProcessConfig | None = None,
        pooler: Pooler | None = None,
    ) -> None:
        """Initialize the builder with defaults taken from config.

        Args:
            url: Request URL. Query parameters may be appended later.
            method: HTTP method (enum or name, case-insensitive).
            config: Configuration to use. Defaults to the process-wide config.
            pooler: Lifecycle engine. Defaults to the shared stateless Pooler.
        """
        self.config = config if config is not None else get_config()
        self._pooler = pooler or default_pooler

        self.url = url
        self.method = HttpMethod(method.upper()) if isinstance(method, str) else method
        self.headers: dict[str, str] = {}
        self.params: dict[str, Any] = {}
        self.body: bytes | None = None

        self.parameter_type = self.config.default_parameter_type
        self.cache_policy = self.config.default_cache_policy
        self.timeout = self.config.default_timeout
        self.loading_title = self.config.default_loading_title
        self.response_thread = self.config.default_response_thread
        self.logging_level = self.config.default_logging_level
        self.sender: Sender | None = None

        self.avoid_standard_headers = False
        self.avoid_request_interceptor = False
        self.avoid_response_interceptor = False
        self.request_intercepted = False
        self.response_intercepted = False
        self.stage = Stage.NEW

        self.response_data: bytes | None = None
        self.response_error: Exception | None = None
        self.response_status_code = 0
        self.response: TransportResponse | None = None
        self.response_string: str | None = None

    def __repr__(self) -> str:
        return f"RequestBuilder({self.method.value} {self.url}, stage={self.stage.value})"

    @property
    def was_intercepted(self) -> bool:
        """True once either interceptor has taken control of this builder.

        Each hook has its own guard (request_intercepted, response_intercepted)
        so a request the request interceptor replayed can still be taken by
        the response interceptor. Assigning sets both guards.
        """
        return self.request_intercepted or self.response_intercepted

    @was_intercepted.setter
    def was_intercepted(self, value: bool) -> None:
        self.request_intercepted = value
        self.response_intercepted = value

    # =========================================================================
    # Configuration
    # =========================================================================

    def add_param(self, key: str, value: Any) -> RequestBuilder:
        """Add a body parameter. None values are ignored."""
        if value is not None:
            self.params[key] = value
        return self

    def add_params(self, params: Mapping[str, Any] | None) -> RequestBuilder:
        if params:
            self.params.update(params)
        return self

    def add_header(self, key: str, value: str | None) -> RequestBuilder:
        """Set a header. None values are ignored; the last write wins."""
        if value is not None:
            self.headers[key] = value
        return self

    def add_headers(self, headers: Mapping[str, str] | None) -> RequestBuilder:
        if headers:
            self.headers.update(headers)
        return self

    def add_url_param(self, key: str, value: str | None) -> RequestBuilder:
        """Append one URL-encoded query parameter. None values are ignored."""
        if value is None:
            return self
        return self.add_url_params({key: value})

    def add_url_params(self, params: Mapping[str, str] | list[tuple[str, str]]) -> RequestBuilder:
        """Append URL-encoded query parameters to the URL, in order."""
        pairs = list(params.items()) if isinstance(params, Mapping) else list(params)
        if not pairs:
            return self
        separator = "&" if "?" in self.url else "?"
        self.url = self.url + separator + urlencode(pairs)
        return self

    def remove_url_param(self, key: str) -> RequestBuilder:
        """Remove every query parameter named key from the URL.

        The remaining parameters keep their original encoding.
        """
        parts = urlsplit(self.url)
        segments = parts.query.split("&") if parts.query else []
        kept = [s for s in segments if unquote_plus(s.partition("=")[0]) != key]
        if len(kept) != len(segments):
            self.url = urlunsplit(parts._replace(query="&".join(kept)))
        return self

    def set_object(self, obj: Any) -> RequestBuilder:
        """Use a domain object's fields as JSON body parameters."""
        if obj is not None:
            self.add_params(self.config.codec.to_dict(obj))
            self.parameter_type = ParameterType.JSON
        return self

    def set_objects(self, objects: list[Any] | None) -> RequestBuilder:
        """Send a list of domain objects as a JSON array body."""
        if objects is not None:
            self.body = self.config.codec.encode(list(objects))
            self.headers["Content-Type"] = JSON_CONTENT_TYPE
        return self

    def set_body(self, body: bytes | str | None) -> RequestBuilder:
        """Set the raw body. A raw body always wins over body parameters."""
        self.body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def set_parameter_type(self, parameter_type: ParameterType) -> RequestBuilder:
        self.parameter_type = parameter_type
        return self

    def set_cache_policy(self, policy: CachePolicy) -> RequestBuilder:
        self.cache_policy = policy
        return self

    def set_timeout(self, timeout: float) -> RequestBuilder:
        """Set the timeout in seconds; non-positive values reset to the default."""
        self.timeout = timeout if timeout > 0 else self.config.default_timeout
        return self

    def set_loading_title(self, title: str | None) -> RequestBuilder:
        """Title for the loading indicator. None shows no indicator."""
        self.loading_title = title
        return self

    def set_response_thread(self, response_thread: ResponseThread) -> RequestBuilder:
        self.response_thread = response_thread
        return self

    def set_logging_level(self, level: LoggingLevel) -> RequestBuilder:
        self.logging_level = level
        return self

    def set_sender(self, sender: Sender | None) -> RequestBuilder:
        """Use a specific Sender for this request instead of the configured one."""
        self.sender = sender
        return self

    def set_avoid_standard_headers(self, avoid: bool = True) -> RequestBuilder:
        self.avoid_standard_headers = avoid
        return self

    def set_avoid_request_interceptor(self, avoid: bool = True) -> RequestBuilder:
        self.avoid_request_interceptor = avoid
        return self

    def set_avoid_response_interceptor(self, avoid: bool = True) -> RequestBuilder:
        """Skip the response interceptor, e.g. for a logout call that would recurse."""
        self.avoid_response_interceptor = avoid
        return self

    # =========================================================================
    # Finalization
    # =========================================================================

    def finalize(self) -> RequestDescriptor:
        """Resolve the builder into a transport-ready request.

        Body precedence: raw body, then form-encoded params, then JSON params.
        Form encoding needs every param value to be a str; otherwise the
        builder silently switches parameter_type to JSON and encodes the
        params as JSON instead. The resolved body and its Content-Type are
        recorded on the builder so get_body() shows what is sent.

        Raises:
            InvalidUrlError: If the URL cannot be parsed.
            EncodingError: If the params cannot be serialized as JSON.
        """
        try:
            parsed = httpx.URL(self.url)
        except (httpx.InvalidURL, TypeError) as e:
            raise InvalidUrlError(f"Invalid URL '{self.url}': {e}") from e
        if not parsed.scheme or not parsed.host:
            raise InvalidUrlError(f"Invalid URL '{self.url}': missing scheme or host")

        body: bytes | None = None
        content_type: str | None = None

        if self.body is not None:
            body = self.body
        elif self.parameter_type == ParameterType.FORM_ENCODED and self.params:
            if all(isinstance(value, str) for value in self.params.values()):
                body = urlencode(list(self.params.items())).encode("utf-8")
                content_type = FORM_CONTENT_TYPE
            else:
                self.parameter_type = ParameterType.JSON

        # Not an elif: the form branch above may have switched to JSON.
        if body is None and self.parameter_type == ParameterType.JSON and self.params:
            body = self.config.codec.encode_value(self.params)
            content_type = JSON_CONTENT_TYPE

        if content_type is not None:
            for key in [k for k in self.headers if k.lower() == "content-type"]:
                del self.headers[key]
            self.headers["Content-Type"] = content_type
        self.body = body

        return RequestDescriptor(
            url=self.url,
            method=self.method,
            headers=self.effective_headers(),
            body=body,
            timeout=self.timeout,
            cache_policy=self.cache_policy,
        )

    def effective_headers(self) -> dict[str, str]:
        """Builder headers plus standard headers not explicitly overridden."""
        headers = dict(self.headers)
        if not self.avoid_standard_headers:
            explicit = {key.lower() for key in headers}
            for key, value in self.config.standard_headers.items():
                if key.lower() not in explicit:
                    headers[key] = value
        return headers

    def get_body(self) -> str | None:
        """The body as text (after finalize, exactly what the transport sends)."""
        if self.body is None:
            return None
        return self.body.decode("utf-8", errors="replace")

    # =========================================================================
    # Sending and Response Handlers
    # =========================================================================

    def get_response(self, type_: type[T], handler: ResultHandler) -> None:
        """Send and deliver (T, None) or (None, error)."""
        codec = self.config.codec
        self._fetch(lambda data: codec.decode(type_, data), handler)

    def get_array_response(self, type_: type[T], handler: ResultHandler) -> None:
        """Send and deliver (list[T], None) or (None, error)."""
        codec = self.config.codec
        self._fetch(lambda data: codec.decode_array(type_, data), handler)

    def get_string_response(self, handler: ResultHandler) -> None:
        self._fetch(_decode_string, handler)

    def get_data_response(self, handler: ResultHandler) -> None:
        self._fetch(lambda data: data if data is not None else b"", handler)

    def get_dictionary_response(self, handler: ResultHandler) -> None:
        codec = self.config.codec
        self._fetch(lambda data: codec.decode(dict[str, Any], data), handler)

    def send(self, handler: Callable[[bool], None] | None = None) -> None:
        """Send, optionally reporting only success or failure."""

        def on_complete(
            data: bytes | None,
            response: TransportResponse | None,
            error: Exception | None,
        ) -> None:
            if handler is not None:
                self.determine_thread(lambda: handler(error is None))

        self._pooler.send(self, on_complete)

    def resend(self, handler: RawHandler) -> None:
        """Send again with the current configuration; used by interceptors.

        The previous result is discarded but the interception guards stay set.
        """
        self._pooler.resend(self, handler)

    def clear_results(self) -> RequestBuilder:
        """Discard the stored result so the next send reaches the Sender."""
        self.response_data = None
        self.response_error = None
        self.response_status_code = 0
        self.response = None
        self.response_string = None
        self.stage = Stage.NEW
        return self

    def reset(self) -> RequestBuilder:
        """Clear results and both interception guards; configuration is kept."""
        self.clear_results()
        self.was_intercepted = False
        return self

    def determine_thread(
        self,
        callback: Callable[[], None],
        response_thread: ResponseThread | None = None,
    ) -> None:
        """Run callback on the main scheduler or inline, per response_thread."""
        thread = response_thread or self.response_thread
        if thread == ResponseThread.MAIN:
            self.config.main_scheduler.post(callback)
        else:
            callback()

    def _fetch(
        self,
        decode: Callable[[bytes | None], Any],
        handler: ResultHandler,
        response_thread: ResponseThread | None = None,
    ) -> None:
        def on_complete(
            data: bytes | None,
            response: TransportResponse | None,
            error: Exception | None,
        ) -> None:
            if error is not None:
                self.determine_thread(lambda: handler(None, error), response_thread)
                return
            try:
                result = decode(data)
            except DecodeError as e:
                log_event(
                    self,
                    LoggingLevel.ERRORS,
                    f"Could not parse response: {e}\n{self.get_debug_info()}",
                )
                self.determine_thread(lambda: handler(None, e), response_thread)
                return
            self.determine_thread(lambda: handler(result, None), response_thread)

        self._pooler.send(self, on_complete)

    # =========================================================================
    # Blocking and Awaitable Adapters
    # =========================================================================

    def response_future(self, type_: type[T]) -> Future:
        """Send and return a Future resolved with T or failed with the error.

        Delivery bypasses the main scheduler so waiting on the Future cannot
        deadlock the main thread.
        """
        codec = self.config.codec
        return self._future(lambda data: codec.decode(type_, data))

    def array_response_future(self, type_: type[T]) -> Future:
        codec = self.config.codec
        return self._future(lambda data: codec.decode_array(type_, data))

    async def fetch(self, type_: type[T]) -> T:
        """Await the decoded response; raises the delivered error."""
        return await asyncio.wrap_future(self.response_future(type_))

    async def fetch_array(self, type_: type[T]) -> list[T]:
        return await asyncio.wrap_future(self.array_response_future(type_))

    def _future(self, decode: Callable[[bytes | None], Any]) -> Future:
        future: Future = Future()

        def handler(result: Any, error: Exception | None) -> None:
            if future.cancelled():
                return
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(result)

        self._fetch(decode, handler, ResponseThread.BACKGROUND)
        return future

    # =========================================================================
    # Debugging
    # =========================================================================

    def get_debug_info(self, include_response: bool = True) -> str:
        """Human-readable request/response block with filter words redacted."""
        filter_words = self.config.filter_words if self.config.filter_debug_output else []
        body = self.get_body()
        if body is None and self.params:
            try:
                body = self.config.codec.encode_value(self.params).decode("utf-8")
            except EncodingError:
                body = repr(self.params)
        return format_debug_info(
            method=self.method.value,
            url=self.url,
            headers=self.effective_headers(),
            body=body,
            status_code=self.response_status_code,
            response_text=self.response_string,
            error=self.response_error,
            include_response=include_response,
            filter_words=filter_words,
        )


def _decode_string(data: bytes | None) -> str:
    if data is None:
        return ""
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"Could not decode response as UTF-8: {e}") from e
