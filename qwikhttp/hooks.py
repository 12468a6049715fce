"""Process-wide hooks: interceptors and the loading indicator.

Interceptors can veto normal pipeline progression. An interceptor that takes
control owns the handler from then on and must eventually call it, usually
after mutating the builder and calling builder.resend(handler).

A response interceptor that also wants to observe responses without vetoing
mixes in SendObserver; the Pooler only calls the observer methods on
instances of that class.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from qwikhttp.models import TransportResponse
    from qwikhttp.request_builder import RequestBuilder

# (data, response, error) - the raw completion contract used by the Pooler
RawHandler = Callable[
    [bytes | None, "TransportResponse | None", "Exception | None"], None
]


class RequestInterceptor(ABC):
    """Intercepts requests before they reach the Sender."""

    @abstractmethod
    def should_intercept(self, builder: RequestBuilder) -> bool:
        """Return True to take control of this request."""

    @abstractmethod
    def intercept(self, builder: RequestBuilder, handler: RawHandler) -> None:
        """Take ownership of completing the request."""


class ResponseInterceptor(ABC):
    """Intercepts responses before they are classified and delivered.

    Typical use: on a 401, refresh a credential, update the builder's
    Authorization header, then call builder.resend(handler). Do not call
    builder.reset() first: it clears the guard that stops a server which
    keeps answering 401 from being intercepted forever.
    """

    @abstractmethod
    def should_intercept(self, response: TransportResponse) -> bool:
        """Return True to take control of this response."""

    @abstractmethod
    def intercept(self, builder: RequestBuilder, handler: RawHandler) -> None:
        """Take ownership of completing the request."""


class SendObserver(ABC):
    """Optional capability for response interceptors.

    did_receive is called for every populated response, before interception
    is considered. did_send is called right before an intercepting hand-off.
    Neither can alter control flow; both are no-ops unless overridden.
    """

    def did_receive(self, builder: RequestBuilder) -> None:
        """Observe a response without vetoing."""

    def did_send(self, builder: RequestBuilder) -> None:
        """Observe a request about to be handed to intercept()."""


class LoadingIndicator(ABC):
    """Presentation hook bracketing the network exchange of titled requests."""

    @abstractmethod
    def show(self, title: str) -> None: ...

    @abstractmethod
    def hide(self) -> None: ...
