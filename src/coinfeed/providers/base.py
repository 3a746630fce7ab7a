from typing import Callable, Protocol

from coinfeed.connections.sockets import ConnectionHandle, PriceSink


class LiveFeedProvider(Protocol):
    """A real-time price source.

    ``init()`` validates configuration and is the only call allowed to raise
    (``ConfigurationError``). ``subscribe()`` starts one connection whose
    termination is reported through exactly one of the two callbacks.
    """

    name: str

    def init(self) -> None: ...

    def subscribe(
        self,
        sink: PriceSink,
        on_error: Callable[[Exception], None],
        on_complete: Callable[[], None],
    ) -> ConnectionHandle: ...
