"""One CoinAPI websocket stream of price updates.

Each ``open()`` starts a fresh connection on its own asyncio task and returns a
``ConnectionHandle``. The stream ends in exactly one of three ways:

    - ``on_error(exc)``: transport failure, or an ``error`` frame from CoinAPI
      (this is also how a bad API key is reported)
    - ``on_complete()``: the provider closed the socket cleanly
    - ``handle.cancel()``: no callback at all

Once ``cancel()`` has been called, neither the sink nor the termination
callbacks fire again for that handle, even for frames already received.

WebSocket Docs: https://docs.coinapi.io/market-data/websocket-api
"""

import asyncio
import itertools
import logging
from typing import Any, Callable, Optional

from pydantic import ValidationError
from websockets.asyncio.client import connect
from websockets.exceptions import WebSocketException

from coinfeed.common.exceptions import ApplicationError, TransportError
from coinfeed.config.configurations import COINAPI_WS_URL
from coinfeed.config.enumerations import ConnectionState
from coinfeed.connections import Credentials
from coinfeed.markets.pairs import PairExchangeCodec
from coinfeed.messaging.models.events import PriceUpdateEvent
from coinfeed.messaging.models.messages import (
    ErrorFrame,
    HelloModel,
    TradeFrame,
    parse_frame,
)

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_SECONDS = 10

PriceSink = Callable[[PriceUpdateEvent], None]
ErrorCallback = Callable[[Exception], None]
CompleteCallback = Callable[[], None]

connection_ids = itertools.count(1)


class ConnectionHandle:
    """Owner's view of one connection attempt."""

    def __init__(self, connection_id: int) -> None:
        self.connection_id = connection_id
        self.state = ConnectionState.UNCONNECTED
        self.cancelled = False
        self.task: Optional[asyncio.Task] = None

    def __repr__(self) -> str:
        return f"ConnectionHandle(id={self.connection_id}, state={self.state.value})"

    @property
    def active(self) -> bool:
        return self.state is not ConnectionState.CLOSED

    def advance(self, state: ConnectionState) -> None:
        """Move forward in the lifecycle unless already closed."""
        if self.active:
            self.state = state

    def cancel(self) -> None:
        """Close the connection without signalling. Safe to call repeatedly."""
        if self.cancelled:
            return

        self.cancelled = True
        was_active = self.active
        self.state = ConnectionState.CLOSED

        if self.task is not None and not self.task.done():
            self.task.cancel()

        if was_active:
            logger.info("Connection %d cancelled", self.connection_id)

    def claim_termination(self) -> bool:
        """Close the handle; True only for the first terminal outcome."""
        if not self.active:
            return False
        self.state = ConnectionState.CLOSED
        return True

    async def wait_closed(self) -> None:
        """Wait for the connection task (and its socket) to finish."""
        if self.task is not None:
            await asyncio.wait([self.task])


class StreamingConnection:
    """Opens CoinAPI trade streams for the configured asset universe."""

    def __init__(
        self,
        credentials: Credentials,
        codec: Optional[PairExchangeCodec] = None,
        url: str = COINAPI_WS_URL,
        connector: Callable[..., Any] = connect,
        open_timeout: float = CONNECT_TIMEOUT_SECONDS,
    ) -> None:
        self.credentials = credentials
        self.codec = codec or PairExchangeCodec()
        self.url = url
        self.connector = connector
        self.open_timeout = open_timeout

    def hello(self) -> HelloModel:
        return HelloModel(
            apikey=self.credentials.api_key,
            heartbeat=False,
            subscribe_data_type=["trade"],
            subscribe_filter_asset_id=sorted(self.codec.assets),
        )

    def open(
        self,
        sink: PriceSink,
        on_error: ErrorCallback,
        on_complete: CompleteCallback,
    ) -> ConnectionHandle:
        """Start streaming in the background and return its handle.

        Must be called from a running event loop.
        """
        handle = ConnectionHandle(next(connection_ids))
        handle.task = asyncio.create_task(
            self.stream(handle, sink, on_error, on_complete),
            name=f"coinapi_stream_{handle.connection_id}",
        )
        return handle

    async def stream(
        self,
        handle: ConnectionHandle,
        sink: PriceSink,
        on_error: ErrorCallback,
        on_complete: CompleteCallback,
    ) -> None:
        error: Optional[Exception] = None

        try:
            async with self.connector(self.url, open_timeout=self.open_timeout) as websocket:
                handle.advance(ConnectionState.OPEN)
                await websocket.send(self.hello().model_dump_json())
                logger.info(
                    "Connection %d open - subscribed to %d assets",
                    handle.connection_id,
                    len(self.codec.assets),
                )
                handle.advance(ConnectionState.STREAMING)

                async for message in websocket:
                    if not handle.active:
                        break

                    frame = parse_frame(message)

                    if isinstance(frame, ErrorFrame):
                        # Signal before the close handshake, which may be slow
                        self.terminate(
                            handle, ApplicationError(frame.message), on_error, on_complete
                        )
                        break

                    if isinstance(frame, TradeFrame):
                        event = self.to_event(frame)
                        if event is not None and handle.active:
                            sink(event)

        except asyncio.CancelledError:
            logger.info("Connection %d listener stopped", handle.connection_id)
            return
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            error = TransportError(f"{type(e).__name__}: {e}", e)
        except Exception as e:
            logger.exception("Connection %d listener failed", handle.connection_id)
            error = e

        self.terminate(handle, error, on_error, on_complete)

    def terminate(
        self,
        handle: ConnectionHandle,
        error: Optional[Exception],
        on_error: ErrorCallback,
        on_complete: CompleteCallback,
    ) -> None:
        if not handle.claim_termination():
            return

        if error is not None:
            logger.warning("Connection %d failed: %s", handle.connection_id, error)
            on_error(error)
        else:
            logger.info("Connection %d closed by provider", handle.connection_id)
            on_complete()

    def to_event(self, frame: TradeFrame) -> Optional[PriceUpdateEvent]:
        pair = self.codec.decode(frame.symbol_id)
        if pair is None:
            return None

        try:
            return PriceUpdateEvent(pair_exchange_id=pair, price=frame.price)
        except ValidationError as e:
            logger.debug("Dropping trade for %s: %s", frame.symbol_id, e)
            return None
