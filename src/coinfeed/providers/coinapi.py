import logging
from typing import Any, Callable, Optional

from websockets.asyncio.client import connect

from coinfeed.config.configurations import FeedConfig
from coinfeed.config.manager import ConfigurationManager
from coinfeed.connections import Credentials
from coinfeed.connections.sockets import ConnectionHandle, PriceSink, StreamingConnection
from coinfeed.markets.pairs import PairExchangeCodec

logger = logging.getLogger(__name__)


class CoinApiProvider:
    """CoinAPI live trade feed.

    Usage::

        provider = CoinApiProvider(EnvConfigManager())
        provider.init()  # raises ConfigurationError without COINAPI_KEY
        handle = provider.subscribe(sink, on_error, on_complete)
    """

    name = "CoinAPI"

    def __init__(
        self,
        config: ConfigurationManager,
        feed_config: Optional[FeedConfig] = None,
        connector: Callable[..., Any] = connect,
    ) -> None:
        self.config = config
        self.feed_config = feed_config or FeedConfig.from_config(config)
        self.connector = connector
        self.codec = PairExchangeCodec(self.feed_config.assets)
        self.connection: Optional[StreamingConnection] = None

    def init(self) -> None:
        credentials = Credentials(self.config)
        self.connection = StreamingConnection(
            credentials,
            codec=self.codec,
            url=self.feed_config.ws_url,
            connector=self.connector,
        )
        logger.info(
            "%s provider initialized (%s, %d assets)",
            self.name,
            self.feed_config.ws_url,
            len(self.codec.assets),
        )

    def subscribe(
        self,
        sink: PriceSink,
        on_error: Callable[[Exception], None],
        on_complete: Callable[[], None],
    ) -> ConnectionHandle:
        if self.connection is None:
            raise RuntimeError(f"{self.name} provider used before init()")
        return self.connection.open(sink, on_error, on_complete)
