import logging
from typing import Optional, Protocol

import polars as pl

from coinfeed.messaging.models.events import PriceUpdateEvent

logger = logging.getLogger(__name__)

PRICE_SCHEMA = {
    "pair": pl.Utf8,
    "exchange": pl.Utf8,
    "from_asset": pl.Utf8,
    "to_asset": pl.Utf8,
    "price": pl.Float64,
}


class EventProcessor(Protocol):
    """Protocol for event processors"""

    name: str

    def process_event(self, event: PriceUpdateEvent) -> None: ...

    async def close(self) -> None: ...


def event_row(event: PriceUpdateEvent) -> dict:
    pair = event.pair_exchange_id
    return {
        "pair": pair.key,
        "exchange": pair.exchange,
        "from_asset": pair.from_asset,
        "to_asset": pair.to_asset,
        "price": event.price,
    }


class LatestPriceProcessor:
    """In-memory table holding the latest price per pair exchange.

    Each event replaces the row for its pair, so the table never grows past
    the number of pairs seen.
    """

    name = "latest"

    def __init__(self) -> None:
        self.pl = pl.DataFrame(schema=PRICE_SCHEMA)

    def process_event(self, event: PriceUpdateEvent) -> None:
        self.pl = (
            self.pl.vstack(pl.DataFrame([event_row(event)], schema=PRICE_SCHEMA))
            .unique(subset=["pair"], keep="last", maintain_order=True)
        )

    def last(self, pair_key: str) -> Optional[float]:
        rows = self.pl.filter(pl.col("pair") == pair_key)
        if rows.is_empty():
            return None
        return rows["price"].to_list()[-1]

    async def close(self) -> None:
        pass

    @property
    def df(self) -> pl.DataFrame:
        return self.pl
