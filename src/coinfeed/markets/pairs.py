"""Mapping between pair exchanges and CoinAPI wire symbols.

CoinAPI names instruments ``EXCHANGE_TYPE_BASE_QUOTE``, e.g.
``KRAKEN_SPOT_BTC_USD``. Only spot instruments whose two assets are in the
supported set have a canonical ``PairExchangeId``.
"""

import logging
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from coinfeed.common.exceptions import EncodingError

logger = logging.getLogger(__name__)

WIRE_SEPARATOR = "_"
SPOT_MARKER = "SPOT"

CRYPTO_ASSETS = (
    "BTC",
    "ETH",
    "LTC",
    "XRP",
    "BCH",
    "ETC",
    "DASH",
    "ZEC",
    "XMR",
    "DOGE",
    "XLM",
    "ADA",
    "DOT",
    "SOL",
    "LINK",
    "USDT",
    "USDC",
)

FIAT_ASSETS = (
    "USD",
    "EUR",
    "GBP",
    "JPY",
    "CHF",
    "CAD",
    "AUD",
    "KRW",
)

SUPPORTED_ASSETS: tuple[str, ...] = CRYPTO_ASSETS + FIAT_ASSETS


class PairExchangeId(BaseModel):
    """A tradable spot pair on one exchange, e.g. BTC/USD on KRAKEN."""

    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)

    exchange: str = Field(min_length=1, description="Provider exchange id")
    from_asset: str = Field(min_length=1, description="Base asset")
    to_asset: str = Field(min_length=1, description="Quote asset")

    @field_validator("exchange", "from_asset", "to_asset")
    @classmethod
    def uppercase(cls, value: str) -> str:
        return value.upper()

    @property
    def key(self) -> str:
        """Canonical string form used as a store key."""
        return WIRE_SEPARATOR.join((self.exchange, self.from_asset, self.to_asset))

    def __str__(self) -> str:
        return f"{self.from_asset}/{self.to_asset}@{self.exchange}"


class PairExchangeCodec:
    """Converts between ``PairExchangeId`` and CoinAPI spot symbols."""

    def __init__(self, assets: Iterable[str] = SUPPORTED_ASSETS) -> None:
        self.assets = frozenset(asset.upper() for asset in assets)

    def supports(self, asset: str) -> bool:
        return asset in self.assets

    def encode(self, pair: PairExchangeId) -> str:
        for name in ("exchange", "from_asset", "to_asset"):
            if WIRE_SEPARATOR in getattr(pair, name):
                raise EncodingError(
                    f"{name} {getattr(pair, name)!r} contains separator {WIRE_SEPARATOR!r}"
                )

        for name in ("from_asset", "to_asset"):
            if not self.supports(getattr(pair, name)):
                raise EncodingError(f"{name} {getattr(pair, name)!r} is not a supported asset")

        return WIRE_SEPARATOR.join(
            (pair.exchange, SPOT_MARKER, pair.from_asset, pair.to_asset)
        )

    def decode(self, symbol: str) -> Optional[PairExchangeId]:
        """Return the pair for a spot symbol of two supported assets, else None."""
        parts = symbol.split(WIRE_SEPARATOR)
        if len(parts) != 4:
            return None

        exchange, instrument_type, from_asset, to_asset = parts
        if instrument_type != SPOT_MARKER:
            return None

        if not (self.supports(from_asset) and self.supports(to_asset)):
            return None

        try:
            return PairExchangeId(
                exchange=exchange, from_asset=from_asset, to_asset=to_asset
            )
        except ValidationError:
            logger.debug("Rejected malformed symbol %s", symbol)
            return None
