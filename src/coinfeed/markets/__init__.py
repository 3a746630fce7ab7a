from coinfeed.markets.pairs import (
    SUPPORTED_ASSETS,
    PairExchangeCodec,
    PairExchangeId,
)

__all__ = ["SUPPORTED_ASSETS", "PairExchangeCodec", "PairExchangeId"]
