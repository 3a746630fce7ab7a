from coinfeed.providers.base import LiveFeedProvider
from coinfeed.providers.coinapi import CoinApiProvider

__all__ = ["CoinApiProvider", "LiveFeedProvider"]
