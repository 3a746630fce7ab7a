from coinfeed.messaging.handlers import PriceEventHandler

__all__ = ["PriceEventHandler"]
