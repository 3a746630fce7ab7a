from coinfeed.messaging.models.events import PriceUpdateEvent
from coinfeed.messaging.models.messages import (
    ErrorFrame,
    Frame,
    HelloModel,
    TradeFrame,
    UnknownFrame,
    parse_frame,
)

__all__ = [
    "ErrorFrame",
    "Frame",
    "HelloModel",
    "PriceUpdateEvent",
    "TradeFrame",
    "UnknownFrame",
    "parse_frame",
]
