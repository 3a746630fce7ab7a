from .default import EventProcessor, LatestPriceProcessor
from .redis import RedisEventProcessor

__all__ = [
    "EventProcessor",
    "LatestPriceProcessor",
    "RedisEventProcessor",
]
