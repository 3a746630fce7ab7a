import logging
import time
from dataclasses import dataclass
from typing import Optional

from coinfeed.messaging.models.events import PriceUpdateEvent
from coinfeed.messaging.processors.default import EventProcessor, LatestPriceProcessor

logger = logging.getLogger(__name__)


@dataclass
class HandlerMetrics:
    total_events: int = 0
    error_count: int = 0
    last_event_time: float = 0

    def update(self) -> None:
        self.total_events += 1
        self.last_event_time = time.time()

    def record_error(self) -> None:
        self.error_count += 1


class PriceEventHandler:
    """Sink for price updates that fans each event out to its processors.

    The handler is called synchronously from the connection listener, so a
    failing processor is logged and counted but never propagates back into the
    stream.
    """

    def __init__(self, processor: Optional[EventProcessor] = None) -> None:
        self.metrics = HandlerMetrics()
        self.feed_processor: EventProcessor = processor or LatestPriceProcessor()
        self.processors: dict[str, EventProcessor] = {
            self.feed_processor.name: self.feed_processor
        }

    def __call__(self, event: PriceUpdateEvent) -> None:
        self.handle_event(event)

    def add_processor(self, processor: EventProcessor) -> None:
        """Add new event processor"""
        self.processors.update({processor.name: processor})

    def remove_processor(self, processor: EventProcessor) -> None:
        """Remove event processor"""
        if processor.name in self.processors:
            del self.processors[processor.name]

    def handle_event(self, event: PriceUpdateEvent) -> None:
        self.metrics.update()

        for processor in list(self.processors.values()):
            try:
                processor.process_event(event)
            except Exception:
                self.metrics.record_error()
                logger.exception(
                    "Processor %s failed on %s", processor.name, event.pair_exchange_id
                )

    async def close_processors(self) -> None:
        for processor in self.processors.values():
            try:
                await processor.close()
            except Exception as e:
                logger.warning("Failed to close processor %s: %s", processor.name, e)

        logger.info(
            "Price handler metrics - Total events: %d, Errors: %d",
            self.metrics.total_events,
            self.metrics.error_count,
        )
