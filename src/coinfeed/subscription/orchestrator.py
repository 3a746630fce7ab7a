"""
Live price feed orchestration.

Wires configuration, the CoinAPI provider, the price sink and the supervisor
together and runs them until cancelled.
"""

import asyncio
import logging
from typing import Optional

from coinfeed.config import EnvConfigManager, FeedConfig, SupervisorConfig
from coinfeed.config.enumerations import SupervisorState, TerminationReason
from coinfeed.messaging.handlers import PriceEventHandler
from coinfeed.messaging.processors import RedisEventProcessor
from coinfeed.providers.base import LiveFeedProvider
from coinfeed.providers.coinapi import CoinApiProvider
from coinfeed.subscription.jobs import Job, RecurringJob
from coinfeed.subscription.supervisor import SubscriptionSupervisor

logger = logging.getLogger(__name__)


def format_uptime(seconds: float) -> str:
    """Format elapsed seconds as a human-readable uptime string."""
    total = int(seconds)
    days, remainder = divmod(total, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes, _ = divmod(remainder, 60)
    if days > 0:
        return f"{days}d {hours}h {minutes}m"
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def log_health_status(
    supervisor: SubscriptionSupervisor,
    handler: PriceEventHandler,
    start_time: float,
) -> None:
    """Log health status based on supervisor state."""
    uptime = format_uptime(supervisor.clock.time() - start_time)
    metrics = supervisor.metrics

    if supervisor.state is SupervisorState.ACTIVE:
        logger.info(
            "Health - Uptime: %s | STATE: ACTIVE | %d connections | %d events | %d sink errors",
            uptime,
            metrics.connections_opened,
            handler.metrics.total_events,
            handler.metrics.error_count,
        )
    elif supervisor.state is SupervisorState.PENDING_RESTART:
        remaining = max(0.0, (supervisor.restart_due or 0.0) - supervisor.clock.time())
        logger.warning(
            "Health - Uptime: %s | STATE: PENDING_RESTART in %.0fs | errors: %d | Last error: %s",
            uptime,
            remaining,
            metrics.terminations[TerminationReason.ERROR],
            metrics.last_error,
        )
    else:
        logger.warning("Health - Uptime: %s | STATE: %s", uptime, supervisor.state.value)


async def run_feed(
    env_file: str = ".env",
    health_interval: int = 3600,
    use_redis: bool = True,
    prefetch: Optional[Job] = None,
    provider: Optional[LiveFeedProvider] = None,
    handler: Optional[PriceEventHandler] = None,
) -> None:
    """
    Stream live prices until cancelled.

    Args:
        env_file: Path to .env file for configuration
        health_interval: Seconds between health log entries (default: 3600)
        use_redis: Attach the Redis processor to the sink (default: True)
        prefetch: Optional coroutine function run on the prefetch schedule
        provider: Price feed provider (default: CoinAPI from configuration)
        handler: Price sink (default: a new PriceEventHandler)

    Raises:
        ConfigurationError: If required configuration is missing. This is
            raised before any connection is attempted.
    """
    logger.info("Initializing configuration from %s", env_file)
    config = EnvConfigManager(env_file=env_file)
    config.initialize()

    feed_config = FeedConfig.from_config(config)
    supervisor_config = SupervisorConfig.from_config(config)

    provider = provider or CoinApiProvider(config, feed_config)
    provider.init()

    handler = handler or PriceEventHandler()
    if use_redis:
        handler.add_processor(
            RedisEventProcessor(
                redis_host=feed_config.redis_host, redis_port=feed_config.redis_port
            )
        )
    logger.info("Processors attached: %s", ", ".join(handler.processors))

    supervisor = SubscriptionSupervisor(provider, handler, supervisor_config)

    prefetch_job: Optional[RecurringJob] = None
    if prefetch is not None and not feed_config.disable_prefetch:
        prefetch_job = RecurringJob(prefetch, feed_config.prefetch_interval, name="prefetch")
    elif prefetch is not None:
        logger.info("Prefetch disabled by DISABLE_PREFETCH")

    try:
        supervisor.start()
        if prefetch_job is not None:
            prefetch_job.start()

        logger.info("Feed active - press Ctrl+C to stop")
        start_time = supervisor.clock.time()

        while True:
            await asyncio.sleep(health_interval)
            log_health_status(supervisor, handler, start_time)

    finally:
        if prefetch_job is not None:
            await prefetch_job.stop()

        handle = supervisor.stop()
        if handle is not None:
            logger.info("Waiting for connection to close")
            await handle.wait_closed()

        logger.info("Flushing processors...")
        await handler.close_processors()
        logger.info("Cleanup complete")
