"""
Click CLI for the coinfeed live price stream.

This module implements the `coinfeed` CLI tool with `run` and `status`
subcommands.

`run` streams prices only. The recurring prefetch job (`DISABLE_PREFETCH`,
`PREFETCH_INTERVAL`) is a hook for code that embeds `run_feed` and passes its
own `prefetch` coroutine; the CLI does not schedule one.
"""

import asyncio
import logging
import sys

import click

from coinfeed import __version__
from coinfeed.common.exceptions import ConfigurationError
from coinfeed.common.logging import setup_logging
from coinfeed.subscription.orchestrator import run_feed
from coinfeed.subscription.status import format_status, query_status

# Valid log levels for validation
VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def validate_log_level(_ctx: click.Context, _param: click.Parameter, value: str) -> str:
    """Validate log level."""
    value_upper = value.upper()
    if value_upper not in VALID_LOG_LEVELS:
        raise click.BadParameter(
            f"Invalid log level: '{value}'. "
            f"Valid levels: {', '.join(VALID_LOG_LEVELS)}"
        )
    return value_upper


def validate_positive(_ctx: click.Context, _param: click.Parameter, value: int) -> int:
    if value <= 0:
        raise click.BadParameter("Must be a positive number of seconds")
    return value


@click.group()
@click.version_option(version=__version__, prog_name="coinfeed")
def cli() -> None:
    """CoinAPI live price feed CLI.

    Stream trade prices into the local store and inspect what is stored.

    \b
    Commands:
      run     Start the supervised price stream
      status  Show the latest stored prices
    """
    pass


@cli.command()
@click.option(
    "--env-file",
    default=".env",
    show_default=True,
    help="Path to the .env file with COINAPI_KEY and feed settings",
)
@click.option(
    "--log-level",
    default="INFO",
    envvar="LOG_LEVEL",
    callback=validate_log_level,
    help="Logging level (DEBUG, INFO, WARNING, ERROR). Default: INFO or $LOG_LEVEL",
)
@click.option(
    "--log-dir",
    default=None,
    envvar="LOG_DIR",
    help="Also write a daily log file to this directory (or $LOG_DIR)",
)
@click.option(
    "--health-interval",
    default=3600,
    type=int,
    callback=validate_positive,
    help="Seconds between health status log entries. Default: 3600 (1 hour)",
)
@click.option(
    "--redis/--no-redis",
    "use_redis",
    default=True,
    help="Store prices in Redis. Default: enabled",
)
def run(
    env_file: str,
    log_level: str,
    log_dir: str | None,
    health_interval: int,
    use_redis: bool,
) -> None:
    """Start the supervised price stream.

    Connects to CoinAPI, streams trades for the supported assets into the
    local store, and reconnects automatically until interrupted.

    Prefetch settings (DISABLE_PREFETCH, PREFETCH_INTERVAL) have no effect
    here: only embedders that pass a prefetch job to run_feed use them.

    \b
    Example:
      coinfeed run --env-file .env --log-level DEBUG
    """
    setup_logging(level=log_level, log_dir=log_dir)
    logger = logging.getLogger(__name__)

    logger.info("=" * 60)
    logger.info("coinfeed live price stream - Starting")
    logger.info("=" * 60)
    logger.info("Configuration:")
    logger.info("  Env File:    %s", env_file)
    logger.info("  Log Level:   %s", log_level)
    logger.info("  Health Int:  %ss", health_interval)
    logger.info("  Redis:       %s", "enabled" if use_redis else "disabled")
    logger.info("=" * 60)

    try:
        asyncio.run(
            run_feed(
                env_file=env_file,
                health_interval=health_interval,
                use_redis=use_redis,
            )
        )
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Received interrupt signal - shutting down")
    except Exception as e:
        logger.error("Fatal error: %s", e, exc_info=True)
        sys.exit(1)

    sys.exit(0)


@cli.command()
@click.option(
    "--json",
    "as_json",
    is_flag=True,
    default=False,
    help="Output in JSON format for machine consumption.",
)
@click.option("--host", default=None, help="Redis host (default: REDIS_HOST or redis)")
@click.option("--port", default=None, type=int, help="Redis port (default: REDIS_PORT or 6379)")
def status(as_json: bool, host: str | None, port: int | None) -> None:
    """Show the latest stored prices.

    \b
    - Latest price per pair exchange and its age
    - Pairs with no update in the last 5 minutes are marked stale
    - Connection health (Redis)

    \b
    Example:
      coinfeed status
      coinfeed status --json
    """
    result = asyncio.run(query_status(host=host, port=port))
    click.echo(format_status(result, as_json=as_json))


def main() -> None:
    """Entry point for the coinfeed CLI."""
    cli()


if __name__ == "__main__":
    main()
