"""Query and format the latest stored prices from Redis.

Reads the hash written by ``RedisEventProcessor`` and returns structured
status information for display by the CLI status command.
"""

import asyncio
import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone

import redis.asyncio as aioredis  # type: ignore
from redis.exceptions import RedisError  # type: ignore

from coinfeed.messaging.processors.redis import PRICES_HASH

logger = logging.getLogger(__name__)

STALE_AFTER_SECONDS = 300


@dataclass
class PriceInfo:
    """Parsed price entry from Redis."""

    pair: str
    exchange: str
    from_asset: str
    to_asset: str
    price: float
    updated_at: datetime | None

    @property
    def age_seconds(self) -> float | None:
        """Seconds since last update, or None if unknown."""
        if self.updated_at is None:
            return None
        delta = datetime.now(timezone.utc) - self.updated_at
        return delta.total_seconds()

    @property
    def stale(self) -> bool:
        age = self.age_seconds
        return age is None or age > STALE_AFTER_SECONDS

    @property
    def age_display(self) -> str:
        """Human-readable age string."""
        age = self.age_seconds
        if age is None:
            return "unknown"
        if age < 60:
            return f"{age:.0f}s ago"
        if age < 3600:
            return f"{age / 60:.0f}m ago"
        if age < 86400:
            return f"{age / 3600:.1f}h ago"
        return f"{age / 86400:.1f}d ago"


@dataclass
class StatusResult:
    """Aggregated status information."""

    redis_connected: bool = False
    redis_version: str = ""
    prices: list[PriceInfo] = field(default_factory=list)
    error: str | None = None

    @property
    def fresh_prices(self) -> list[PriceInfo]:
        return [p for p in self.prices if not p.stale]

    @property
    def stale_prices(self) -> list[PriceInfo]:
        return [p for p in self.prices if p.stale]


def _parse_price(key: str, raw: object) -> PriceInfo:
    """Parse a raw Redis price entry.

    Raises:
        ValueError: If the entry is not an object or its price is not numeric.
    """
    if not isinstance(raw, dict):
        raise ValueError(f"Price entry for {key} is not an object")

    updated_at = None
    if ts := raw.get("updated_at"):
        try:
            updated_at = datetime.fromisoformat(ts)
        except (ValueError, TypeError):
            pass

    pair = raw.get("pair_exchange_id")
    if not isinstance(pair, dict):
        pair = {}

    price = raw.get("price", 0.0)
    if isinstance(price, bool) or not isinstance(price, (int, float, str)):
        raise ValueError(f"Price entry for {key} has invalid price {price!r}")

    return PriceInfo(
        pair=key,
        exchange=pair.get("exchange", ""),
        from_asset=pair.get("from_asset", ""),
        to_asset=pair.get("to_asset", ""),
        price=float(price),
        updated_at=updated_at,
    )


async def query_status(
    host: str | None = None,
    port: int | None = None,
    hash_key: str = PRICES_HASH,
) -> StatusResult:
    """Query Redis for the latest stored prices.

    Args:
        host: Redis host (defaults to REDIS_HOST env var or "redis").
        port: Redis port (defaults to REDIS_PORT env var or 6379).
        hash_key: Redis hash key for prices.

    Returns:
        StatusResult with connection info and price data.
    """
    result = StatusResult()
    redis_host = host or os.environ.get("REDIS_HOST", "redis")
    redis_port = port or int(os.environ.get("REDIS_PORT", "6379"))

    client = aioredis.Redis(host=str(redis_host), port=int(redis_port), db=0)
    try:
        await asyncio.wait_for(client.ping(), timeout=5.0)
        result.redis_connected = True

        info = await client.info("server")
        result.redis_version = info.get("redis_version", "unknown")

        all_prices = await client.hgetall(hash_key)
        for key_bytes, val_bytes in all_prices.items():
            key = key_bytes.decode("utf-8")
            try:
                raw = json.loads(val_bytes.decode("utf-8"))
                result.prices.append(_parse_price(key, raw))
            except (ValueError, TypeError) as e:
                logger.debug("Skipping unreadable price entry %s: %s", key, e)

        result.prices.sort(key=lambda p: (p.stale, p.exchange, p.pair))

    except (RedisError, OSError, asyncio.TimeoutError) as e:
        result.error = f"Cannot connect to Redis at {redis_host}:{redis_port}: {e}"
    finally:
        await client.aclose()

    return result


def format_status(result: StatusResult, as_json: bool = False) -> str:
    """Format StatusResult for terminal display.

    Args:
        result: The query result to format.
        as_json: If True, return JSON output instead of table.

    Returns:
        Formatted string for terminal output.
    """
    if as_json:
        return _format_json(result)
    return _format_table(result)


def _format_json(result: StatusResult) -> str:
    """Format as JSON for machine consumption."""
    data: dict[str, object] = {
        "redis": {
            "connected": result.redis_connected,
            "version": result.redis_version,
        },
        "prices": {
            "total": len(result.prices),
            "fresh": len(result.fresh_prices),
            "pairs": [
                {
                    "pair": p.pair,
                    "price": p.price,
                    "updated_at": p.updated_at.isoformat() if p.updated_at else None,
                    "age": p.age_display,
                    "stale": p.stale,
                }
                for p in result.prices
            ],
        },
    }
    if result.error:
        data["error"] = result.error
    return json.dumps(data, indent=2)


def _format_table(result: StatusResult) -> str:
    """Format as a readable terminal table."""
    lines: list[str] = []

    lines.append("Connection Health")
    lines.append("-" * 40)
    redis_status = "Connected" if result.redis_connected else "Disconnected"
    if result.redis_connected:
        redis_status += f" (v{result.redis_version})"
    lines.append(f"  Redis:    {redis_status}")

    if result.error:
        lines.append(f"  Error:    {result.error}")
        return "\n".join(lines)

    if not result.prices:
        lines.append("")
        lines.append("No stored prices")
        return "\n".join(lines)

    lines.append("")
    lines.append(f"Stored Prices: {len(result.prices)} ({len(result.stale_prices)} stale)")
    lines.append("-" * 40)
    for p in result.prices:
        marker = " (stale)" if p.stale else ""
        lines.append(f"  {p.pair:<24s} {p.price:>14.6g}  {p.age_display}{marker}")

    return "\n".join(lines)
