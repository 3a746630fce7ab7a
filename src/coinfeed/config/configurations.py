from pydantic import BaseModel, ConfigDict, Field, model_validator

from coinfeed.config.manager import ConfigurationManager
from coinfeed.markets.pairs import SUPPORTED_ASSETS

COINAPI_WS_URL = "wss://ws.coinapi.io/v1/"

FOUR_HOURS = 4 * 60 * 60


class SupervisorConfig(BaseModel):
    """Restart delays and connection lifetime, all in seconds.

    Errors back off longest, a clean close from the provider less, and a
    proactive rotation of a healthy connection least.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    error_backoff: float = Field(default=60.0, gt=0)
    complete_backoff: float = Field(default=30.0, gt=0)
    rotation_backoff: float = Field(default=10.0, gt=0)
    max_connection_lifetime: float = Field(default=FOUR_HOURS, gt=0)

    @classmethod
    def from_config(cls, config: ConfigurationManager) -> "SupervisorConfig":
        defaults = cls()
        return cls(
            error_backoff=config.get("ERROR_BACKOFF", defaults.error_backoff, float),
            complete_backoff=config.get(
                "COMPLETE_BACKOFF", defaults.complete_backoff, float
            ),
            rotation_backoff=config.get(
                "ROTATION_BACKOFF", defaults.rotation_backoff, float
            ),
            max_connection_lifetime=config.get(
                "MAX_CONNECTION_LIFETIME", defaults.max_connection_lifetime, float
            ),
        )


class FeedConfig(BaseModel):
    """Stream endpoint, asset universe and prefetch settings."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    ws_url: str = COINAPI_WS_URL
    assets: tuple[str, ...] = SUPPORTED_ASSETS
    disable_prefetch: bool = False
    prefetch_interval: float = Field(default=FOUR_HOURS, gt=0)
    redis_host: str = "redis"
    redis_port: int = 6379

    @model_validator(mode="after")
    def check_assets(self) -> "FeedConfig":
        if not self.assets:
            raise ValueError("At least one asset must be subscribed")
        return self

    @classmethod
    def from_config(cls, config: ConfigurationManager) -> "FeedConfig":
        defaults = cls()
        assets = config.get("SUPPORTED_ASSETS", None, list)
        return cls(
            ws_url=config.get("COINAPI_WS_URL", defaults.ws_url),
            assets=tuple(a.upper() for a in assets) if assets else defaults.assets,
            disable_prefetch=config.get("DISABLE_PREFETCH", False, bool),
            prefetch_interval=config.get(
                "PREFETCH_INTERVAL", defaults.prefetch_interval, float
            ),
            redis_host=config.get("REDIS_HOST", defaults.redis_host),
            redis_port=config.get("REDIS_PORT", defaults.redis_port, int),
        )
