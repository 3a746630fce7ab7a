from coinfeed.config.configurations import FeedConfig, SupervisorConfig
from coinfeed.config.manager import ConfigurationManager, EnvConfigManager

__all__ = [
    "ConfigurationManager",
    "EnvConfigManager",
    "FeedConfig",
    "SupervisorConfig",
]
