import json
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar, cast

from dotenv import dotenv_values

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ConfigurationManager(ABC):
    """Abstract base class defining the configuration manager interface."""

    @abstractmethod
    def get(self, key: str, default: Any = None, value_type: Optional[Type[T]] = None) -> Any:
        """Get a configuration value."""
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Set a configuration value."""
        pass

    @abstractmethod
    def get_all(self) -> Dict[str, str]:
        """Get all configuration values."""
        pass

    @abstractmethod
    def initialize(self, force: bool = False) -> None:
        """Initialize the configuration storage."""
        pass


class ConfigManagerBase:
    """Shared value conversion for configuration managers."""

    def convert_value(self, value: str, value_type: Type[T]) -> T:
        """Convert a string value to the specified type."""
        if value_type is bool:
            return cast(T, value.lower() in ["true", "1", "yes", "y", "t"])
        elif value_type is int:
            return cast(T, int(value))
        elif value_type is float:
            return cast(T, float(value))
        elif value_type is list or value_type is List:
            try:
                return cast(T, json.loads(value))
            except json.JSONDecodeError:
                # Fall back to comma-separated values
                return cast(T, [item.strip() for item in value.split(",") if item.strip()])
        elif value_type is dict or value_type is Dict:
            return cast(T, json.loads(value))
        else:
            return cast(T, value)


class EnvConfigManager(ConfigManagerBase, ConfigurationManager):
    """Configuration read from a .env file overlaid by the process environment.

    Values exported in the environment take precedence over the .env file, so
    a deployment can override a checked-in file without editing it.
    """

    def __init__(
        self,
        env_file: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        """Initialize the configuration manager.

        Args:
            env_file: Path to .env file for loading variables (default: .env)
            environ: Environment mapping to overlay (default: os.environ)
        """
        self.env_file = env_file or ".env"
        self.environ = environ if environ is not None else os.environ
        self.values: Dict[str, str] = {}
        self.initialized = False

    def initialize(self, force: bool = False) -> None:
        """Load the .env file and overlay the environment.

        Args:
            force: Force reinitialization even if already loaded
        """
        if self.initialized and not force:
            return

        file_values = {k: v for k, v in dotenv_values(self.env_file).items() if v is not None}
        if file_values:
            logger.info("Loaded %d variables from %s", len(file_values), self.env_file)
        else:
            logger.debug("No variables found in .env file: %s", self.env_file)

        self.values = {**file_values, **self.environ}
        self.initialized = True

    def get(self, key: str, default: Any = None, value_type: Optional[Type[T]] = None) -> Any:
        """Get a configuration value.

        Args:
            key: Configuration key
            default: Default value if key doesn't exist or is blank
            value_type: Type to convert the value to

        Returns:
            The configuration value
        """
        if not self.initialized:
            self.initialize()

        value = self.values.get(key)
        if value is None or value.strip() == "":
            return default

        if value_type is not None:
            value = self.convert_value(value, value_type)

        return value

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value for this process only."""
        if not self.initialized:
            self.initialize()

        if not isinstance(value, str):
            if isinstance(value, (dict, list)):
                value = json.dumps(value)
            else:
                value = str(value)

        self.values[key] = value

    def get_all(self) -> Dict[str, str]:
        if not self.initialized:
            self.initialize()
        return dict(self.values)
