from coinfeed.common.exceptions import ConfigurationError
from coinfeed.config import ConfigurationManager


class Credentials:
    api_key: str

    @property
    def as_dict(self) -> dict:
        return vars(self)

    def __init__(self, config: ConfigurationManager):
        """CoinAPI credentials read from the configuration manager.

        The key can come from a `.env` file or the process environment.

        Args:
            config: Configuration manager for reading env vars.

        Raises:
            ConfigurationError: If COINAPI_KEY is missing or blank
        """
        api_key = config.get("COINAPI_KEY")
        if not api_key:
            raise ConfigurationError("COINAPI_KEY", "set it in the environment or .env file")

        self.api_key: str = api_key

    def __repr__(self) -> str:
        return f"Credentials(api_key='{self.api_key[:4]}***')"
