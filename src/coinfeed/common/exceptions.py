from abc import ABC
from typing import Optional


class CoinFeedError(Exception, ABC):
    """Base exception for coinfeed."""

    def __init__(self, message: str):
        super().__init__(message)


class ConfigurationError(CoinFeedError):
    """Raised when required configuration is missing or invalid.

    This is the only error allowed to halt the process, and only at startup.
    """

    def __init__(self, key: str, context: Optional[str] = None):
        message = f"{key} is not configured"
        if context:
            message = f"{message} - {context}"
        super().__init__(message)
        self.key = key


class EncodingError(CoinFeedError):
    """Raised when a pair exchange cannot be written as a wire symbol."""

    def __init__(self, context: str):
        super().__init__(f"Cannot encode pair exchange: {context}")


class TransportError(CoinFeedError):
    """Raised on connectivity failures of the streaming transport."""

    def __init__(self, message: str, original_exception: Optional[BaseException] = None):
        super().__init__(message)
        self.original_exception = original_exception


class ApplicationError(CoinFeedError):
    """Raised when the provider sends an explicit error frame."""

    def __init__(self, provider_message: str):
        super().__init__(f"Provider error: {provider_message}")
        self.provider_message = provider_message


__all__ = [
    "CoinFeedError",
    "ConfigurationError",
    "EncodingError",
    "TransportError",
    "ApplicationError",
]
