import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s - %(levelname)s:%(name)s:%(lineno)d:%(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Chatty below WARNING: websockets logs every frame at DEBUG
QUIET_LOGGERS = ("websockets", "redis", "asyncio")


def resolve_level(level: Union[int, str]) -> int:
    """Accept a logging level as an int or a name such as ``"debug"``."""
    if isinstance(level, int):
        return level

    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def log_file_path(log_dir: Union[str, Path], prefix: str = "coinfeed") -> Path:
    """Daily log file inside ``log_dir``, named by UTC date."""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d")
    return Path(log_dir) / f"{prefix}_{stamp}.log"


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_dir: Optional[Union[str, Path]] = None,
    console: bool = True,
) -> Optional[Path]:
    """Configure root logging for the feed process.

    Console output goes to stderr. Passing ``log_dir`` also appends to a daily
    file there, created on demand. Third-party libraries in ``QUIET_LOGGERS``
    stay at WARNING unless the feed itself runs at DEBUG.

    Returns:
        The log file path when file logging is enabled, else None.
    """
    numeric_level = resolve_level(level)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    log_file: Optional[Path] = None
    if log_dir is not None:
        log_file = log_file_path(log_dir)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    library_level = logging.DEBUG if numeric_level <= logging.DEBUG else logging.WARNING
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    if log_file is not None:
        root_logger.info("Logging initialized - writing to %s", log_file)
    return log_file
