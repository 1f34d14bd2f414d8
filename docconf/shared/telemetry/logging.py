"""Logging configuration for processes embedding docconf."""

import logging
import sys

from docconf.core.config import StoreSettings, get_settings

LOGGER_NAMESPACE = "docconf"


def setup_logging(settings: StoreSettings | None = None) -> None:
    """Configure stdout logging for the process and the docconf loggers.

    The docconf logger level follows settings.debug (DEBUG or INFO) even
    when the host application already configured the root logger, in which
    case basicConfig leaves the existing handlers alone.
    """
    settings = settings or get_settings()
    log_level = logging.DEBUG if settings.debug else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logging.getLogger(LOGGER_NAMESPACE).setLevel(log_level)


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the docconf namespace.

    Args:
        name: Module name (__name__) or a suffix such as "store".
    """
    if name != LOGGER_NAMESPACE and not name.startswith(f"{LOGGER_NAMESPACE}."):
        name = f"{LOGGER_NAMESPACE}.{name}"
    return logging.getLogger(name)
