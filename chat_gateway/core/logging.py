import logging
import sys

from chat_gateway.core import config

_LOGGING_CONFIGURED = False

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str | None = None) -> None:
    """Install one stream handler on the root logger; safe to call repeatedly."""
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(level or config.LOG_LEVEL)

    # httpx logs every request line at INFO, which would include provider urls
    logging.getLogger("httpx").setLevel(logging.WARNING)
    _LOGGING_CONFIGURED = True
