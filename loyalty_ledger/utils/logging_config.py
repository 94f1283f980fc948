"""
Logging setup for the loyalty ledger service.
"""
import logging
import os
import sys

_configured = False

LOG_FORMAT = '%(asctime)s %(levelname)s [%(name)s] %(message)s'


def setup_logging(level: str = None) -> None:
    """
    Configure root logging once per process.

    Args:
        level: Log level name. Defaults to the LOG_LEVEL environment variable, then INFO.
    """
    global _configured
    if _configured:
        return

    level_name = (level or os.getenv('LOG_LEVEL', 'INFO')).upper()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level_name, logging.INFO))

    # SQL echo is far too chatty at INFO
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

    _configured = True
