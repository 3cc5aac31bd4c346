"""
logging_config.py: logging setup for the checkout engine.

All modules log through `logging.getLogger(__name__)`; this module only
configures the root handler once at application start.
"""

import logging
import sys

from checkout_engine import config


def setup_logging(level: str | None = None) -> None:
    """
    Configures the global logging system.

        - Log level: LOG_LEVEL from the environment (INFO by default)
        - Log format: timestamp, level, process ID, logger name and message
        - Output: stdout, container friendly
        - Reduced verbosity for SQLAlchemy engine echo and httpx
    """
    log_format = "%(asctime)s - %(levelname)s - [PID:%(process)d] - %(name)s - %(message)s"

    logging.basicConfig(
        level=(level or config.LOG_LEVEL).upper(),
        format=log_format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
