"""Centralized logger factory for the grid-shed service.

Every module gets its logger through `LoggingUtil.get_logger(__name__)` so that
the HTTP handlers, the scheduler jobs and the Redis subscriber all share one
format and honour the same `LOGLEVEL` environment variable.
"""

import logging
import os


class LoggingUtil:
    """Hands out console loggers with a shared format and level."""

    @staticmethod
    def get_logger(logger_name: str) -> logging.Logger:
        """Retrieves a configured logger instance.

        The level comes from the 'LOGLEVEL' environment variable. Unknown or
        missing values fall back to INFO.

        Args:
            logger_name: The name of the logger, typically `__name__` of the
                         calling module.

        Returns:
            A configured `logging.Logger` instance.
        """
        logger = logging.getLogger(logger_name)
        log_level = os.getenv("LOGLEVEL", "INFO").upper()

        if log_level not in logging.getLevelNamesMapping():
            log_level = "INFO"

        logger.setLevel(log_level)

        # Handlers are attached once per logger name
        if not logger.handlers:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(
                logging.Formatter("%(asctime)s - [%(name)s][%(levelname)s] %(message)s")
            )
            logger.addHandler(console_handler)

        return logger
