import logging
import sys

_NOISY_LOGGERS = ("httpx", "httpcore", "yfinance", "apscheduler", "peewee", "urllib3")


def setup_logging(level: str = "INFO", stream=None) -> None:
    """
    Configure centralized application logging.
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        handlers=[logging.StreamHandler(stream or sys.stdout)],
    )

    # Reduce noisy third-party loggers
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Retrieve a namespaced logger.
    """
    return logging.getLogger(name)
