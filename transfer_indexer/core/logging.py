import logging
import sys

_HANDLER_NAME = "transfer_indexer.stdout"


def setup_logging(level: str = "INFO") -> None:
    """Send indexer logs to stdout; calling it again only changes the level."""
    root_logger = logging.getLogger()
    if not any(h.get_name() == _HANDLER_NAME for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(
            logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
        )
        root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Per-request chatter from the database driver and HTTP client
    for noisy in ("sqlalchemy", "httpx", "aiosqlite", "asyncpg"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
