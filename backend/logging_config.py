"""Logging setup shared by the API process and queue workers."""

import logging

from config import settings

LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(process)d] %(name)s  %(message)s"

# Libraries whose INFO output drowns out sync progress lines
QUIET_LOGGERS = (
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "httpx",
    "httpcore",
    "rq.worker",
    "redis",
)


def setup_logging(level: str | None = None) -> None:
    """Configure the root logger.

    Args:
        level: Level name overriding ``settings.LOG_LEVEL``. Workers pass
            their own ``--log-level`` through here.
    """
    level_name = (level or settings.LOG_LEVEL).upper()
    logging.basicConfig(
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        level=getattr(logging, level_name),
        force=True,
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
