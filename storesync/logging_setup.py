import os
import sys

from loguru import logger

_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{line} | {message}"


def setup_logging(level: str | None = None) -> None:
    from storesync.config import settings

    level = (level or settings.log_level or "INFO").upper()
    log_dir = os.path.dirname(settings.log_path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    logger.remove()
    logger.add(sys.stdout, level=level)
    logger.add(
        settings.log_path,
        rotation="10 MB",
        retention=5,
        level=level,
        format=_FILE_FORMAT,
        enqueue=True,
    )
    logger.info("logging ready level={} path={}", level, settings.log_path)
