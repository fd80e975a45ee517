from pathlib import Path

import uvicorn
from dotenv import find_dotenv, load_dotenv
from loguru import logger

from storesync.logging_setup import setup_logging

PROJECT_ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_INI = PROJECT_ROOT / "alembic.ini"


def _load_env() -> str | None:
    env_path = find_dotenv(usecwd=True) or None
    fallback = PROJECT_ROOT / ".env"
    if env_path is None and fallback.exists():
        env_path = str(fallback)
    if env_path is not None:
        load_dotenv(env_path, override=True)
    return env_path


def _upgrade_schema() -> None:
    from alembic import command
    from alembic.config import Config

    command.upgrade(Config(str(ALEMBIC_INI)), "head")
    logger.info("database schema at head ini={}", ALEMBIC_INI)


def main() -> None:
    env_path = _load_env()
    setup_logging()
    if env_path:
        logger.info("env loaded path={}", env_path)
    else:
        logger.warning("env file not found, using process environment")

    # settings must be read after .env is applied
    from storesync.config import settings

    logger.info(
        "storesync configured: cloud_url={} key_set={} db={} interval={}s",
        settings.cloud_api_url,
        bool(settings.cloud_api_key),
        settings.sqlite_path,
        settings.sync_interval_sec,
    )
    Path(settings.sqlite_path).parent.mkdir(parents=True, exist_ok=True)
    _upgrade_schema()
    uvicorn.run("storesync.api.app:app", host=settings.api_host, port=settings.api_port, reload=False)


if __name__ == "__main__":
    main()
