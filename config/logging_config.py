import logging
import sys

from loguru import logger

from config.settings import Settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)

# Third-party loggers routed through loguru, with the level they are capped at
LIBRARY_LOGGERS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "uvicorn": logging.INFO,
    "uvicorn.access": logging.WARNING,
}


class InterceptHandler(logging.Handler):
    """Forward stdlib ``logging`` records (httpx, uvicorn) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.opt(depth=6, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(settings: Settings):
    logger.remove()

    logger.add(sys.stderr, level=settings.LOG_LEVEL, format=CONSOLE_FORMAT)

    # Failed fetches, rejected writes and failed runs
    logger.add(
        settings.LOG_DIR / "ingestion-errors.log",
        level="WARNING",
        rotation="10 MB",
        retention="2 weeks",
        compression="zip",
        delay=True,
    )

    # One file per day of ingestion runs, kept for a month
    logger.add(
        settings.LOG_DIR / "ingestion_{time:YYYY-MM-DD}.log",
        level="INFO",
        rotation="00:00",
        retention="1 month",
        delay=True,
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name, level in LIBRARY_LOGGERS.items():
        logging.getLogger(name).setLevel(level)

    return logger


log = logger
