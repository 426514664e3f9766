import sys
from loguru import logger
from caddate.core.config import LOG_FILE, LOG_LEVEL

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}"


def setup_logging() -> None:
    logger.remove()

    logger.add(sys.stdout, level=LOG_LEVEL, format=LOG_FORMAT)

    # empty LOG_FILE keeps tests and containers on stdout only
    if LOG_FILE:
        logger.add(
            LOG_FILE,
            rotation="10 MB",
            retention="14 days",
            level=LOG_LEVEL,
            format=LOG_FORMAT,
            # socket handlers log from worker threads too
            enqueue=True,
        )

    logger.info(f"Logging initialized | level={LOG_LEVEL} file={LOG_FILE or '-'}")
