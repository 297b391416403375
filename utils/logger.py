import logging
import os
from logging.handlers import TimedRotatingFileHandler

from utils import config


def ensure_log_dir():
    if not os.path.exists(config.LOG_DIR):
        os.makedirs(config.LOG_DIR, exist_ok=True)


def log_file_path() -> str:
    # One file per stream and pod, same as the container's tee glue
    return os.path.join(
        config.LOG_DIR,
        f"{config.STREAM_NAME}_{config.HOSTNAME}.log"
    )


def get_logger(name: str) -> logging.Logger:
    ensure_log_dir()

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))

    # Avoid duplicate logs
    if logger.handlers:
        return logger

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    )

    # File handler (rotates daily)
    file_handler = TimedRotatingFileHandler(
        log_file_path(),
        when="midnight",
        interval=1,
        utc=True
    )
    file_handler.setFormatter(formatter)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    return logger
