import logging
import os
from logging.handlers import RotatingFileHandler

MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5


def get_logger(name: str) -> logging.Logger:
    log_dir = os.environ.get("TOLL_SYSTEM_LOG_DIR", "logs")
    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, "toll_system.log")

    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.setLevel(os.environ.get("TOLL_SYSTEM_LOG_LEVEL", "INFO").upper())
        logger.propagate = False

        formatter = logging.Formatter(
            '%(asctime)s - %(levelname)s - %(threadName)s - %(name)s - %(message)s')

        file_handler = RotatingFileHandler(log_path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger
