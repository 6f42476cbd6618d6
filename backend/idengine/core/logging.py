import logging
import os

from idengine.core.config import LOG_DIR

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"

logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
logger = logging.getLogger("idengine-backend")


def attach_file_handler(log_dir: str = LOG_DIR) -> None:
    os.makedirs(log_dir, exist_ok=True)
    path = os.path.join(log_dir, "backend.log")
    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == os.path.abspath(path):
            return
    file_handler = logging.FileHandler(path, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(file_handler)
