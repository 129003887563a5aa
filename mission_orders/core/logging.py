import logging
import os

from mission_orders.core import config

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"

logger = logging.getLogger("mission-orders")


def setup_logging() -> None:
    logging.basicConfig(level=config.LOG_LEVEL, format=LOG_FORMAT)
    if any(isinstance(h, logging.FileHandler) for h in logger.handlers):
        return
    os.makedirs(config.LOG_DIR, exist_ok=True)
    handler = logging.FileHandler(
        os.path.join(config.LOG_DIR, "backend.log"), encoding="utf-8"
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
