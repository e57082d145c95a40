import logging

from app.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str = None):
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level), logging.INFO),
        format=LOG_FORMAT,
    )
