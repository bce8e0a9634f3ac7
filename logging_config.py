# logging_config.py
import logging

LOG_FORMAT = "[%(asctime)s] %(levelname)s - %(name)s - %(message)s"


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
    # the google client is chatty at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
