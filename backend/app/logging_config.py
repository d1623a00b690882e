import logging
import os

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
HANDLER_NAME = "hybrid-runner-console"


def setup_logging(level: str | None = None) -> None:
    """
    Configures the root logger with a console handler.
    Safe to call more than once; the handler is only installed the first time.
    """
    level_name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))

    if any(handler.get_name() == HANDLER_NAME for handler in root_logger.handlers):
        return

    console_handler = logging.StreamHandler()
    console_handler.set_name(HANDLER_NAME)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(console_handler)
