import logging

from reelrank.core.config import settings

logger = logging.getLogger("reelrank")


def configure_logging(level: str | None = None) -> logging.Logger:
    """Attach the console handler to the package logger once.

    Module loggers (``logging.getLogger(__name__)``) propagate here.
    """
    logger.setLevel((level or settings.log_level).upper())
    if not any(getattr(h, "_reelrank", False) for h in logger.handlers):
        console_handler = logging.StreamHandler()
        formatter = logging.Formatter("[%(levelname)s] %(asctime)s - %(name)s - %(message)s", "%Y-%m-%d %H:%M:%S")
        console_handler.setFormatter(formatter)
        console_handler._reelrank = True
        logger.addHandler(console_handler)
    return logger
