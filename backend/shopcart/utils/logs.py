import logging
import sys

from shopcart.config import settings


def get_logger(name: str) -> logging.Logger:
    """
    Return a named logger writing to stdout with a "[NAME] message" prefix.
    Handlers are attached once per name, so repeated imports don't duplicate lines.
    """
    log = logging.getLogger(f"shopcart.{name}")
    log.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    if not log.handlers:
        h = logging.StreamHandler(sys.stdout)
        h.setFormatter(logging.Formatter(f"[{name.upper()}] %(levelname)s %(message)s"))
        log.addHandler(h)
    return log
