import logging
import sys

from flash_sale.config import settings


def get_logger(name: str, prefix: str = None) -> logging.Logger:
    """
    Return a named logger writing to stdout with a bracketed prefix, e.g.
    "[RESERVATIONS] INFO created ...". Handlers are attached once per name.
    """
    log = logging.getLogger(name)
    log.setLevel(settings.LOG_LEVEL.upper())
    if not log.handlers:
        h = logging.StreamHandler(sys.stdout)
        h.setFormatter(
            logging.Formatter(f"[{(prefix or name).upper()}] %(levelname)s %(message)s")
        )
        log.addHandler(h)
    return log
