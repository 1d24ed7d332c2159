# utils.py
"""
Logging and console helpers.
Log records only go to a file; the console belongs to the tqdm bar.
"""
import logging
import os

from tqdm import tqdm as _tqdm

from . import config

LOGGER_NAME = "pclapse"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(log_file=config.LOG_FILE, level=logging.INFO, name=LOGGER_NAME):
    """Route logger ``name`` to ``log_file``, replacing handlers from earlier calls."""
    logger = logging.getLogger(name)
    logger.setLevel(level)
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()
    handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.info("Logging to %s (level %s)", os.path.abspath(log_file), logging.getLevelName(level))
    return logger


def get_logger(name=LOGGER_NAME):
    logger = logging.getLogger(name)
    if not logger.handlers:
        # library use: silent until the application calls setup_logging()
        logger.addHandler(logging.NullHandler())
    return logger


def get_tqdm(*args, **kwargs):
    kwargs.setdefault("dynamic_ncols", True)
    return _tqdm(*args, **kwargs)


def vprint(*args):
    get_logger().debug(" ".join(str(a) for a in args))
