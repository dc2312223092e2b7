import logging, sys, os

# Third-party loggers that log every request at INFO.
_NOISY = ("httpx", "httpcore", "telegram.ext.Updater", "apscheduler")


def setup_logging(level: int | None = None):
    logger = logging.getLogger("tradegate")
    if logger.handlers:
        return logger
    if level is None:
        level = logging.DEBUG if os.getenv("ENV", "dev") == "dev" else logging.INFO
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    for name in _NOISY:
        logging.getLogger(name).setLevel(logging.WARNING)
    return logger
