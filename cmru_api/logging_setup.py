"""Logging configuration for the CMRU portal API proxy."""

import logging

try:
    import colorlog
    _COLORLOG_AVAILABLE = True
except ImportError:
    _COLORLOG_AVAILABLE = False

log = logging.getLogger("cmru-api")

_LOG_FMT = "%(asctime)s [%(levelname)s] %(message)s"
_FILE_LOG_FMT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(debug: bool = False, log_file: "str | None" = None) -> None:
    level = logging.DEBUG if debug else logging.INFO
    log.setLevel(level)
    log.handlers.clear()

    if _COLORLOG_AVAILABLE:
        handler = colorlog.StreamHandler()
        handler.setFormatter(colorlog.ColoredFormatter(
            "%(log_color)s%(asctime)s [%(levelname)s]%(reset)s %(message)s",
            datefmt="%H:%M:%S",
            log_colors={
                "DEBUG":    "cyan",
                "INFO":     "green",
                "WARNING":  "yellow",
                "ERROR":    "red",
                "CRITICAL": "bold_red",
            },
        ))
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_LOG_FMT, datefmt="%H:%M:%S"))
    log.addHandler(handler)

    if log_file:
        fh = logging.FileHandler(log_file)
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(_FILE_LOG_FMT, datefmt="%Y-%m-%d %H:%M:%S"))
        log.addHandler(fh)

    if debug:
        logging.getLogger("urllib3").setLevel(logging.DEBUG)


def colorlog_available() -> bool:
    return _COLORLOG_AVAILABLE
