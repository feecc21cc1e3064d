import logging
import os
import sys

LOG_LEVEL_NAME = (os.getenv("SCANMARK_LOG_LEVEL") or "INFO").upper()
LOG_FILE = os.getenv("SCANMARK_LOG_FILE")
NO_COLOR = os.getenv("NO_COLOR") is not None


class _C:
    RESET = "\033[0m"
    DIM = "\033[2m"
    YELLOW = "\033[33m"
    RED = "\033[31m"


LEVEL_COLORS = {
    logging.DEBUG: _C.DIM,
    logging.WARNING: _C.YELLOW,
    logging.ERROR: _C.RED,
    logging.CRITICAL: _C.RED,
}


class ColorFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        if NO_COLOR:
            return text
        color = LEVEL_COLORS.get(record.levelno)
        if color:
            return f"{color}{text}{_C.RESET}"
        return text


_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
_configured = False


def configure_logging() -> None:
    """Attach the scanmark handlers to the root logger once per process."""
    global _configured
    if _configured:
        return

    level = getattr(logging, LOG_LEVEL_NAME, logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(ColorFormatter(_FORMAT, datefmt="%H:%M:%S"))
    root.addHandler(stream_handler)

    if LOG_FILE:
        try:
            file_handler = logging.FileHandler(LOG_FILE, encoding="utf-8")
        except OSError as e:
            root.warning("Could not open log file %s: %s", LOG_FILE, e)
        else:
            file_handler.setFormatter(logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
            root.addHandler(file_handler)

    _configured = True
