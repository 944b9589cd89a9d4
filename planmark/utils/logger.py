import datetime
import logging
import sys
from pathlib import Path
from typing import Optional

import termcolor

__appname__ = "planmark"

COLORS = {
    "WARNING": "yellow",
    "INFO": "white",
    "DEBUG": "blue",
    "CRITICAL": "red",
    "ERROR": "red",
}


class ColoredFormatter(logging.Formatter):
    def __init__(self, fmt, use_color=True):
        logging.Formatter.__init__(self, fmt)
        self.use_color = use_color

    def format(self, record):
        levelname = record.levelname
        if self.use_color and levelname in COLORS:

            def colored(text):
                return termcolor.colored(
                    text,
                    color=COLORS[levelname],
                    attrs=["bold"],
                )

            record.levelname2 = colored("{:<7}".format(record.levelname))
            record.message2 = colored(record.getMessage())
            record.module2 = termcolor.colored(record.module, color="cyan")
            record.funcName2 = termcolor.colored(record.funcName, color="cyan")
            record.lineno2 = termcolor.colored(str(record.lineno), color="cyan")
        else:
            record.levelname2 = "{:<7}".format(record.levelname)
            record.message2 = record.getMessage()
            record.module2 = record.module
            record.funcName2 = record.funcName
            record.lineno2 = str(record.lineno)
        return logging.Formatter.format(self, record)


logger = logging.getLogger(__appname__)
logger.setLevel(logging.INFO)

# Configure logging to write to stderr
stream_handler = logging.StreamHandler(sys.stderr)
stream_handler.setFormatter(ColoredFormatter(
    "%(asctime)s [%(levelname2)s] %(module2)s:%(funcName2)s:%(lineno2)s"
    " - %(message2)s",
    use_color=sys.stderr.isatty(),
))
logger.addHandler(stream_handler)

_file_handler: Optional[logging.FileHandler] = None


def setup_file_logging(logs_dir: Path, level: int = logging.INFO) -> Path:
    """
    Also write log records to a dated file inside `logs_dir`.

    Returns:
        Path of the log file
    """
    global _file_handler

    logs_dir = Path(logs_dir).expanduser().resolve()
    logs_dir.mkdir(parents=True, exist_ok=True)

    current_date = datetime.datetime.now().strftime("%Y-%m-%d")
    log_file_path = logs_dir / f"{__appname__}_{current_date}.log"

    if _file_handler is not None:
        logger.removeHandler(_file_handler)
        _file_handler.close()

    _file_handler = logging.FileHandler(log_file_path)
    _file_handler.setLevel(level)
    _file_handler.setFormatter(logging.Formatter(
        "%(asctime)s [%(levelname)s] %(module)s:%(funcName)s:%(lineno)d - %(message)s"
    ))
    logger.addHandler(_file_handler)
    return log_file_path
