import logging
import os
import yaml
from pathlib import Path
from datetime import datetime
from typing import Optional

from keystone.constants import LOG_LEVEL_ENV

DEFAULT_SETTINGS = Path(__file__).resolve().parent.parent / "settings" / "configuration.yaml"


class ColorFormatter(logging.Formatter):
    """
    Formatter adding colour to the level name and timestamp for console output.
    Level and location columns are padded to fixed widths.
    """

    COLOR_CODES = {
        "DEBUG": "\033[94m",  # Blue
        "INFO": "\033[92m",  # Green
        "WARNING": "\033[93m",  # Yellow
        "ERROR": "\033[91m",  # Red
        "CRITICAL": "\033[95m",  # Magenta
    }
    RESET_CODE = "\033[0m"
    BOLD_CODE = "\033[1m"
    DIM_CODE = "\033[2m"

    LEVEL_WIDTH = 8  # Enough for "CRITICAL"
    LOCATION_WIDTH = 28

    def __init__(self, fmt=None, datefmt=None, style="%", use_color=True):
        super().__init__(fmt, datefmt, style)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        level_name = record.levelname.ljust(self.LEVEL_WIDTH)
        location = f"[{record.filename}:{record.lineno}]".ljust(self.LOCATION_WIDTH)

        if self.use_color:
            log_color = self.COLOR_CODES.get(record.levelname, self.RESET_CODE)
            levelname = f"{self.BOLD_CODE}{log_color}{level_name}{self.RESET_CODE}"
            timestamp = f"{self.DIM_CODE}{self.formatTime(record)}{self.RESET_CODE}"
            location = f"{self.BOLD_CODE}{self.DIM_CODE}{location}{self.RESET_CODE}"
        else:
            levelname = level_name
            timestamp = self.formatTime(record)

        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"

        return f"{timestamp} {levelname} {location} {message}"


def load_logging_settings(config_path: Optional[str] = None) -> dict:
    """Read the ``logging`` section of a YAML settings file."""
    path = Path(config_path) if config_path else DEFAULT_SETTINGS
    with open(path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}
    return config.get("logging", {}) or {}


def configure_logging(
    config_path: Optional[str] = None,
    log_level: Optional[str] = None,
    log_dir: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the root logger from the settings file.

    The level is taken from ``log_level``, then the KEYSTONE_LOG_LEVEL
    environment variable, then the settings file. An explicit level or the
    environment variable also replaces the configured ``console_level``. A
    console handler with colour and a timestamped file handler without colour
    are installed.
    """
    log_config = load_logging_settings(config_path)

    override = log_level or os.getenv(LOG_LEVEL_ENV)
    log_level = (override or log_config.get("level", "INFO")).upper()
    log_format = log_config.get(
        "format",
        "%(asctime)s: %(levelname)s from %(name)s - %(message)s [%(filename)s:%(lineno)d]",
    )
    file_level = log_config.get("file_level", "DEBUG").upper()
    if override:
        console_level = log_level
    else:
        console_level = log_config.get("console_level", log_level).upper()

    logs_dir = Path(log_dir or log_config.get("directory", ".logs"))
    logs_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    log_file = logs_dir / f"keystone_{timestamp}.log"

    logger = logging.getLogger()
    logger.setLevel(log_level)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(ColorFormatter(log_format, use_color=True))
    logger.addHandler(console_handler)

    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(file_level)
    file_handler.setFormatter(ColorFormatter(log_format, use_color=False))
    logger.addHandler(file_handler)

    logger.info(f"Logging initialized. Log file: {log_file}")
    return logger
