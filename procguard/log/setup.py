import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

from procguard.config import effective_settings as config

HEARTBEAT_THREAD_PREFIX = "HeartbeatThread-"


class HeartbeatThreadFilter(logging.Filter):
    """
    Drops DEBUG records emitted from heartbeat reporter threads.
    With many items reporting every half second they would drown everything else.
    """
    def filter(self, record):
        if record.levelno > logging.DEBUG:
            return True
        return not record.threadName.startswith(HEARTBEAT_THREAD_PREFIX)


class MainFormatter(logging.Formatter):
    """A custom formatter that tags records emitted by heartbeat reporter threads."""

    DEFAULT_FORMAT = '%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s'
    THREAD_FORMAT = '%(asctime)s - %(levelname)-8s - [%(name)s] [%(threadName)s] - %(message)s'

    def format(self, record):
        # Temporarily change the format string for the superclass call.
        original_format = self._style._fmt
        if record.threadName.startswith(HEARTBEAT_THREAD_PREFIX):
            self._style._fmt = self.THREAD_FORMAT
        else:
            self._style._fmt = self.DEFAULT_FORMAT
        formatted_message = super().format(record)
        self._style._fmt = original_format
        return formatted_message


def setup_logging(console_level: Optional[int] = None, log_file: Optional[str] = None) -> None:
    """
    Configures the root logger for the client.
    This sets up a console handler and, when a log file is configured, a
    rotating file handler, clearing any previously configured handlers to
    prevent duplication.

    :param console_level: The logging level for the console output, defaults to `LOG_LEVEL`.
    :param log_file: Path of the log file, defaults to `LOG_FILE_PATH`. Empty disables file logging.
    """
    if console_level is None:
        console_level = logging.getLevelName(config.LOG_LEVEL)
        if not isinstance(console_level, int):
            console_level = logging.INFO
    log_file = config.LOG_FILE_PATH if log_file is None else log_file

    root_logger = logging.getLogger()
    # Set root level to lowest to capture all messages for handler filtering
    root_logger.setLevel(logging.DEBUG)

    # Clear any existing handlers to prevent re-adding them on re-runs
    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    # --- Console Handler ---
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(MainFormatter())
    console_handler.addFilter(HeartbeatThreadFilter())
    root_logger.addHandler(console_handler)

    # --- File Handler (conditional) ---
    if log_file:
        try:
            path = Path(log_file)
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                path,
                maxBytes=config.LOG_FILE_MAX_BYTES,
                backupCount=config.LOG_FILE_BACKUP_COUNT,
                encoding="utf-8",
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(MainFormatter())
            root_logger.addHandler(file_handler)
        except OSError as e:
            root_logger.error(f"Failed to initialize file logging handler for '{log_file}': {e}")
