import sys
import logging
from pathlib import Path
from typing import Optional, Union

import embeddb.settings as default_settings

LOG_FORMAT = '%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s'


class SubprocessLogFilter(logging.Filter):
    """
    This filter identifies logs coming from the server's console output
    so a handler can keep or drop them.
    """
    def __init__(self, keep: bool = True):
        super().__init__()
        self.keep = keep

    def filter(self, record):
        # The 'proc.' prefix is used by the pipe readers in supervisor/output.py
        return record.name.startswith('proc.') == self.keep


class MainFormatter(logging.Formatter):
    """A formatter that prints server console lines with their process name and everything else with full context."""

    def __init__(self):
        super().__init__(LOG_FORMAT)

    def format(self, record):
        # Server console lines only carry the process name as context.
        if record.name.startswith('proc.'):
            return f"[{record.name[len('proc.'):]}] {record.getMessage()}"
        return super().format(record)


def setup_logging(
    console_level: int = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
    show_server_output: bool = True
) -> None:
    """
    Configures the root logger for the application.
    This sets up a console handler and optionally a file handler,
    clearing any previously configured handlers to prevent duplication.

    :param console_level: The logging level for the console output (e.g., logging.INFO).
    :param log_file: Optional file receiving every record at DEBUG level. Falls back to EMBEDDB_LOG_FILE.
    :param show_server_output: If False, the server's console lines are kept off the console.
    """
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
    if not show_server_output:
        console_handler.addFilter(SubprocessLogFilter(keep=False))
    root_logger.addHandler(console_handler)

    # --- File Handler (optional, all levels) ---
    log_file = log_file or default_settings.LOG_FILE
    if log_file:
        try:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path, encoding="utf-8")
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(MainFormatter())
            root_logger.addHandler(file_handler)
        except OSError as e:
            root_logger.error(f"Failed to initialize file logging handler at '{log_file}': {e}. Logging to file will be disabled.")
