import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path


def setup_logging(format: str = None):
    """
    Configure logging for the application with log rotation.

    Environment variables:
        LOG_LEVEL: Log level (default: INFO)
        LOG_FILE_PATH: Path to log file (default: logs/application.log)
        LOG_MAX_SIZE: Max size in MB before rotating (default: 10MB)
        LOG_BACKUP_COUNT: Number of backup files to keep (default: 5)
    """
    base_dir = Path(__file__).parent
    log_dir = base_dir / "logs"
    default_log_file = log_dir / "application.log"

    log_level_str = os.environ.get("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    log_file_path = Path(os.environ.get("LOG_FILE_PATH", str(default_log_file)))
    log_file_path.parent.mkdir(parents=True, exist_ok=True)

    try:
        max_mb = int(os.environ.get("LOG_MAX_SIZE", 10))
        max_bytes = max_mb * 1024 * 1024
    except (TypeError, ValueError):
        max_bytes = 10 * 1024 * 1024

    try:
        backup_count = int(os.environ.get("LOG_BACKUP_COUNT", 5))
    except ValueError:
        backup_count = 5

    log_format = format or "%(asctime)s - %(levelname)s - %(name)s - %(filename)s:%(lineno)d - %(message)s"

    file_handler = RotatingFileHandler(
        log_file_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    console_handler = logging.StreamHandler()

    formatter = logging.Formatter(log_format)
    file_handler.setFormatter(formatter)
    console_handler.setFormatter(formatter)

    # Replace handlers so repeated calls do not duplicate output
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(log_level)
    root.addHandler(file_handler)
    root.addHandler(console_handler)

    # Quiet the per-request lines from the HTTP client
    logging.getLogger("httpx").setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        "Log level set to %s, log file: %s, max_bytes: %d, backup_count: %d",
        log_level_str, log_file_path, max_bytes, backup_count,
    )
