"""
Centralized Logging Configuration for examguard

Console output for everything, and when file logging is on, three rotating
files per service: the main log, errors only, and the [PROCTOR] audit
trail of infraction and block decisions.
"""
import logging
import logging.handlers
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Emits the [PROCTOR] lines (examguard.proctor.utils.logging)
AUDIT_LOGGER = "examguard.proctor.utils.logging"

# Relay traffic logs one INFO line per request
NOISY_LOGGERS = ("httpx", "httpcore")


def _rotating(path: Path, max_mb: int, backups: int, level: int, formatter: logging.Formatter):
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=max_mb * 1024 * 1024,
        backupCount=backups,
        encoding="utf-8"
    )
    handler.setFormatter(formatter)
    handler.setLevel(level)
    return handler


def setup_logging(
    service_name: str = "examguard",
    level: str = "INFO",
    log_to_file: bool = False,
    log_to_console: bool = True,
    log_dir: str = "logs"
) -> logging.Logger:
    """
    Set up logging for the service

    Args:
        service_name: Name of the service (used in log filenames)
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_to_file: Whether to write rotating files under log_dir
        log_to_console: Whether to write to stdout
        log_dir: Directory for the rotating files

    Returns:
        The service logger
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers = []

    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)

    if log_to_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    audit_logger = logging.getLogger(AUDIT_LOGGER)
    for handler in list(audit_logger.handlers):
        audit_logger.removeHandler(handler)
        handler.close()

    log_file: Optional[Path] = None
    if log_to_file:
        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        today = datetime.now().strftime("%Y-%m-%d")
        log_file = directory / f"{service_name}_{today}.log"

        root_logger.addHandler(_rotating(log_file, 10, 5, logging.DEBUG, formatter))
        root_logger.addHandler(
            _rotating(directory / f"{service_name}_errors.log", 5, 3, logging.ERROR, formatter)
        )
        # Still propagates to the main log as well
        audit_logger.addHandler(
            _rotating(directory / f"{service_name}_proctor.log", 10, 10, logging.DEBUG, formatter)
        )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger(service_name)
    logger.info(f"=== {service_name.upper()} STARTED ===")
    logger.info(f"Log level: {level}")
    if log_file is not None:
        logger.info(f"Log file: {log_file}")

    return logger
