import os
import sys
import logging
from logging.handlers import RotatingFileHandler


__version__ = '1.0.0'

EVENT_FORMAT = '%(asctime)s: %(message)s'
EVENT_DATEFMT = '%Y-%m-%d %H:%M:%S'


class EventFormatter(logging.Formatter):
    """'<timestamp>: <message>', except separator records which are written bare."""

    def format(self, record):
        if getattr(record, 'separator', False):
            return record.getMessage()
        return super().format(record)


class NoSeparatorFilter(logging.Filter):
    def filter(self, record):
        return not getattr(record, 'separator', False)


def configure_logging(settings):
    """Configure the 'wikibackup' logger: stdout plus the run log file"""

    # Create log directory if it doesn't exist
    log_dir = os.path.dirname(os.path.abspath(settings.log_file))
    os.makedirs(log_dir, exist_ok=True)

    # Set log level based on environment
    log_level = logging.DEBUG if settings.debug else logging.INFO

    formatter = EventFormatter(EVENT_FORMAT, datefmt=EVENT_DATEFMT)

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(NoSeparatorFilter())

    # File handler
    file_handler = RotatingFileHandler(
        settings.log_file,
        maxBytes=settings.log_max_bytes,
        backupCount=settings.log_backup_count
    )
    file_handler.setLevel(log_level)
    file_handler.setFormatter(formatter)

    # Replace handlers from a previous configuration (scheduler reuses the process)
    logger = logging.getLogger('wikibackup')
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(log_level)
    logger.addHandler(console_handler)
    logger.addHandler(file_handler)
    logger.propagate = False

    logger.debug(f"Logging configured (level: {logging.getLevelName(log_level)}, file: {settings.log_file})")
    return logger


def create_orchestrator(config_name=None):
    """
    Orchestrator factory.

    Loads settings for the named configuration, configures logging and
    returns a ready BackupOrchestrator.

    Raises:
        ConfigError: If the configuration cannot be loaded
    """
    from wikibackup.config import load_settings
    from wikibackup.backup.executor import BackupOrchestrator

    settings = load_settings(config_name)
    configure_logging(settings)

    return BackupOrchestrator(settings)
