import os
import tempfile
from dataclasses import dataclass, fields
from datetime import timedelta


class ConfigError(Exception):
    """Raised when configuration is invalid or a prerequisite is missing."""
    pass


class Config:
    """Base configuration (production defaults)"""

    DEBUG = False

    # Local storage
    BACKUP_DIR = os.environ.get('BACKUP_DIR') or '/root/wiki-backups'
    BACKUP_SCRIPT = os.environ.get('BACKUP_SCRIPT') or '/root/outline/backup_wiki_v2.sh'
    ARTIFACT_PATTERN = os.environ.get('ARTIFACT_PATTERN') or '*.tar.gz'

    # Remote (rclone)
    RCLONE_BINARY = os.environ.get('RCLONE_BINARY') or 'rclone'
    RCLONE_REMOTE = os.environ.get('RCLONE_REMOTE') or 'protondrive'
    RCLONE_REMOTE_PATH = os.environ.get('RCLONE_REMOTE_PATH', 'LRL Backup Automation files/wiki-backups')

    # Retention
    KEEP_LOCAL_DAYS = os.environ.get('KEEP_LOCAL_DAYS') or '7'
    RECENT_WINDOW_HOURS = os.environ.get('RECENT_WINDOW_HOURS') or '24'

    # Subprocess timeouts (seconds)
    BACKUP_SCRIPT_TIMEOUT = os.environ.get('BACKUP_SCRIPT_TIMEOUT') or '3600'
    RCLONE_UPLOAD_TIMEOUT = os.environ.get('RCLONE_UPLOAD_TIMEOUT') or '3600'
    RCLONE_LIST_TIMEOUT = os.environ.get('RCLONE_LIST_TIMEOUT') or '300'

    # Logging
    LOG_FILE = os.environ.get('LOG_FILE') or '/var/log/wiki-backup-automation.log'
    LOG_MAX_BYTES = os.environ.get('LOG_MAX_BYTES') or '10485760'  # 10MB
    LOG_BACKUP_COUNT = os.environ.get('LOG_BACKUP_COUNT') or '10'

    # Concurrency
    LOCK_FILE = os.environ.get('LOCK_FILE') or os.path.join(tempfile.gettempdir(), 'wiki-backup.lock')

    # Scheduler
    SCHEDULE_CRON = os.environ.get('SCHEDULE_CRON') or '0 3 * * *'
    SCHEDULER_TIMEZONE = os.environ.get('SCHEDULER_TIMEZONE') or 'UTC'


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True

    # Keep everything under the local data directory
    BASE_DIR = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    DATA_DIR = os.path.join(BASE_DIR, 'data')
    BACKUP_DIR = os.path.join(DATA_DIR, 'wiki-backups')
    BACKUP_SCRIPT = os.path.join(DATA_DIR, 'backup_wiki.sh')
    LOG_FILE = os.path.join(DATA_DIR, 'logs', 'wiki-backup-automation.log')
    LOCK_FILE = os.path.join(DATA_DIR, 'wiki-backup.lock')


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'default': ProductionConfig
}


@dataclass(frozen=True)
class BackupSettings:
    """
    Validated, immutable settings for one orchestrator instance.

    Built from one of the config classes above (see from_config), or
    constructed directly in tests.
    """

    backup_dir: str
    backup_script: str
    log_file: str
    lock_file: str
    rclone_remote: str = 'protondrive'
    rclone_remote_path: str = ''
    rclone_binary: str = 'rclone'
    artifact_pattern: str = '*.tar.gz'
    keep_local_days: int = 7
    recent_window_hours: int = 24
    backup_script_timeout: int = 3600
    rclone_upload_timeout: int = 3600
    rclone_list_timeout: int = 300
    log_max_bytes: int = 10485760
    log_backup_count: int = 10
    schedule_cron: str = '0 3 * * *'
    scheduler_timezone: str = 'UTC'
    debug: bool = False

    def __post_init__(self):
        if self.keep_local_days < 0:
            raise ConfigError(f"KEEP_LOCAL_DAYS must be >= 0, got {self.keep_local_days}")
        if self.recent_window_hours <= 0:
            raise ConfigError(f"RECENT_WINDOW_HOURS must be > 0, got {self.recent_window_hours}")
        for name in ('backup_script_timeout', 'rclone_upload_timeout', 'rclone_list_timeout'):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name.upper()} must be > 0, got {getattr(self, name)}")
        if not self.rclone_remote:
            raise ConfigError("RCLONE_REMOTE must not be empty")
        if not self.artifact_pattern:
            raise ConfigError("ARTIFACT_PATTERN must not be empty")

    @property
    def recent_window(self) -> timedelta:
        return timedelta(hours=self.recent_window_hours)

    @classmethod
    def from_config(cls, config_class) -> 'BackupSettings':
        """
        Build settings from a config class.

        Args:
            config_class: Config subclass with upper-case attributes

        Returns:
            BackupSettings instance

        Raises:
            ConfigError: If a numeric value cannot be parsed or is out of range
        """
        values = {}
        for field in fields(cls):
            key = field.name.upper()
            if not hasattr(config_class, key):
                continue
            raw = getattr(config_class, key)

            if field.type is int:
                try:
                    values[field.name] = int(raw)
                except (TypeError, ValueError):
                    raise ConfigError(f"{key} must be an integer, got {raw!r}")
            elif field.type is bool:
                values[field.name] = bool(raw)
            else:
                values[field.name] = str(raw)

        return cls(**values)


def load_settings(config_name=None) -> BackupSettings:
    """
    Load settings for the named configuration.

    Args:
        config_name: 'development', 'production' or None (uses WIKIBACKUP_ENV)

    Returns:
        BackupSettings

    Raises:
        ConfigError: If the configuration name is unknown or a value is invalid
    """
    if config_name is None:
        config_name = os.environ.get('WIKIBACKUP_ENV', 'production')

    if config_name not in config:
        raise ConfigError(
            f"Unknown configuration: {config_name}. "
            f"Valid options: {list(config.keys())}"
        )

    return BackupSettings.from_config(config[config_name])
