import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Mapping

from snapvault.utils.units import parse_size, DEFAULT_MAX_DISK_SIZE


BACKUP_TYPES = ('full', 'modified_since_last', 'modified_since_full')


class ConfigError(ValueError):
    """Raised when backup configuration values are invalid."""
    pass


def _parse_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)


def _env_bool(name: str, default: bool) -> bool:
    return _parse_bool(os.environ.get(name), default)


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return int(value)


class Config:
    """Base configuration"""

    BASE_DIR = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    DATA_DIR = os.environ.get('DATA_DIR') or '/data'

    # Database
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:////data/snapvault.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Source tree and output directory
    SOURCE_DIR = os.environ.get('SOURCE_DIR') or '/data/world'
    SOURCE_ID = os.environ.get('SOURCE_ID') or None
    SOURCE_LOCK_FILES = ('session.lock',)
    OUTPUT_DIR = os.environ.get('OUTPUT_DIR') or '/data/backups'

    # Backup policy
    BACKUP_ENABLED = _env_bool('BACKUP_ENABLED', True)
    BACKUP_TYPE = os.environ.get('BACKUP_TYPE') or 'full'
    BACKUP_INTERVAL_MINUTES = _env_int('BACKUP_INTERVAL_MINUTES', 120)
    FULL_BACKUP_INTERVAL_MINUTES = _env_int('FULL_BACKUP_INTERVAL_MINUTES', 525960)  # once a year
    BACKUPS_TO_KEEP = _env_int('BACKUPS_TO_KEEP', 10)
    MAX_DISK_SIZE = os.environ.get('MAX_DISK_SIZE') or DEFAULT_MAX_DISK_SIZE
    COMPRESSION_LEVEL = _env_int('COMPRESSION_LEVEL', -1)
    SEND_MESSAGES = _env_bool('SEND_MESSAGES', True)

    # Scheduler
    SCHEDULER_ENABLED = True
    CHECK_INTERVAL_SECONDS = _env_int('CHECK_INTERVAL_SECONDS', 60)
    QUIESCE_TIMEOUT_SECONDS = _env_int('QUIESCE_TIMEOUT_SECONDS', 30)


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    SQLALCHEMY_ECHO = False

    # Use local data directory for development
    DATA_DIR = os.path.join(Config.BASE_DIR, 'data')
    SQLALCHEMY_DATABASE_URI = f'sqlite:///{os.path.join(DATA_DIR, "snapvault.db")}'
    SOURCE_DIR = os.path.join(DATA_DIR, 'world')
    OUTPUT_DIR = os.path.join(DATA_DIR, 'backups')
    BACKUP_INTERVAL_MINUTES = 5


class TestingConfig(DevelopmentConfig):
    """Testing configuration"""
    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SCHEDULER_ENABLED = False
    LOG_TO_FILE = False


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    SQLALCHEMY_ECHO = False


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': ProductionConfig
}


@dataclass(frozen=True)
class BackupSettings:
    """
    Immutable snapshot of the backup policy, taken once per run.

    Built from a Flask config mapping so that edits to the config between
    runs never leak into a run that has already started.
    """

    enabled: bool
    backup_type: str
    min_interval: timedelta
    full_interval: timedelta
    max_archive_count: int
    max_total_bytes: int
    compression_level: int
    output_dir: str
    send_messages: bool
    lock_file_names: tuple = ('session.lock',)

    @property
    def only_incremental(self) -> bool:
        return self.backup_type != 'full'

    @property
    def since_full(self) -> bool:
        return self.backup_type == 'modified_since_full'

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any]) -> 'BackupSettings':
        """
        Build and validate settings from a config mapping.

        Args:
            cfg: Mapping such as ``app.config``

        Returns:
            BackupSettings instance

        Raises:
            ConfigError: If any value is out of range
        """
        backup_type = str(cfg.get('BACKUP_TYPE', 'full')).lower()
        if backup_type not in BACKUP_TYPES:
            raise ConfigError(
                f"Invalid backup type: {backup_type}. Valid options: {list(BACKUP_TYPES)}"
            )

        try:
            interval = int(cfg.get('BACKUP_INTERVAL_MINUTES', 120))
            full_interval = int(cfg.get('FULL_BACKUP_INTERVAL_MINUTES', 525960))
            keep = int(cfg.get('BACKUPS_TO_KEEP', 10))
            level = int(cfg.get('COMPRESSION_LEVEL', -1))
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid numeric backup setting: {e}")

        if interval < 1:
            raise ConfigError("BACKUP_INTERVAL_MINUTES must be at least 1")
        if full_interval < 1:
            raise ConfigError("FULL_BACKUP_INTERVAL_MINUTES must be at least 1")
        if keep < 1:
            raise ConfigError("BACKUPS_TO_KEEP must be at least 1")
        if not -1 <= level <= 9:
            raise ConfigError("COMPRESSION_LEVEL must be between -1 and 9")

        output_dir = cfg.get('OUTPUT_DIR')
        if not output_dir:
            raise ConfigError("OUTPUT_DIR is not configured")

        max_disk_size = str(cfg.get('MAX_DISK_SIZE', DEFAULT_MAX_DISK_SIZE))
        if len(max_disk_size.split(' ')) != 2:
            max_disk_size = DEFAULT_MAX_DISK_SIZE
        try:
            max_total_bytes = parse_size(max_disk_size)
        except ValueError as e:
            raise ConfigError(f"Invalid MAX_DISK_SIZE: {e}")

        return cls(
            enabled=_parse_bool(cfg.get('BACKUP_ENABLED'), True),
            backup_type=backup_type,
            min_interval=timedelta(minutes=interval),
            full_interval=timedelta(minutes=full_interval),
            max_archive_count=keep,
            max_total_bytes=max_total_bytes,
            compression_level=level,
            output_dir=str(output_dir),
            send_messages=_parse_bool(cfg.get('SEND_MESSAGES'), True),
            lock_file_names=tuple(cfg.get('SOURCE_LOCK_FILES', ('session.lock',))),
        )
