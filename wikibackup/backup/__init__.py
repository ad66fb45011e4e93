"""
Backup module for wikibackup.

This module handles the backup lifecycle:
- Archive creation (external backup script)
- Storage (local backup directory and rclone remote)
- Retention policy enforcement
- Orchestration of a complete run
- Restore of encrypted archives
"""

from .executor import BackupOrchestrator, NoRecentArtifact
from .archive import run_backup_script, CreationError
from .storage import LocalStorage, RcloneRemote, StorageError, UploadError, VerifyWarning
from .retention import RetentionManager
from .restore import restore_archive, derive_passphrase, RestoreError

__all__ = [
    'BackupOrchestrator',
    'NoRecentArtifact',
    'run_backup_script',
    'CreationError',
    'LocalStorage',
    'RcloneRemote',
    'StorageError',
    'UploadError',
    'VerifyWarning',
    'RetentionManager',
    'restore_archive',
    'derive_passphrase',
    'RestoreError'
]
