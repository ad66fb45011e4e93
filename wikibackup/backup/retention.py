"""
Retention policy enforcement for local backups.

Deletes archives in the local backup directory whose age, in whole days
since last modification, is greater than the configured number of days.
Cleanup is best-effort: failures are logged and never abort a run.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from wikibackup.models import RunLog
from .storage import LocalStorage, StorageError


class RetentionManager:
    """
    Manages retention policy enforcement for the local backup directory.
    """

    def __init__(self, storage: LocalStorage, retention_days: int, run_log: Optional[RunLog] = None):
        """
        Initialize retention manager.

        Args:
            storage: LocalStorage for the backup directory
            retention_days: Keep archives for this many whole days
            run_log: Run log to record events in (a fresh one if omitted)
        """
        self.storage = storage
        self.retention_days = retention_days
        self.run_log = run_log if run_log is not None else RunLog()

    def enforce(self, now: Optional[datetime] = None) -> int:
        """
        Delete expired local archives.

        Args:
            now: Reference time (defaults to the current time)

        Returns:
            Number of archives deleted
        """
        if now is None:
            now = datetime.now(timezone.utc)

        self._log(f"Cleaning up local backups older than {self.retention_days} days...")

        try:
            to_delete = self.storage.list_expired(now, self.retention_days)
        except StorageError as e:
            self._log(f"WARNING: Failed to list local backups: {e}", logging.WARNING)
            return 0

        if not to_delete:
            self._log("No old backup files to delete")
            return 0

        deleted_count = 0
        for artifact in to_delete:
            try:
                self.storage.delete(artifact)
                deleted_count += 1
                self._log(f"Deleted local file: {artifact.name} ({artifact.age_in_days(now)} days old)", logging.DEBUG)
            except StorageError as e:
                self._log(f"WARNING: Failed to delete {artifact.name}: {e}", logging.WARNING)

        self._log(f"Deleted {deleted_count} old backup files")
        return deleted_count

    def _log(self, message: str, level: int = logging.INFO):
        self.run_log.add(message, level)
