"""
Backup orchestrator - runs the complete backup lifecycle.

Workflow:
1. Init: acquire run lock, check prerequisites, create backup directory
2. Cleanup: delete local archives older than the retention window
3. Create: run the backup script
4. Upload: copy archives from the last 24 hours to the rclone remote
5. Verify: list recent files on the remote (warning only on failure)
6. Summary: log final status, timestamp and separator

The first fatal error skips the remaining phases and goes straight to the
summary with status 'error'.
"""

import os
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from wikibackup.config import BackupSettings, ConfigError
from wikibackup.models import RunRecord, RunState, PhaseResult, TIMESTAMP_FORMAT
from wikibackup.utils.lock import RunLock, RunLockedError
from .archive import run_backup_script, CreationError
from .retention import RetentionManager
from .storage import LocalStorage, RcloneRemote, StorageError, UploadError, VerifyWarning


logger = logging.getLogger(__name__)


class NoRecentArtifact(Exception):
    """Raised when no archive was modified within the upload window."""
    pass


FATAL_ERRORS = (ConfigError, RunLockedError, CreationError, NoRecentArtifact, UploadError)


class BackupOrchestrator:
    """
    Orchestrates one backup run.
    """

    def __init__(
        self,
        settings: BackupSettings,
        local_storage: Optional[LocalStorage] = None,
        remote: Optional[RcloneRemote] = None
    ):
        """
        Initialize backup orchestrator.

        Args:
            settings: Validated settings for this run
            local_storage: Local backup directory handler (built from settings if omitted)
            remote: rclone remote handler (built from settings if omitted)
        """
        self.settings = settings
        self.local_storage = local_storage or LocalStorage(settings.backup_dir, settings.artifact_pattern)
        self.remote = remote or RcloneRemote(
            remote_name=settings.rclone_remote,
            remote_path=settings.rclone_remote_path,
            binary=settings.rclone_binary,
            upload_timeout=settings.rclone_upload_timeout,
            list_timeout=settings.rclone_list_timeout
        )
        self.state = RunState.INIT
        self.record = None
        self.lock = None
        self.now = None

    @property
    def run_log(self):
        return self.record.run_log if self.record else None

    def execute(self) -> RunRecord:
        """
        Execute one backup run.

        Returns:
            RunRecord with the outcome of every phase; never raises for
            phase failures
        """
        self.now = datetime.now(timezone.utc)
        self.state = RunState.INIT
        self.record = RunRecord(started_at=self.now)

        self._log("=== STARTING AUTOMATED WIKI BACKUP ===")
        self._log(f"Backup started at: {self.now.astimezone().strftime(TIMESTAMP_FORMAT)}")

        self.lock = RunLock(self.settings.lock_file)
        try:
            self._execute_workflow()

            self.record.status = 'success'

        except FATAL_ERRORS as e:
            self.record.status = 'error'
            self.record.error_message = str(e)
            self.record.error_kind = type(e).__name__

        except Exception as e:
            logger.exception("Unexpected failure during backup run")
            self._log(f"ERROR: Unexpected failure: {e}", logging.ERROR)
            self.record.status = 'error'
            self.record.error_message = str(e)
            self.record.error_kind = type(e).__name__

        finally:
            # Hold the lock until the separator is written
            try:
                self._send_summary()
            finally:
                self.lock.release()

        return self.record

    def _execute_workflow(self):
        """Run the phases in order; a fatal error propagates out."""
        self._run_phase(RunState.INIT, self.check_prerequisites)
        self._run_phase(RunState.CLEANUP, self.cleanup_old_backups)
        self._run_phase(RunState.CREATE, self.create_backup)
        self._run_phase(RunState.UPLOAD, self.upload_backups)
        self._run_phase(RunState.VERIFY, self.verify_upload)

    def _run_phase(self, state: RunState, step: Callable[[], PhaseResult]):
        self.state = state
        try:
            result = step()
        except FATAL_ERRORS as e:
            self.record.phases.append(PhaseResult(state, ok=False, detail=str(e), error_kind=type(e).__name__))
            raise
        self.record.phases.append(result)

    def check_prerequisites(self) -> PhaseResult:
        """
        Check that the backup script and rclone remote are available.

        Raises:
            RunLockedError: If another run is in progress
            ConfigError: If a prerequisite is missing
        """
        try:
            self.lock.acquire()
        except RunLockedError as e:
            self._log(f"ERROR: {e}", logging.ERROR)
            raise

        script = self.settings.backup_script
        if not os.path.isfile(script):
            self._log(f"ERROR: Backup script not found at {script}", logging.ERROR)
            raise ConfigError(f"Backup script not found at {script}")

        if not self.local_storage.exists():
            self._log(f"Creating backup directory: {self.local_storage.base_path}")
            try:
                self.local_storage.ensure_exists()
            except StorageError as e:
                self._log(f"ERROR: {e}", logging.ERROR)
                raise ConfigError(str(e))

        try:
            self.remote.check_configured()
        except ConfigError as e:
            self._log(f"ERROR: {e}", logging.ERROR)
            raise

        return PhaseResult(RunState.INIT, ok=True, detail='prerequisites satisfied')

    def cleanup_old_backups(self) -> PhaseResult:
        """Delete expired local archives. Never fails the run."""
        manager = RetentionManager(self.local_storage, self.settings.keep_local_days, self.run_log)
        deleted = manager.enforce(self.now)
        self.record.deleted_count = deleted
        return PhaseResult(RunState.CLEANUP, ok=True, detail=f"deleted {deleted}")

    def create_backup(self) -> PhaseResult:
        """
        Run the backup script.

        Raises:
            CreationError: If the script fails
        """
        self._log("Starting wiki backup creation...")

        try:
            run_backup_script(self.settings.backup_script, self.settings.backup_script_timeout)
        except CreationError as e:
            self._log(f"ERROR: Wiki backup creation failed: {e}", logging.ERROR)
            raise

        self._log("Wiki backup created successfully")
        return PhaseResult(RunState.CREATE, ok=True, detail='backup created')

    def upload_backups(self) -> PhaseResult:
        """
        Upload archives from the last 24 hours.

        Raises:
            NoRecentArtifact: If there is nothing recent to upload
            UploadError: If rclone fails
        """
        target = self.remote.target
        self._log(f"Uploading today's backup to {target}...")

        # Window is anchored at invocation time, not at the end of Create
        recent = self.local_storage.list_recent(self.now, self.settings.recent_window)

        if not recent:
            self._log("WARNING: No recent backup files found to upload", logging.WARNING)
            raise NoRecentArtifact("No recent backup files found to upload")

        # rclone applies --max-age from its own start, which is later than self.now
        copy_started = datetime.now(timezone.utc)
        try:
            self.remote.copy_recent(
                self.settings.backup_dir,
                self.settings.artifact_pattern,
                self.settings.recent_window
            )
        except UploadError as e:
            self._log(f"ERROR: Failed to upload backup to {target}: {e}", logging.ERROR)
            raise

        names = [a.name for a in recent if a.is_recent(copy_started, self.settings.recent_window)]
        skipped = [a.name for a in recent if a.name not in names]
        if skipped:
            self._log(
                f"WARNING: Not uploaded, aged out of the upload window before rclone ran: {' '.join(skipped)}",
                logging.WARNING
            )

        self.record.uploaded = names
        self._log(f"Successfully uploaded {len(names)} backup file(s) to {target}")
        self._log(f"Uploaded files: {' '.join(names)}")

        return PhaseResult(RunState.UPLOAD, ok=True, detail=f"uploaded {len(names)}")

    def verify_upload(self) -> PhaseResult:
        """List recent remote files. Listing failure is only a warning."""
        target = self.remote.target
        self._log(f"Verifying upload to {target}...")

        try:
            inventory = self.remote.list_recent(self.settings.recent_window)
        except VerifyWarning as e:
            self._log(
                f"WARNING: Could not verify files on {target} (may be authentication issue): {e}",
                logging.WARNING
            )
            return PhaseResult(RunState.VERIFY, ok=True, detail='not verified', warning=str(e))

        self.record.inventory = inventory
        self._log(f"Found {inventory.count} recent file(s) on {target}")
        if inventory.count > 0:
            self._log(f"Recent files on remote: {' '.join(inventory.entries)}")

        return PhaseResult(RunState.VERIFY, ok=True, detail=f"found {inventory.count}")

    def _send_summary(self):
        """Log finish time and final status, then close the run log."""
        self.state = RunState.DONE
        self.record.completed_at = datetime.now(timezone.utc)

        self._log(f"Backup finished at: {self.record.completed_at.astimezone().strftime(TIMESTAMP_FORMAT)}")
        self._log(f"Log file: {self.settings.log_file}")

        if self.record.succeeded:
            self._log("=== BACKUP COMPLETED SUCCESSFULLY ===")
        else:
            self._log("=== BACKUP COMPLETED WITH ERRORS ===", logging.ERROR)

        self.run_log.close()

    def _log(self, message: str, level: int = logging.INFO):
        self.run_log.add(message, level)


def execute_backup(settings: BackupSettings) -> RunRecord:
    """
    Run one backup with the given settings.

    Returns:
        RunRecord with execution results
    """
    orchestrator = BackupOrchestrator(settings)
    return orchestrator.execute()
