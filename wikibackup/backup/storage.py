"""
Storage handlers for backup archives.

LocalStorage manages the local backup directory; RcloneRemote wraps the
rclone commands used to upload and verify archives on the remote.
"""

import logging
import subprocess
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List

from wikibackup.config import ConfigError
from wikibackup.models import BackupArtifact, RemoteInventory
from .archive import parse_artifact_timestamp


logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when a local storage operation fails."""
    pass


class UploadError(Exception):
    """Raised when copying archives to the remote fails."""
    pass


class VerifyWarning(Exception):
    """Raised when the remote listing fails. Not fatal to a run."""
    pass


class LocalStorage:
    """
    Handler for the local backup directory.

    Archives are matched by filename pattern anywhere below base_path.
    """

    def __init__(self, base_path: str, pattern: str = '*.tar.gz'):
        """
        Initialize local storage handler.

        Args:
            base_path: Local backup directory
            pattern: Glob pattern identifying backup archives
        """
        self.base_path = Path(base_path)
        self.pattern = pattern

    def exists(self) -> bool:
        return self.base_path.is_dir()

    def ensure_exists(self) -> bool:
        """
        Create the backup directory if it doesn't exist.

        Returns:
            True if the directory was created, False if it already existed

        Raises:
            StorageError: If the directory cannot be created
        """
        if self.exists():
            return False

        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create backup directory {self.base_path}: {e}")

        return True

    def list_artifacts(self) -> List[BackupArtifact]:
        """
        List all backup archives.

        Returns:
            Artifacts sorted by modification time, oldest first

        Raises:
            StorageError: If listing fails
        """
        if not self.exists():
            return []

        try:
            artifacts = []

            for file_path in self.base_path.rglob(self.pattern):
                if not file_path.is_file():
                    continue

                stat = file_path.stat()
                artifacts.append(BackupArtifact(
                    path=file_path,
                    modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                    size=stat.st_size,
                    created_at=parse_artifact_timestamp(file_path.name)
                ))

        except OSError as e:
            raise StorageError(f"Failed to list local backups: {e}")

        return sorted(artifacts, key=lambda a: a.modified)

    def list_expired(self, now: datetime, retention_days: int) -> List[BackupArtifact]:
        """Archives whose age in whole days is greater than retention_days."""
        return [a for a in self.list_artifacts() if a.is_expired(now, retention_days)]

    def list_recent(self, now: datetime, window: timedelta) -> List[BackupArtifact]:
        """Archives modified within the rolling window ending at now."""
        return [a for a in self.list_artifacts() if a.is_recent(now, window)]

    def delete(self, artifact: BackupArtifact):
        """
        Delete an archive.

        Raises:
            StorageError: If deletion fails
        """
        try:
            artifact.path.unlink()
        except FileNotFoundError:
            pass
        except PermissionError as e:
            raise StorageError(f"Permission denied deleting {artifact.path}: {e}")
        except OSError as e:
            raise StorageError(f"Failed to delete {artifact.path}: {e}")


class RcloneRemote:
    """
    Handler for a pre-configured rclone remote.

    The remote itself (credentials, endpoint) lives in rclone's own config;
    this class only refers to it by name.
    """

    def __init__(
        self,
        remote_name: str,
        remote_path: str = '',
        binary: str = 'rclone',
        upload_timeout: int = 3600,
        list_timeout: int = 300
    ):
        """
        Initialize rclone remote handler.

        Args:
            remote_name: Remote alias as listed by 'rclone listremotes' (without colon)
            remote_path: Folder on the remote
            binary: rclone executable
            upload_timeout: Seconds allowed for 'rclone copy'
            list_timeout: Seconds allowed for listing commands
        """
        self.remote_name = remote_name.rstrip(':')
        self.remote_path = remote_path
        self.binary = binary
        self.upload_timeout = upload_timeout
        self.list_timeout = list_timeout

    @property
    def target(self) -> str:
        return f"{self.remote_name}:{self.remote_path}"

    def check_configured(self):
        """
        Check that rclone is installed and knows the remote.

        Raises:
            ConfigError: If rclone is missing or the remote is not configured
        """
        try:
            result = self._run(['listremotes'], self.list_timeout)
        except FileNotFoundError:
            raise ConfigError(f"rclone not found (looked for '{self.binary}')")
        except subprocess.TimeoutExpired:
            raise ConfigError(f"'rclone listremotes' timed out after {self.list_timeout}s")

        if result.returncode != 0:
            raise ConfigError(f"'rclone listremotes' failed: {_tail(result.stderr)}")

        remotes = [line.strip() for line in result.stdout.splitlines() if line.strip()]
        if f"{self.remote_name}:" not in remotes:
            raise ConfigError(f"Remote '{self.remote_name}:' not configured in rclone")

    def copy_recent(self, local_dir: str, include: str, max_age: timedelta):
        """
        Copy recent archives from local_dir to the remote.

        Args:
            local_dir: Local backup directory
            include: rclone include filter, e.g. '*.tar.gz'
            max_age: Only copy files modified within this window

        Raises:
            UploadError: If rclone fails or times out
        """
        args = [
            'copy', f"{str(local_dir).rstrip('/')}/", self.target,
            '--include', include,
            '--max-age', format_duration(max_age),
            '--log-level', 'INFO'
        ]

        try:
            result = self._run(args, self.upload_timeout)
        except FileNotFoundError:
            raise UploadError(f"rclone not found (looked for '{self.binary}')")
        except subprocess.TimeoutExpired:
            raise UploadError(f"rclone copy timed out after {self.upload_timeout}s")

        # rclone writes its INFO log to stderr
        for line in (result.stderr or '').splitlines():
            logger.debug(f"[rclone] {line}")

        if result.returncode != 0:
            raise UploadError(f"rclone copy exited with code {result.returncode}: {_tail(result.stderr)}")

    def list_recent(self, max_age: timedelta) -> RemoteInventory:
        """
        List entries on the remote modified within max_age.

        Returns:
            RemoteInventory snapshot

        Raises:
            VerifyWarning: If the listing fails for any reason
        """
        try:
            result = self._run(
                ['lsf', self.target, '--max-age', format_duration(max_age)],
                self.list_timeout
            )
        except FileNotFoundError:
            raise VerifyWarning(f"rclone not found (looked for '{self.binary}')")
        except subprocess.TimeoutExpired:
            raise VerifyWarning(f"rclone lsf timed out after {self.list_timeout}s")

        if result.returncode != 0:
            raise VerifyWarning(f"rclone lsf exited with code {result.returncode}: {_tail(result.stderr)}")

        entries = [line.strip() for line in result.stdout.splitlines() if line.strip()]
        return RemoteInventory(remote=self.target, entries=entries, listed_at=datetime.now())

    def _run(self, args: List[str], timeout: int) -> subprocess.CompletedProcess:
        cmd = [self.binary] + args
        logger.debug(f"Running: {' '.join(cmd)}")
        return subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)


def format_duration(window: timedelta) -> str:
    """Format a timedelta as an rclone duration ('24h', '90m', '45s')."""
    seconds = int(window.total_seconds())
    if seconds % 3600 == 0:
        return f"{seconds // 3600}h"
    if seconds % 60 == 0:
        return f"{seconds // 60}m"
    return f"{seconds}s"


def _tail(text: str) -> str:
    lines = [line for line in (text or '').splitlines() if line.strip()]
    return lines[-1] if lines else 'no output'
