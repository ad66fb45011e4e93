"""
Shared pytest fixtures for wikibackup tests.

This module provides fixtures for:
- BackupSettings pointing at a temporary directory tree
- A stand-in backup script
- Archive files with controlled modification times
- Mock rclone remote and completed-process results
"""

import os
import io
import time
import tarfile
import subprocess
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from wikibackup.config import BackupSettings
from wikibackup.models import RemoteInventory


@pytest.fixture
def backup_script(tmp_path):
    """An executable shell script standing in for the real backup script."""
    script = tmp_path / 'backup_wiki.sh'
    script.write_text('#!/bin/sh\nexit 0\n')
    script.chmod(0o755)
    return script


@pytest.fixture
def settings(tmp_path, backup_script):
    """
    Settings with every path under tmp_path.

    Backup directory: tmp_path/backups (not created)
    """
    return BackupSettings(
        backup_dir=str(tmp_path / 'backups'),
        backup_script=str(backup_script),
        log_file=str(tmp_path / 'logs' / 'wiki-backup.log'),
        lock_file=str(tmp_path / 'wiki-backup.lock'),
        rclone_remote='protondrive',
        rclone_remote_path='wiki-backups',
    )


@pytest.fixture
def backup_dir(settings):
    """The settings' backup directory, created."""
    path = Path(settings.backup_dir)
    path.mkdir(parents=True, exist_ok=True)
    return path


@pytest.fixture
def make_artifact(backup_dir):
    """
    Factory creating an archive file aged relative to a reference time.

    Usage: make_artifact('wiki-backup-20240110.tar.gz', age=timedelta(days=5), now=...)
    """
    def _make(name, age=timedelta(0), now=None, content=b'archive', directory=None):
        if now is None:
            now = datetime.now(timezone.utc)
        path = Path(directory or backup_dir) / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)

        mtime = (now - age).timestamp()
        os.utime(path, (mtime, mtime))
        return path

    return _make


@pytest.fixture
def mock_remote():
    """
    MagicMock standing in for RcloneRemote.

    check_configured and copy_recent succeed; list_recent returns one entry.
    """
    remote = MagicMock()
    remote.target = 'protondrive:wiki-backups'
    remote.check_configured.return_value = None
    remote.copy_recent.return_value = None
    remote.list_recent.return_value = RemoteInventory(
        remote='protondrive:wiki-backups',
        entries=['wiki-backup-20240115_030000.tar.gz'],
        listed_at=datetime(2024, 1, 15, 12, 0, 0)
    )
    return remote


@pytest.fixture
def completed():
    """Factory for subprocess.CompletedProcess results."""
    def _completed(returncode=0, stdout='', stderr='', args=None):
        return subprocess.CompletedProcess(args=args or [], returncode=returncode, stdout=stdout, stderr=stderr)

    return _completed


@pytest.fixture
def sample_tarball():
    """
    Bytes of a gzip'd tar containing:
    - wiki/pages.json
    - wiki/attachments/logo.txt
    """
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode='w:gz') as tar:
        for name, data in (
            ('wiki/pages.json', b'{"pages": []}'),
            ('wiki/attachments/logo.txt', b'logo'),
        ):
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


@pytest.fixture
def new_york_tz(monkeypatch):
    """Run with a local timezone that observes daylight saving time."""
    monkeypatch.setenv('TZ', 'America/New_York')
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()
