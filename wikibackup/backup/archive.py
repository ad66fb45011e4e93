"""
Backup archive creation and naming.

Archives are produced by an external backup script (tar + gpg); this module
runs that script and understands the resulting filenames:
- wiki-backup-20250805_031500.tar.gz
- wiki-backup-20250805_031500.tar.gz.gpg
"""

import os
import re
import stat
import logging
import subprocess
from datetime import datetime
from typing import Optional


logger = logging.getLogger(__name__)

# YYYYMMDD, optionally followed by _HHMMSS / -HHMMSS
TIMESTAMP_PATTERN = re.compile(r'(?<!\d)(\d{8})(?:[_-](\d{6}))?(?!\d)')

ARCHIVE_EXTENSIONS = ('.tar.gz.gpg', '.tgz.gpg', '.tar.gz', '.tgz', '.tar', '.gpg')


class CreationError(Exception):
    """Raised when the backup script fails."""
    pass


def ensure_executable(script_path: str) -> bool:
    """
    Add the executable bits to the backup script if they are missing.

    Args:
        script_path: Path to the backup script

    Returns:
        True if the script is executable afterwards
    """
    if os.access(script_path, os.X_OK):
        return True

    try:
        mode = os.stat(script_path).st_mode
        os.chmod(script_path, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    except OSError as e:
        logger.warning(f"Could not make {script_path} executable: {e}")
        return False

    return os.access(script_path, os.X_OK)


def run_backup_script(script_path: str, timeout: Optional[int] = None) -> str:
    """
    Run the backup-generation script.

    Args:
        script_path: Path to the backup script
        timeout: Seconds to wait before giving up (None waits forever)

    Returns:
        Captured standard output of the script

    Raises:
        CreationError: If the script exits non-zero, times out or cannot be run
    """
    ensure_executable(script_path)

    try:
        result = subprocess.run(
            [script_path],
            capture_output=True,
            text=True,
            timeout=timeout
        )
    except subprocess.TimeoutExpired:
        raise CreationError(f"Backup script timed out after {timeout}s")
    except OSError as e:
        raise CreationError(f"Failed to run backup script {script_path}: {e}")

    if result.returncode != 0:
        stderr = (result.stderr or '').strip()
        message = f"Backup script exited with code {result.returncode}"
        if stderr:
            message = f"{message}: {_last_line(stderr)}"
        raise CreationError(message)

    for line in (result.stdout or '').splitlines():
        logger.debug(f"[backup script] {line}")

    return result.stdout or ''


def strip_archive_extension(filename: str) -> str:
    """
    Strip archive extension from filename.

    Handles multi-part extensions like .tar.gz.gpg and .tar.gz

    Args:
        filename: Archive filename with extension

    Returns:
        Filename without extension
    """
    for extension in ARCHIVE_EXTENSIONS:
        if filename.endswith(extension):
            return filename[:-len(extension)]

    # Fallback to standard splitext
    return os.path.splitext(filename)[0]


def parse_artifact_timestamp(filename: str) -> Optional[datetime]:
    """
    Extract the timestamp embedded in an archive filename.

    Args:
        filename: Archive filename, e.g. 'wiki-backup-20250805_031500.tar.gz'

    Returns:
        Parsed datetime (midnight if only a date is present), or None
    """
    for match in TIMESTAMP_PATTERN.finditer(os.path.basename(filename)):
        date_part, time_part = match.groups()
        try:
            if time_part:
                return datetime.strptime(date_part + time_part, '%Y%m%d%H%M%S')
            return datetime.strptime(date_part, '%Y%m%d')
        except ValueError:
            continue

    return None


def _last_line(text: str) -> str:
    lines = [line for line in text.splitlines() if line.strip()]
    return lines[-1] if lines else ''
