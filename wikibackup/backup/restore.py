"""
Restore helper for encrypted wiki backups.

Archives are encrypted symmetrically by the backup script with a passphrase
derived from the backup date ('wiki-backup-YYYYMMDD'). Restoring means
decrypting with gpg and extracting the gzip'd tar stream.
"""

import logging
import subprocess
import tarfile
from datetime import date
from pathlib import Path
from typing import List, Optional

from .archive import parse_artifact_timestamp


logger = logging.getLogger(__name__)

PASSPHRASE_PREFIX = 'wiki-backup-'


class RestoreError(Exception):
    """Raised when an archive cannot be decrypted or extracted."""
    pass


def derive_passphrase(day: date) -> str:
    """
    Passphrase the backup script uses for archives made on the given day.

    Args:
        day: Backup date

    Returns:
        Passphrase, e.g. 'wiki-backup-20250805'
    """
    return f"{PASSPHRASE_PREFIX}{day.strftime('%Y%m%d')}"


def backup_date_for(archive_path: str) -> date:
    """Date embedded in the archive name, or today if there is none."""
    timestamp = parse_artifact_timestamp(Path(archive_path).name)
    if timestamp is not None:
        return timestamp.date()
    return date.today()


def restore_archive(
    archive_path: str,
    dest_dir: str,
    day: Optional[date] = None,
    gpg_binary: str = 'gpg',
    timeout: Optional[int] = None
) -> List[str]:
    """
    Decrypt (if needed) and extract a backup archive.

    Args:
        archive_path: Path to a *.tar.gz.gpg or *.tar.gz archive
        dest_dir: Directory to extract into (created if missing)
        day: Backup date used to derive the passphrase (taken from the
            filename, else today, when omitted)
        gpg_binary: gpg executable
        timeout: Seconds to wait for gpg after extraction finishes

    Returns:
        Names of the extracted members

    Raises:
        RestoreError: If decryption or extraction fails
    """
    archive = Path(archive_path)
    if not archive.is_file():
        raise RestoreError(f"Archive not found: {archive_path}")

    dest = Path(dest_dir)
    dest.mkdir(parents=True, exist_ok=True)

    if archive.name.endswith('.gpg'):
        if day is None:
            day = backup_date_for(archive.name)
        return _decrypt_and_extract(archive, dest, derive_passphrase(day), gpg_binary, timeout)

    try:
        with tarfile.open(archive, 'r:gz') as tar:
            return _extract(tar, dest)
    except (tarfile.TarError, OSError) as e:
        raise RestoreError(f"Failed to extract {archive.name}: {e}")


def _decrypt_and_extract(archive: Path, dest: Path, passphrase: str, gpg_binary: str, timeout) -> List[str]:
    cmd = [
        gpg_binary, '--decrypt', '--batch', '--quiet',
        '--passphrase', passphrase,
        str(archive)
    ]
    logger.info(f"Decrypting {archive.name}")

    try:
        proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
    except FileNotFoundError:
        raise RestoreError(f"gpg not found (looked for '{gpg_binary}')")

    extracted = None
    extract_error = None
    try:
        # Stream mode: gpg output is not seekable
        with tarfile.open(fileobj=proc.stdout, mode='r|gz') as tar:
            extracted = _extract(tar, dest)
    except (tarfile.TarError, OSError, EOFError) as e:
        extract_error = e
    finally:
        proc.stdout.close()

    try:
        returncode = proc.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait()
        raise RestoreError(f"gpg timed out after {timeout}s")

    stderr = proc.stderr.read().decode(errors='replace').strip() if proc.stderr else ''
    if proc.stderr:
        proc.stderr.close()

    # gpg's own error (wrong passphrase, corrupt file) explains a failed extraction better
    if returncode != 0:
        raise RestoreError(f"gpg decryption failed (exit {returncode}): {stderr or 'no output'}")
    if extract_error is not None:
        raise RestoreError(f"Failed to extract {archive.name}: {extract_error}")

    return extracted


def _extract(tar: tarfile.TarFile, dest: Path) -> List[str]:
    names = []
    for member in tar:
        tar.extract(member, path=dest, filter='data')
        names.append(member.name)
    return names
