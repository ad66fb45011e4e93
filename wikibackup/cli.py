"""
Command-line entry points.

wikibackup           run one backup (no flags; exit 0 on success, 1 on failure)
wikibackup-restore   decrypt and extract a backup archive
"""

import argparse
import logging
import os
from datetime import datetime

from wikibackup import create_orchestrator
from wikibackup.config import ConfigError
from wikibackup.backup.archive import strip_archive_extension
from wikibackup.backup.restore import restore_archive, RestoreError


logger = logging.getLogger('wikibackup.cli')


def main() -> int:
    """Run one backup with settings from the environment."""
    try:
        orchestrator = create_orchestrator()
    except (ConfigError, OSError) as e:
        logger.error(f"ERROR: Cannot start backup: {e}")
        return 1

    record = orchestrator.execute()
    return record.exit_code


def _parse_date(value: str):
    try:
        return datetime.strptime(value, '%Y%m%d').date()
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYYMMDD, got '{value}'")


def get_restore_arguments(argv=None):
    parser = argparse.ArgumentParser(
        prog='wikibackup-restore',
        description="Decrypt and extract a wiki backup archive."
    )
    parser.add_argument("archive", help="Path to a .tar.gz.gpg (or .tar.gz) backup archive")
    parser.add_argument("--dest", help="Directory to extract into (default: ./<archive name>)")
    parser.add_argument("--date", type=_parse_date,
                        help="Backup date YYYYMMDD used for the passphrase (default: from filename, else today)")
    parser.add_argument("--gpg", default="gpg", help="gpg executable")
    return parser.parse_args(argv)


def restore_main(argv=None) -> int:
    """Entry point for 'wikibackup-restore'."""
    args = get_restore_arguments(argv)

    if not logging.getLogger('wikibackup').handlers:
        logging.basicConfig(level=logging.INFO, format='%(levelname)s - %(message)s')

    dest = args.dest or os.path.join(os.getcwd(), strip_archive_extension(os.path.basename(args.archive)))

    try:
        names = restore_archive(args.archive, dest, day=args.date, gpg_binary=args.gpg)
    except RestoreError as e:
        logger.error(f"Restore failed: {e}")
        return 1

    logger.info(f"Restored {len(names)} item(s) to {dest}")
    return 0
