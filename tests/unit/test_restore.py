"""
Unit tests for the restore helper (wikibackup/backup/restore.py).

gpg is replaced by a fake process whose stdout yields a real tar.gz stream.
"""

import io
import tarfile
from datetime import date
from unittest.mock import MagicMock, patch

import pytest
from freezegun import freeze_time

from wikibackup.backup.restore import (
    restore_archive,
    derive_passphrase,
    backup_date_for,
    RestoreError
)


def fake_gpg_process(stdout_bytes=b'', returncode=0, stderr=b''):
    proc = MagicMock()
    proc.stdout = io.BytesIO(stdout_bytes)
    proc.stderr = io.BytesIO(stderr)
    proc.wait.return_value = returncode
    return proc


class TestDerivePassphrase:

    def test_passphrase_format(self):
        assert derive_passphrase(date(2025, 8, 5)) == 'wiki-backup-20250805'

    def test_backup_date_from_filename(self):
        assert backup_date_for('wiki-backup-20250805_031500.tar.gz.gpg') == date(2025, 8, 5)

    @freeze_time("2024-01-15")
    def test_backup_date_defaults_to_today(self):
        assert backup_date_for('latest.tar.gz.gpg') == date(2024, 1, 15)


class TestRestoreEncrypted:

    @patch('wikibackup.backup.restore.subprocess.Popen')
    def test_decrypts_and_extracts(self, mock_popen, tmp_path, sample_tarball):
        archive = tmp_path / 'wiki-backup-20250805_031500.tar.gz.gpg'
        archive.write_bytes(b'encrypted')
        mock_popen.return_value = fake_gpg_process(sample_tarball)
        dest = tmp_path / 'restored'

        names = restore_archive(str(archive), str(dest))

        assert 'wiki/pages.json' in names
        assert (dest / 'wiki' / 'pages.json').read_text() == '{"pages": []}'
        assert (dest / 'wiki' / 'attachments' / 'logo.txt').exists()

        cmd = mock_popen.call_args[0][0]
        assert cmd[:2] == ['gpg', '--decrypt']
        assert '--batch' in cmd
        assert cmd[cmd.index('--passphrase') + 1] == 'wiki-backup-20250805'
        assert cmd[-1] == str(archive)

    @patch('wikibackup.backup.restore.subprocess.Popen')
    def test_explicit_date_overrides_filename(self, mock_popen, tmp_path, sample_tarball):
        archive = tmp_path / 'wiki-backup-20250805.tar.gz.gpg'
        archive.write_bytes(b'encrypted')
        mock_popen.return_value = fake_gpg_process(sample_tarball)

        restore_archive(str(archive), str(tmp_path / 'out'), day=date(2025, 8, 4))

        cmd = mock_popen.call_args[0][0]
        assert cmd[cmd.index('--passphrase') + 1] == 'wiki-backup-20250804'

    @patch('wikibackup.backup.restore.subprocess.Popen')
    def test_wrong_passphrase_reports_gpg_error(self, mock_popen, tmp_path):
        archive = tmp_path / 'wiki-backup-20250805.tar.gz.gpg'
        archive.write_bytes(b'encrypted')
        mock_popen.return_value = fake_gpg_process(b'', returncode=2, stderr=b'gpg: decryption failed: Bad session key')

        with pytest.raises(RestoreError, match="Bad session key"):
            restore_archive(str(archive), str(tmp_path / 'out'))

    @patch('wikibackup.backup.restore.subprocess.Popen')
    def test_gpg_missing(self, mock_popen, tmp_path):
        archive = tmp_path / 'wiki-backup-20250805.tar.gz.gpg'
        archive.write_bytes(b'encrypted')
        mock_popen.side_effect = FileNotFoundError()

        with pytest.raises(RestoreError, match="gpg not found"):
            restore_archive(str(archive), str(tmp_path / 'out'))

    @patch('wikibackup.backup.restore.subprocess.Popen')
    def test_corrupt_stream_with_gpg_success(self, mock_popen, tmp_path):
        archive = tmp_path / 'wiki-backup-20250805.tar.gz.gpg'
        archive.write_bytes(b'encrypted')
        mock_popen.return_value = fake_gpg_process(b'not a tarball at all')

        with pytest.raises(RestoreError, match="Failed to extract"):
            restore_archive(str(archive), str(tmp_path / 'out'))


class TestRestorePlain:

    def test_extracts_unencrypted_archive(self, tmp_path, sample_tarball):
        archive = tmp_path / 'wiki-backup-20250805.tar.gz'
        archive.write_bytes(sample_tarball)

        names = restore_archive(str(archive), str(tmp_path / 'out'))

        assert sorted(names) == ['wiki/attachments/logo.txt', 'wiki/pages.json']

    def test_missing_archive(self, tmp_path):
        with pytest.raises(RestoreError, match="Archive not found"):
            restore_archive(str(tmp_path / 'missing.tar.gz'), str(tmp_path / 'out'))

    def test_member_escaping_destination_is_rejected(self, tmp_path):
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode='w:gz') as tar:
            info = tarfile.TarInfo('../escape.txt')
            info.size = 1
            tar.addfile(info, io.BytesIO(b'x'))
        archive = tmp_path / 'evil.tar.gz'
        archive.write_bytes(buffer.getvalue())

        with pytest.raises(RestoreError):
            restore_archive(str(archive), str(tmp_path / 'out'))

        assert not (tmp_path / 'escape.txt').exists()
