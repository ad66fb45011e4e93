"""
Unit tests for scheduler (wikibackup/scheduler.py).

Tests APScheduler configuration and the scheduled backup job.
"""

from unittest.mock import MagicMock, patch

import pytest

from wikibackup import scheduler as scheduler_module
from wikibackup.config import BackupSettings, ConfigError
from wikibackup.models import RunRecord


class TestSchedulerInitialization:
    """Test scheduler initialization."""

    def teardown_method(self):
        """Clean up after each test."""
        # Reset global scheduler
        scheduler_module.scheduler = None

    @patch('wikibackup.scheduler.BlockingScheduler')
    def test_init_scheduler(self, mock_scheduler_class, settings):
        """Test scheduler initialization."""
        mock_scheduler = MagicMock()
        mock_scheduler_class.return_value = mock_scheduler

        result = scheduler_module.init_scheduler(settings)

        assert result == mock_scheduler
        assert scheduler_module.scheduler == mock_scheduler

        call_kwargs = mock_scheduler_class.call_args[1]
        assert call_kwargs['timezone'] == 'UTC'
        assert call_kwargs['job_defaults']['max_instances'] == 1
        assert call_kwargs['job_defaults']['coalesce'] is True

        mock_scheduler.add_job.assert_called_once()
        job_kwargs = mock_scheduler.add_job.call_args[1]
        assert job_kwargs['func'] is scheduler_module.run_scheduled_backup
        assert job_kwargs['id'] == scheduler_module.BACKUP_JOB_ID
        assert job_kwargs['kwargs'] == {'settings': settings}
        assert job_kwargs['replace_existing'] is True

    @patch('wikibackup.scheduler.BlockingScheduler')
    def test_init_scheduler_only_once(self, mock_scheduler_class, settings):
        """Test scheduler is only initialized once."""
        mock_scheduler_class.return_value = MagicMock()

        result1 = scheduler_module.init_scheduler(settings)
        result2 = scheduler_module.init_scheduler(settings)

        assert result1 == result2
        mock_scheduler_class.assert_called_once()

    @patch('wikibackup.scheduler.BlockingScheduler')
    def test_invalid_cron_expression(self, mock_scheduler_class, tmp_path):
        settings = BackupSettings(
            backup_dir=str(tmp_path),
            backup_script=str(tmp_path / 'backup.sh'),
            log_file=str(tmp_path / 'backup.log'),
            lock_file=str(tmp_path / 'backup.lock'),
            schedule_cron='every day at three'
        )

        with pytest.raises(ConfigError, match="Invalid SCHEDULE_CRON"):
            scheduler_module.init_scheduler(settings)

        mock_scheduler_class.assert_not_called()

    def test_real_scheduler_has_backup_job(self, settings):
        """Without mocks the job is registered with a cron trigger."""
        sched = scheduler_module.init_scheduler(settings)

        job = sched.get_job(scheduler_module.BACKUP_JOB_ID)
        assert job is not None
        assert job.name == 'Automated Wiki Backup'
        assert 'cron' in str(job.trigger)


class TestSchedulerLifecycle:
    """Test scheduler start/stop operations."""

    def setup_method(self):
        self.mock_scheduler = MagicMock()
        self.mock_scheduler.running = False
        scheduler_module.scheduler = self.mock_scheduler

    def teardown_method(self):
        scheduler_module.scheduler = None

    def test_start_scheduler(self):
        scheduler_module.start_scheduler()

        self.mock_scheduler.start.assert_called_once()

    def test_start_scheduler_already_running(self):
        self.mock_scheduler.running = True

        scheduler_module.start_scheduler()

        self.mock_scheduler.start.assert_not_called()

    def test_start_scheduler_not_initialized(self):
        scheduler_module.scheduler = None

        with pytest.raises(RuntimeError, match="not initialized"):
            scheduler_module.start_scheduler()

    def test_stop_scheduler(self):
        self.mock_scheduler.running = True

        scheduler_module.stop_scheduler()

        self.mock_scheduler.shutdown.assert_called_once_with(wait=False)

    def test_stop_scheduler_not_running(self):
        scheduler_module.stop_scheduler()

        self.mock_scheduler.shutdown.assert_not_called()


@patch('wikibackup.scheduler.execute_backup')
def test_run_scheduled_backup(mock_execute, settings):
    mock_execute.return_value = RunRecord(started_at=MagicMock(), status='success')

    record = scheduler_module.run_scheduled_backup(settings)

    mock_execute.assert_called_once_with(settings)
    assert record.status == 'success'


@patch('wikibackup.scheduler.load_settings')
def test_main_config_error(mock_load_settings):
    mock_load_settings.side_effect = ConfigError("KEEP_LOCAL_DAYS must be an integer")

    assert scheduler_module.main() == 1
