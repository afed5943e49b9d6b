"""
Tests for ltp/detection/scheduler.py

The APScheduler BackgroundScheduler is patched so no threads are started.
"""

import pytest
from datetime import datetime
from unittest.mock import MagicMock, Mock, patch

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, EVENT_JOB_MISSED

from ltp.detection.scheduler import DetectionScheduler


@pytest.fixture
def mock_background():
    with patch('ltp.detection.scheduler.BackgroundScheduler') as cls:
        instance = MagicMock()
        instance.add_job.return_value = MagicMock(id='ltp_detection')
        cls.return_value = instance
        yield cls


@pytest.fixture
def scheduler(mock_background):
    return DetectionScheduler()


class TestInit:
    """Test scheduler construction."""

    def test_job_defaults(self, mock_background):
        DetectionScheduler(timezone='America/Chicago', misfire_grace_time=45)

        kwargs = mock_background.call_args.kwargs
        assert kwargs['job_defaults'] == {
            'coalesce': True,
            'max_instances': 1,
            'misfire_grace_time': 45,
        }
        assert str(kwargs['timezone']) == 'America/Chicago'

    def test_listeners_registered(self, scheduler, mock_background):
        events = [c.args[1] for c in mock_background.return_value.add_listener.call_args_list]
        assert events == [EVENT_JOB_EXECUTED, EVENT_JOB_ERROR, EVENT_JOB_MISSED]


class TestJobs:
    """Test adding and removing jobs."""

    def test_add_interval_job(self, scheduler, mock_background):
        callback = Mock()
        job_id = scheduler.add_interval_job(callback, 60, 'ltp_detection', 'LTP Detection Cycle')

        assert job_id == 'ltp_detection'
        mock_background.return_value.add_job.assert_called_once_with(
            callback,
            trigger='interval',
            seconds=60,
            id='ltp_detection',
            name='LTP Detection Cycle',
            replace_existing=True,
        )
        stats = scheduler.get_job_stats()['ltp_detection']
        assert stats['run_count'] == 0
        assert stats['last_status'] == 'pending'

    def test_add_interval_job_with_first_run(self, scheduler, mock_background):
        first_run = datetime(2025, 3, 10, 9, 30)
        scheduler.add_interval_job(Mock(), 60, 'ltp_detection', next_run_time=first_run)

        kwargs = mock_background.return_value.add_job.call_args.kwargs
        assert kwargs['next_run_time'] == first_run
        assert kwargs['seconds'] == 60

    def test_remove_job(self, scheduler, mock_background):
        scheduler.add_interval_job(Mock(), 60, 'ltp_detection')

        assert scheduler.remove_job('ltp_detection') is True
        mock_background.return_value.remove_job.assert_called_once_with('ltp_detection')
        assert scheduler.get_status()['jobs'] == []

    def test_remove_unknown_job(self, scheduler, mock_background):
        assert scheduler.remove_job('nope') is False
        mock_background.return_value.remove_job.assert_not_called()

    def test_next_run_time(self, scheduler, mock_background):
        next_run = datetime(2025, 3, 10, 10, 1)
        mock_background.return_value.get_job.return_value = MagicMock(next_run_time=next_run)
        scheduler.add_interval_job(Mock(), 60, 'ltp_detection')

        assert scheduler.get_next_run_time('ltp_detection') == next_run
        assert scheduler.get_next_run_time('other') is None


class TestLifecycle:
    """Test start/shutdown."""

    def test_start_and_shutdown(self, scheduler, mock_background):
        scheduler.start()
        assert scheduler.is_running

        scheduler.shutdown(wait=False)
        assert not scheduler.is_running
        mock_background.return_value.start.assert_called_once()
        mock_background.return_value.shutdown.assert_called_once_with(wait=False)

    def test_start_twice_starts_once(self, scheduler, mock_background):
        scheduler.start()
        scheduler.start()

        mock_background.return_value.start.assert_called_once()

    def test_shutdown_when_stopped(self, scheduler, mock_background):
        scheduler.shutdown()
        mock_background.return_value.shutdown.assert_not_called()


class TestListeners:
    """Test job statistics."""

    def test_executed(self, scheduler):
        scheduler.add_interval_job(Mock(), 60, 'ltp_detection')
        scheduler._on_job_executed(Mock(job_id='ltp_detection'))

        stats = scheduler.get_job_stats()['ltp_detection']
        assert stats['run_count'] == 1
        assert stats['last_status'] == 'success'
        assert stats['last_run'] is not None

    def test_error(self, scheduler):
        scheduler.add_interval_job(Mock(), 60, 'ltp_detection')
        scheduler._on_job_error(Mock(job_id='ltp_detection', exception=RuntimeError('boom')))

        stats = scheduler.get_job_stats()['ltp_detection']
        assert stats['error_count'] == 1
        assert stats['last_error'] == 'boom'

    def test_missed(self, scheduler):
        scheduler.add_interval_job(Mock(), 60, 'ltp_detection')
        scheduler._on_job_missed(Mock(job_id='ltp_detection'))

        assert scheduler.get_job_stats()['ltp_detection']['missed_count'] == 1

    def test_unknown_job_is_ignored(self, scheduler):
        scheduler._on_job_executed(Mock(job_id='unknown'))
        assert scheduler.get_job_stats() == {}


class TestStatus:
    """Test get_status."""

    def test_status(self, scheduler, mock_background):
        mock_background.return_value.get_job.return_value = MagicMock(next_run_time=None)
        scheduler.add_interval_job(Mock(), 60, 'ltp_detection')

        status = scheduler.get_status()

        assert status['running'] is False
        assert status['timezone'] == 'America/New_York'
        assert status['jobs_count'] == 1
        assert status['next_runs'] == {'ltp_detection': None}

    def test_status_includes_job_stats(self, scheduler, mock_background):
        mock_background.return_value.get_job.return_value = MagicMock(next_run_time=None)
        scheduler.add_interval_job(Mock(), 60, 'ltp_detection')
        scheduler._on_job_missed(Mock(job_id='ltp_detection'))

        status = scheduler.get_status()

        assert status['job_stats']['ltp_detection']['missed_count'] == 1
        assert status['job_stats']['ltp_detection']['run_count'] == 0
