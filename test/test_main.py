#!/usr/bin/env python3

import unittest
from unittest.mock import Mock, patch
import sys
import os

# Add parent directory to path to import modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import main
from errors import ClusterError, SnapshotFailedError

ENVIRONMENT = {
    "ELASTICSEARCH_ADDRESS": "https://test-opensearch:9200",
    "ELASTICSEARCH_REPOSITORY": "backup-repo",
    "ELASTICSEARCH_INDEX_FILTER": "logs-*",
}


@patch('main.configure_logging')
class TestMain(unittest.TestCase):
    """Tests for the process boundary in main.py"""

    @patch.dict(os.environ, ENVIRONMENT, clear=True)
    @patch('main.IndexCleaner')
    def test_retire_now(self, mock_cleaner_class, mock_configure_logging):
        mock_cleaner = Mock()
        mock_cleaner.retire_outdated_indices.return_value = []
        mock_cleaner_class.return_value = mock_cleaner

        exit_code = main.main(["-action", "retire-now", "-k", "20"])

        self.assertEqual(exit_code, 0)
        settings = mock_cleaner_class.call_args[0][0]
        self.assertEqual(settings.keep_days, 20)
        self.assertEqual(settings.repository, "backup-repo")
        mock_cleaner.retire_outdated_indices.assert_called_once()
        mock_configure_logging.assert_called_once_with("INFO")

    @patch.dict(os.environ, ENVIRONMENT, clear=True)
    @patch('main.IndexCleaner')
    def test_flags_override_environment(self, mock_cleaner_class, mock_configure_logging):
        mock_cleaner_class.return_value.retire_outdated_indices.return_value = []

        main.main(["-action", "retire-now", "-r", "other-repo", "-f", "kong-*,istio-*"])

        settings = mock_cleaner_class.call_args[0][0]
        self.assertEqual(settings.repository, "other-repo")
        self.assertEqual(settings.index_patterns, ("kong-*", "istio-*"))

    @patch.dict(os.environ, {}, clear=True)
    @patch('main.IndexCleaner')
    def test_missing_configuration_exits_non_zero(self, mock_cleaner_class, mock_configure_logging):
        exit_code = main.main(["-action", "retire-now"])

        self.assertEqual(exit_code, 1)
        mock_cleaner_class.assert_not_called()

    @patch.dict(os.environ, ENVIRONMENT, clear=True)
    @patch('main.IndexCleaner')
    def test_cluster_error_exits_non_zero(self, mock_cleaner_class, mock_configure_logging):
        mock_cleaner_class.return_value.retire_outdated_indices.side_effect = ClusterError("connection refused")

        self.assertEqual(main.main(["-action", "retire-now"]), 1)

    @patch.dict(os.environ, ENVIRONMENT, clear=True)
    @patch('main.IndexCleaner')
    def test_list_outdated(self, mock_cleaner_class, mock_configure_logging):
        mock_cleaner = mock_cleaner_class.return_value
        mock_cleaner.list_outdated_indices.return_value = ["logs-2021.01.01"]

        self.assertEqual(main.main(["-action", "list-outdated", "-v"]), 0)

        mock_cleaner.list_outdated_indices.assert_called_once()
        mock_cleaner.retire_outdated_indices.assert_not_called()
        mock_configure_logging.assert_called_once_with("DEBUG")

    @patch.dict(os.environ, ENVIRONMENT, clear=True)
    @patch('main.start_retirement')
    @patch('main.IndexCleaner')
    def test_start_retirement(self, mock_cleaner_class, mock_start_retirement, mock_configure_logging):
        self.assertEqual(main.main(["-action", "start-retirement"]), 0)
        mock_start_retirement.assert_called_once_with(mock_cleaner_class.return_value, 1)

    def test_invalid_action(self, mock_configure_logging):
        with self.assertRaises(SystemExit):
            main.main(["-action", "snapshot-restore"])


class TestMainHelpers(unittest.TestCase):

    @patch.dict(os.environ, {"LOG_LEVEL": "warning"}, clear=True)
    def test_log_level(self):
        self.assertEqual(main.log_level_for(0, False), "WARNING")
        self.assertEqual(main.log_level_for(0, True), "DEBUG")
        self.assertEqual(main.log_level_for(1, False), "DEBUG")
        self.assertEqual(main.log_level_for(3, False), "TRACE")

    def test_retirement_job_survives_failure(self):
        cleaner = Mock()
        cleaner.retire_outdated_indices.side_effect = SnapshotFailedError("logs", "FAILED", 3)

        with patch('main.logger') as mock_logger:
            main.retirement_job(cleaner)

        mock_logger.error.assert_called_once()
        self.assertIn("Scheduled retirement failed", mock_logger.error.call_args[0][0])

    @patch('main.time.sleep', side_effect=KeyboardInterrupt)
    @patch('main.BackgroundScheduler')
    def test_start_retirement_schedules_daily_job(self, mock_scheduler_class, mock_sleep):
        cleaner = Mock()
        scheduler = mock_scheduler_class.return_value

        main.start_retirement(cleaner, 3)

        scheduler.add_job.assert_called_once_with(main.retirement_job, "cron", hour=3, minute=0, args=[cleaner], max_instances=1)
        scheduler.start.assert_called_once()
        scheduler.shutdown.assert_called_once()


if __name__ == '__main__':
    unittest.main()
