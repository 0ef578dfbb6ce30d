#!/usr/bin/env python3
"""Unit tests for the service API (ServiceResult, run, run_from_config_file, main)."""

import importlib
import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

import pytest

from feed_timeline import config

# Import service module directly (not via __getattr__)
service_module = importlib.import_module("feed_timeline.service")
ServiceResult = service_module.ServiceResult

pytestmark = [pytest.mark.unit]

FEED = "https://example.com/feed.xml"


class TestServiceResult(unittest.TestCase):
    """Unit tests for ServiceResult dataclass."""

    def test_service_result_defaults(self):
        result = ServiceResult(items_processed=0, summary="")

        self.assertTrue(result.success)
        self.assertIsNone(result.error)

    def test_service_result_equality(self):
        self.assertEqual(
            ServiceResult(items_processed=5, summary="Test"),
            ServiceResult(items_processed=5, summary="Test"),
        )
        self.assertNotEqual(
            ServiceResult(items_processed=5, summary="Test"),
            ServiceResult(items_processed=3, summary="Test"),
        )


@patch("feed_timeline.service.workflow.apply_log_level")
class TestRun(unittest.TestCase):
    """Tests for service.run."""

    @patch("feed_timeline.service.workflow.run_pipeline")
    def test_success(self, mock_run_pipeline, mock_apply_log_level):
        mock_run_pipeline.return_value = (4, "Ingested 4 item(s)")
        cfg = config.Config(feeds=[FEED], log_level="DEBUG")

        result = service_module.run(cfg)

        self.assertEqual(result, ServiceResult(items_processed=4, summary="Ingested 4 item(s)"))
        mock_apply_log_level.assert_called_once_with(level="DEBUG", log_file=None)
        mock_run_pipeline.assert_called_once_with(cfg)

    @patch("feed_timeline.service.workflow.run_pipeline")
    def test_failure_is_reported(self, mock_run_pipeline, mock_apply_log_level):
        mock_run_pipeline.side_effect = ValueError("At least one feed URL is required")

        with self.assertLogs("feed_timeline.service", level="ERROR"):
            result = service_module.run(config.Config())

        self.assertFalse(result.success)
        self.assertEqual(result.items_processed, 0)
        self.assertEqual(result.error, "At least one feed URL is required")


class TestRunFromConfigFile(unittest.TestCase):
    """Tests for service.run_from_config_file."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp_dir = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def test_missing_file(self):
        with self.assertLogs("feed_timeline.service", level="ERROR"):
            result = service_module.run_from_config_file(self.tmp_dir / "missing.yaml")

        self.assertFalse(result.success)
        self.assertIn("Failed to load configuration file", result.error)

    def test_invalid_config(self):
        path = self.tmp_dir / "config.json"
        path.write_text(json.dumps({"feeds": [FEED], "workers": 0}), encoding="utf-8")

        with self.assertLogs("feed_timeline.service", level="ERROR"):
            result = service_module.run_from_config_file(path)

        self.assertFalse(result.success)

    @patch("feed_timeline.service.run")
    def test_valid_config_runs(self, mock_run):
        mock_run.return_value = ServiceResult(items_processed=1, summary="ok")
        path = self.tmp_dir / "config.yaml"
        path.write_text(f"feeds:\n  - {FEED}\nmax_items: 2\n", encoding="utf-8")

        result = service_module.run_from_config_file(path)

        self.assertTrue(result.success)
        cfg = mock_run.call_args.args[0]
        self.assertEqual(cfg.feed_urls, [FEED])
        self.assertEqual(cfg.max_items, 2)


class TestMain(unittest.TestCase):
    """Tests for service.main exit codes."""

    @patch("feed_timeline.service.run_from_config_file")
    def test_success_exit_code(self, mock_run):
        mock_run.return_value = ServiceResult(items_processed=1, summary="done")

        with patch("builtins.print") as mock_print:
            self.assertEqual(service_module.main(["--config", "config.yaml"]), 0)
        mock_print.assert_called_once_with("done")

    @patch("feed_timeline.service.run_from_config_file")
    def test_failure_exit_code(self, mock_run):
        mock_run.return_value = ServiceResult(
            items_processed=0, summary="", success=False, error="boom"
        )

        with patch("builtins.print"):
            self.assertEqual(service_module.main(["--config", "config.yaml"]), 1)

    def test_config_is_required(self):
        with patch("sys.stderr"):
            with self.assertRaises(SystemExit):
                service_module.main([])


if __name__ == "__main__":
    unittest.main()
