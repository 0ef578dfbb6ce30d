#!/usr/bin/env python3
"""Tests for Config validation and config file loading."""

import json
import os
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

import pytest
from pydantic import ValidationError

from feed_timeline import config

pytestmark = [pytest.mark.unit]

FEED = "https://example.com/feed.xml"


class TestConfigFields(unittest.TestCase):
    """Test field coercion and validation."""

    def setUp(self):
        self.env_vars_to_clear = ["LOG_LEVEL", "LOG_FILE", "SPONSORBLOCK_API_BASE"]
        self._saved_env = {var: os.environ.pop(var, None) for var in self.env_vars_to_clear}

    def tearDown(self):
        for var, value in self._saved_env.items():
            if value is None:
                os.environ.pop(var, None)
            else:
                os.environ[var] = value

    def test_defaults(self):
        cfg = config.Config()

        self.assertEqual(cfg.feed_urls, [])
        self.assertIsNone(cfg.max_items)
        self.assertEqual(cfg.output_format, "json")
        self.assertEqual(cfg.skip_categories, ["sponsor"])
        self.assertEqual(cfg.sponsorblock_api_base, config.DEFAULT_SPONSORBLOCK_API_BASE)
        self.assertEqual(cfg.previous_chapter_delay_seconds, 3.0)
        self.assertEqual(cfg.previous_chapter_grace_seconds, 0.5)
        self.assertEqual(cfg.end_of_media_margin_seconds, 0.5)

    def test_aliases_and_field_names(self):
        by_alias = config.Config(feeds=[FEED], output="out.json", skip_category=["intro"])
        by_name = config.Config(feed_urls=[FEED], output_file="out.json", skip_categories=["intro"])

        self.assertEqual(by_alias, by_name)

    def test_single_feed_string(self):
        cfg = config.Config(feeds=f"  {FEED}  ")
        self.assertEqual(cfg.feed_urls, [FEED])

    def test_non_http_feed_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            config.Config(feeds=["ftp://example.com/feed.xml"])
        self.assertIn("http or https", str(ctx.exception))

    def test_max_items_validation(self):
        self.assertEqual(config.Config(max_items="5").max_items, 5)
        self.assertIsNone(config.Config(max_items="").max_items)
        with self.assertRaises(ValidationError):
            config.Config(max_items=-1)

    def test_naive_published_after_is_utc(self):
        cfg = config.Config(published_after="2024-01-01T00:00:00")
        self.assertEqual(cfg.published_after, datetime(2024, 1, 1, tzinfo=timezone.utc))

    def test_timeout_has_floor(self):
        self.assertEqual(config.Config(timeout=0).timeout, config.MIN_TIMEOUT_SECONDS)

    def test_workers_must_be_positive(self):
        with self.assertRaises(ValidationError):
            config.Config(workers=0)

    def test_log_level_is_normalized(self):
        self.assertEqual(config.Config(log_level=" debug ").log_level, "DEBUG")
        with self.assertRaises(ValidationError):
            config.Config(log_level="verbose")

    def test_output_format_accepts_yml(self):
        self.assertEqual(config.Config(output_format="YML").output_format, "yaml")
        with self.assertRaises(ValidationError):
            config.Config(output_format="xml")

    def test_skip_categories_from_comma_string(self):
        cfg = config.Config(skip_category="Sponsor, selfpromo,")
        self.assertEqual(cfg.skip_categories, ["sponsor", "selfpromo"])

    def test_unknown_skip_category_rejected(self):
        with self.assertRaises(ValidationError):
            config.Config(skip_category=["ads"])

    def test_negative_durations_rejected(self):
        with self.assertRaises(ValidationError):
            config.Config(previous_chapter_delay=-1)

    def test_unknown_fields_rejected(self):
        with self.assertRaises(ValidationError):
            config.Config(rss_url=FEED)

    def test_frozen(self):
        cfg = config.Config()
        with self.assertRaises(ValidationError):
            cfg.timeout = 3

    def test_sponsorblock_api_base_trailing_slash(self):
        cfg = config.Config(sponsorblock_api_base="https://mirror.example.com/")
        self.assertEqual(cfg.sponsorblock_api_base, "https://mirror.example.com")


class TestEnvironmentVariables(unittest.TestCase):
    """Test environment variable loading for Config."""

    def setUp(self):
        self.env_vars_to_clear = ["LOG_LEVEL", "LOG_FILE", "SPONSORBLOCK_API_BASE"]
        self._saved_env = {var: os.environ.pop(var, None) for var in self.env_vars_to_clear}

    def tearDown(self):
        for var, value in self._saved_env.items():
            if value is None:
                os.environ.pop(var, None)
            else:
                os.environ[var] = value

    def test_log_level_env_overrides_config(self):
        os.environ["LOG_LEVEL"] = "ERROR"
        cfg = config.Config(log_level="WARNING")
        self.assertEqual(cfg.log_level, "ERROR")

    def test_log_file_from_env(self):
        os.environ["LOG_FILE"] = "/tmp/feed_timeline.log"
        self.assertEqual(config.Config().log_file, "/tmp/feed_timeline.log")

    def test_configured_log_file_wins(self):
        os.environ["LOG_FILE"] = "/tmp/env.log"
        self.assertEqual(config.Config(log_file="/tmp/cfg.log").log_file, "/tmp/cfg.log")

    def test_sponsorblock_api_base_from_env(self):
        os.environ["SPONSORBLOCK_API_BASE"] = "https://env.example.com/"
        self.assertEqual(config.Config().sponsorblock_api_base, "https://env.example.com")


class TestLoadConfigFile(unittest.TestCase):
    """Test load_config_file."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp_dir = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def _write(self, name, text):
        path = self.tmp_dir / name
        path.write_text(text, encoding="utf-8")
        return str(path)

    def test_json(self):
        path = self._write("cfg.json", json.dumps({"feeds": [FEED], "max_items": 3}))

        data = config.load_config_file(path)

        self.assertEqual(data, {"feeds": [FEED], "max_items": 3})
        self.assertEqual(config.Config(**data).max_items, 3)

    def test_yaml(self):
        path = self._write("cfg.yml", f"feeds:\n  - {FEED}\nmerge_sponsor_segments: true\n")

        cfg = config.Config(**config.load_config_file(path))

        self.assertEqual(cfg.feed_urls, [FEED])
        self.assertTrue(cfg.merge_sponsor_segments)

    def test_empty_path(self):
        with self.assertRaises(ValueError):
            config.load_config_file("")

    def test_missing_file(self):
        with self.assertRaises(ValueError) as ctx:
            config.load_config_file(str(self.tmp_dir / "missing.yaml"))
        self.assertIn("not found", str(ctx.exception))

    def test_unsupported_extension(self):
        path = self._write("cfg.toml", "feeds = []")
        with self.assertRaises(ValueError) as ctx:
            config.load_config_file(path)
        self.assertIn("Unsupported", str(ctx.exception))

    def test_invalid_json(self):
        path = self._write("cfg.json", "{not json")
        with self.assertRaises(ValueError) as ctx:
            config.load_config_file(path)
        self.assertIn("Invalid JSON", str(ctx.exception))

    def test_invalid_yaml(self):
        path = self._write("cfg.yaml", "feeds: [unclosed")
        with self.assertRaises(ValueError) as ctx:
            config.load_config_file(path)
        self.assertIn("Invalid YAML", str(ctx.exception))

    def test_top_level_must_be_mapping(self):
        path = self._write("cfg.yaml", "- a\n- b\n")
        with self.assertRaises(ValueError) as ctx:
            config.load_config_file(path)
        self.assertIn("mapping", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
