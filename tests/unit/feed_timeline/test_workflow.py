#!/usr/bin/env python3
"""Tests for the ingestion pipeline in feed_timeline.workflow."""

import json
import logging
import os
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import yaml

from feed_timeline import workflow
from feed_timeline.exceptions import FeedFetchError, FeedTimelineError, SponsorFetchError
from feed_timeline.merge import ChapterMerger
from feed_timeline.models import ChapterSource, SponsorSegment

# Add tests directory to path for conftest import
tests_dir = Path(__file__).resolve().parents[2]
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))

from conftest import (  # noqa: E402
    build_rss_item,
    build_rss_xml,
    create_test_config,
    TEST_CHANNEL_TITLE,
    TEST_CHAPTER_DESCRIPTION,
    TEST_FEED_URL,
)

pytestmark = [pytest.mark.unit]

OTHER_FEED_URL = "https://example.org/feed.xml"
ITEM_ID = "episode-1"


def _chaptered_feed():
    return build_rss_xml(
        items=[
            build_rss_item(
                title="Chaptered",
                guid=ITEM_ID,
                description=TEST_CHAPTER_DESCRIPTION,
                duration="300",
            ),
            build_rss_item(title="Plain", guid="episode-2", description="No time codes here"),
        ]
    ).encode("utf-8")


@patch("feed_timeline.downloader.fetch_feed")
class TestIngestFeed(unittest.TestCase):
    """Tests for ingest_feed."""

    def test_items_get_description_chapters(self, mock_fetch):
        mock_fetch.return_value = _chaptered_feed()

        result = workflow.ingest_feed(create_test_config(), TEST_FEED_URL)

        self.assertTrue(result.ok)
        self.assertEqual(result.channel.title, TEST_CHANNEL_TITLE)
        self.assertEqual([entry.item.title for entry in result.items], ["Chaptered", "Plain"])
        chapters = result.items[0].chapters
        self.assertEqual([c.title for c in chapters], ["Start", "Middle", "End"])
        self.assertEqual(chapters[-1].end, 300)
        self.assertEqual(result.items[1].chapters, [])
        self.assertIsNone(result.items[0].timeline)

    def test_document_is_scanned_once(self, mock_fetch):
        mock_fetch.return_value = _chaptered_feed()

        with patch("feed_timeline.workflow.feed.parse_channel_metadata") as mock_metadata:
            result = workflow.ingest_feed(create_test_config(), TEST_FEED_URL)

        mock_metadata.assert_not_called()
        self.assertEqual(result.channel.title, TEST_CHANNEL_TITLE)

    def test_item_limit(self, mock_fetch):
        mock_fetch.return_value = _chaptered_feed()

        result = workflow.ingest_feed(create_test_config(max_items=1), TEST_FEED_URL)

        self.assertEqual(len(result.items), 1)

    def test_empty_document(self, mock_fetch):
        mock_fetch.return_value = b""

        result = workflow.ingest_feed(create_test_config(), TEST_FEED_URL)

        self.assertEqual(result.items, [])
        self.assertIsNone(result.channel)

    def test_metadata_only(self, mock_fetch):
        mock_fetch.return_value = _chaptered_feed()

        result = workflow.ingest_feed(create_test_config(metadata_only=True), TEST_FEED_URL)

        self.assertEqual(result.channel.title, TEST_CHANNEL_TITLE)
        self.assertEqual(result.channel.link, TEST_FEED_URL)
        self.assertEqual(result.items, [])

    def test_sponsor_segments_are_merged(self, mock_fetch):
        mock_fetch.return_value = _chaptered_feed()
        provider = MagicMock()
        provider.fetch_segments.return_value = [SponsorSegment(100, 120, "sponsor")]
        merger = ChapterMerger(provider=provider, skip_categories=["sponsor"])

        result = workflow.ingest_feed(create_test_config(), TEST_FEED_URL, merger)

        timeline = result.items[0].timeline
        self.assertIsNotNone(timeline)
        self.assertEqual(timeline.item_id, ITEM_ID)
        self.assertEqual(timeline.total_duration, 300)
        sponsors = [c for c in timeline.chapters if c.source == ChapterSource.SPONSOR]
        self.assertEqual([(c.start, c.end, c.is_active) for c in sponsors], [(100, 120, False)])
        provider.fetch_segments.assert_any_call(ITEM_ID)

    def test_cached_timeline_is_reused(self, mock_fetch):
        mock_fetch.return_value = _chaptered_feed()
        provider = MagicMock()
        provider.fetch_segments.return_value = []
        merger = ChapterMerger(provider=provider)

        first = workflow.ingest_feed(create_test_config(), TEST_FEED_URL, merger)
        second = workflow.ingest_feed(create_test_config(), TEST_FEED_URL, merger)

        self.assertEqual(first.items[0].timeline, second.items[0].timeline)
        self.assertEqual(provider.fetch_segments.call_count, 2)

    def test_provider_failure_keeps_description_chapters(self, mock_fetch):
        mock_fetch.return_value = _chaptered_feed()
        provider = MagicMock()
        provider.fetch_segments.side_effect = SponsorFetchError("SponsorBlock request failed")
        merger = ChapterMerger(provider=provider)

        with self.assertLogs("feed_timeline.workflow", level="WARNING"):
            result = workflow.ingest_feed(create_test_config(), TEST_FEED_URL, merger)

        self.assertIsNone(result.items[0].timeline)
        self.assertEqual(len(result.items[0].chapters), 3)

    def test_fetch_failure_propagates(self, mock_fetch):
        mock_fetch.side_effect = FeedFetchError(TEST_FEED_URL, "boom")

        with self.assertRaises(FeedFetchError):
            workflow.ingest_feed(create_test_config(), TEST_FEED_URL)


@patch("feed_timeline.downloader.fetch_feed")
class TestRunPipeline(unittest.TestCase):
    """Tests for run_pipeline."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp_dir = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def test_requires_feeds(self, mock_fetch):
        with self.assertRaises(ValueError):
            workflow.run_pipeline(create_test_config(feed_urls=[]))

    def test_summary_counts_items(self, mock_fetch):
        mock_fetch.return_value = _chaptered_feed()

        count, summary = workflow.run_pipeline(create_test_config())

        self.assertEqual(count, 2)
        self.assertIn("Ingested 2 item(s) from 1/1 feed(s)", summary)
        self.assertIn("Items with chapters: 1", summary)

    def test_failed_feed_does_not_stop_others(self, mock_fetch):
        def fetch(url, user_agent, timeout):
            if url == OTHER_FEED_URL:
                raise FeedFetchError(url, "HTTP 500")
            return _chaptered_feed()

        mock_fetch.side_effect = fetch
        cfg = create_test_config(feed_urls=[TEST_FEED_URL, OTHER_FEED_URL], workers=2)

        with self.assertLogs("feed_timeline.workflow", level="WARNING"):
            count, summary = workflow.run_pipeline(cfg)

        self.assertEqual(count, 2)
        self.assertIn("from 1/2 feed(s)", summary)
        self.assertIn(f"Failed: {OTHER_FEED_URL}", summary)

    def test_all_feeds_failed(self, mock_fetch):
        mock_fetch.side_effect = FeedFetchError(TEST_FEED_URL, "HTTP 500")

        with self.assertLogs("feed_timeline.workflow", level="WARNING"):
            with self.assertRaises(FeedTimelineError):
                workflow.run_pipeline(create_test_config())

    def test_metadata_only_summary(self, mock_fetch):
        mock_fetch.return_value = _chaptered_feed()

        count, summary = workflow.run_pipeline(create_test_config(metadata_only=True))

        self.assertEqual(count, 1)
        self.assertIn("Read channel metadata for 1/1 feed(s)", summary)

    def test_writes_json_output(self, mock_fetch):
        mock_fetch.return_value = _chaptered_feed()
        output = self.tmp_dir / "out" / "items.json"

        _, summary = workflow.run_pipeline(create_test_config(output_file=str(output)))

        data = json.loads(output.read_text(encoding="utf-8"))
        feed_data = data["feeds"][0]
        self.assertEqual(feed_data["feed_url"], TEST_FEED_URL)
        self.assertEqual(feed_data["channel"]["title"], TEST_CHANNEL_TITLE)
        self.assertEqual(len(feed_data["items"][0]["chapters"]), 3)
        self.assertIn(str(output), summary)

    def test_writes_yaml_output(self, mock_fetch):
        mock_fetch.return_value = _chaptered_feed()
        output = self.tmp_dir / "items.yaml"

        workflow.run_pipeline(create_test_config(output_file=str(output), output_format="yaml"))

        data = yaml.safe_load(output.read_text(encoding="utf-8"))
        self.assertEqual(data["feeds"][0]["items"][0]["chapters"][0]["title"], "Start")

    @patch("feed_timeline.sponsor.downloader.fetch_json")
    def test_merge_sponsor_segments(self, mock_fetch_json, mock_fetch):
        mock_fetch.return_value = _chaptered_feed()
        mock_fetch_json.return_value = [
            {"segment": [100, 120], "category": "sponsor", "actionType": "skip"}
        ]

        _, summary = workflow.run_pipeline(create_test_config(merge_sponsor_segments=True))

        self.assertIn("Merged timelines:", summary)
        self.assertEqual(mock_fetch_json.call_count, 2)
        params = mock_fetch_json.call_args_list[0].kwargs["params"]
        self.assertEqual(params["videoID"], ITEM_ID)


class TestApplyLogLevel(unittest.TestCase):
    """Tests for apply_log_level."""

    def setUp(self):
        self.root_logger = logging.getLogger()
        self._saved_level = self.root_logger.level
        self._saved_handlers = {h: h.level for h in self.root_logger.handlers}
        self._saved_module_level = workflow.logger.level
        self._tmp = tempfile.TemporaryDirectory()

    def tearDown(self):
        for handler in list(self.root_logger.handlers):
            if handler in self._saved_handlers:
                handler.setLevel(self._saved_handlers[handler])
            else:
                self.root_logger.removeHandler(handler)
                handler.close()
        self.root_logger.setLevel(self._saved_level)
        workflow.logger.setLevel(self._saved_module_level)
        self._tmp.cleanup()

    def test_invalid_level(self):
        with self.assertRaises(ValueError):
            workflow.apply_log_level("LOUD")

    def test_sets_level_and_log_file(self):
        log_file = os.path.join(self._tmp.name, "logs", "run.log")

        workflow.apply_log_level("warning", log_file)

        self.assertEqual(self.root_logger.level, logging.WARNING)
        self.assertTrue(os.path.isdir(os.path.dirname(log_file)))
        self.assertTrue(
            any(
                isinstance(h, logging.FileHandler) and h.baseFilename == os.path.abspath(log_file)
                for h in self.root_logger.handlers
            )
        )


if __name__ == "__main__":
    unittest.main()
