"""
Tests for the prefetch pipeline and its slot lifecycle.
"""

import os

import pytest

from conftest import FakeFetcher
from errors import FetchError
from playlist import PlaylistItem
from prefetch import CANCELLED, CONSUMED, PrefetchPipeline

ITEM = PlaylistItem("https://youtu.be/B", "Clip B", 90)


@pytest.fixture
def pipeline(tmp_path):
    return PrefetchPipeline(FakeFetcher({"https://youtu.be/bad": [False]}), str(tmp_path), clock=lambda: 12.5)


class TestPrefetchPipeline:
    def test_path_is_keyed_by_index(self, pipeline, tmp_path):
        assert pipeline.path_for(3) == os.path.join(str(tmp_path), "video_3_12500.mkv")

    def test_begin_returns_without_waiting(self, pipeline):
        slot = pipeline.begin(ITEM, 4)

        assert slot.target_index == 4
        assert slot.usable
        assert not os.path.exists(slot.local_path)

    def test_consume_returns_downloaded_path(self, pipeline):
        slot = pipeline.begin(ITEM, 4)

        path = pipeline.consume(slot)

        assert path == slot.local_path
        assert os.path.exists(path)
        assert slot.state == CONSUMED

    def test_consume_twice_fails(self, pipeline):
        slot = pipeline.begin(ITEM, 4)
        pipeline.consume(slot)
        with pytest.raises(FetchError):
            pipeline.consume(slot)

    def test_failed_fetch_surfaces_on_consume(self, pipeline):
        slot = pipeline.begin(PlaylistItem("https://youtu.be/bad", "Bad", 0), 1)

        with pytest.raises(FetchError):
            pipeline.consume(slot)
        assert not os.path.exists(slot.local_path)
        assert not slot.usable

    def test_cancel_is_idempotent(self, pipeline):
        slot = pipeline.begin(ITEM, 4)

        assert pipeline.cancel(slot) is True
        assert pipeline.cancel(slot) is False
        assert slot.handle.terminations == 1
        assert slot.state == CANCELLED

    def test_cancel_after_consume_is_noop(self, pipeline):
        slot = pipeline.begin(ITEM, 4)
        path = pipeline.consume(slot)

        assert pipeline.cancel(slot) is False
        assert slot.handle.terminations == 0
        assert os.path.exists(path)

    def test_cancel_removes_partial_output(self, pipeline):
        slot = pipeline.begin(ITEM, 4)
        with open(slot.local_path, "wb") as f:
            f.write(b"partial")

        pipeline.cancel(slot)

        assert not os.path.exists(slot.local_path)

    def test_consume_after_cancel_fails(self, pipeline):
        slot = pipeline.begin(ITEM, 4)
        pipeline.cancel(slot)
        with pytest.raises(FetchError):
            pipeline.consume(slot)

    def test_cancel_none_is_noop(self, pipeline):
        assert pipeline.cancel(None) is False

    def test_cancel_removes_format_fragments(self, pipeline, tmp_path):
        slot = pipeline.begin(ITEM, 4)
        stem = os.path.splitext(slot.local_path)[0]
        for suffix in (".f137.mkv", ".f140.m4a"):
            with open(stem + suffix, "wb") as f:
                f.write(b"fragment")

        pipeline.cancel(slot)

        assert os.listdir(tmp_path) == []

    def test_failed_consume_removes_format_fragments(self, pipeline, tmp_path):
        slot = pipeline.begin(PlaylistItem("https://youtu.be/bad", "Bad", 0), 1)

        with pytest.raises(FetchError):
            pipeline.consume(slot)
        assert os.listdir(tmp_path) == []
