"""
Shared fixtures: in-memory stand-ins for yt-dlp, ffmpeg and the clock.
"""

import os
from unittest.mock import MagicMock

import pytest

from errors import FetchError, PublishError
from lifecycle import LifecycleController
from playlist import Playlist, PlaylistItem
from prefetch import PrefetchPipeline
from relay import Relay


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeFetchHandle:
    def __init__(self, locator, destination, succeed=True):
        self.locator = locator
        self.destination = destination
        self.succeed = succeed
        self.interrupts = 0
        self.terminations = 0

    def wait(self):
        if not self.succeed:
            with open(self.destination, "wb") as f:
                f.write(b"partial")
            # yt-dlp leaves per-format fragments beside the target
            with open(os.path.splitext(self.destination)[0] + ".f137.mkv", "wb") as f:
                f.write(b"fragment")
            raise FetchError(f"fake fetch failed for {self.locator}", locator=self.locator)
        with open(self.destination, "wb") as f:
            f.write(b"media")
        return self.destination

    def interrupt(self):
        self.interrupts += 1
        return True

    def terminate(self):
        self.terminations += 1


class FakeFetcher:
    """Outcomes per locator are consumed in order; unlisted fetches succeed."""

    def __init__(self, outcomes=None):
        self.outcomes = {k: list(v) for k, v in (outcomes or {}).items()}
        self.calls = []
        self.handles = []

    def fetch(self, locator, destination):
        self.calls.append(locator)
        queue = self.outcomes.get(locator)
        succeed = queue.pop(0) if queue else True
        handle = FakeFetchHandle(locator, destination, succeed)
        self.handles.append(handle)
        return handle


class FakePublishHandle:
    def __init__(self, source, endpoint, returncode=0, on_wait=None, stall=False):
        self.source = source
        self.endpoint = endpoint
        self.returncode = returncode
        self.on_wait = on_wait
        self.stall = stall
        self.error = None
        self.timeout = None
        self.interrupts = 0
        self.terminations = 0

    def wait(self, timeout=None):
        self.timeout = timeout
        if self.on_wait:
            self.on_wait(self)
        if self.stall:
            self.error = f"ffmpeg stalled for more than {timeout:.0f}s"
            self.terminate()
            return None
        if self.returncode != 0:
            self.error = f"ffmpeg exited with {self.returncode}"
        return self.returncode

    def interrupt(self):
        self.interrupts += 1
        return True

    def terminate(self):
        self.terminations += 1


class FakePublisher:
    def __init__(self, on_wait=None, returncode=0, start_failures=0, stall=False):
        self.on_wait = on_wait
        self.stall = stall
        self.returncode = returncode
        self.start_failures = start_failures
        self.calls = []
        self.handles = []

    def publish(self, source, endpoint):
        self.calls.append(source)
        if self.start_failures > 0:
            self.start_failures -= 1
            raise PublishError("ffmpeg not found")
        handle = FakePublishHandle(source, endpoint, self.returncode, self.on_wait, self.stall)
        self.handles.append(handle)
        return handle


class RecordingLifecycle(LifecycleController):
    """Records requested waits instead of sleeping."""

    def __init__(self, **kwargs):
        kwargs.setdefault("cleanup", lambda: 0)
        kwargs.setdefault("exit_func", MagicMock())
        kwargs.setdefault("timeout", 5)
        super().__init__(**kwargs)
        self.waits = []

    def wait(self, seconds):
        self.waits.append(seconds)
        return self.shutting_down


class StubResolver:
    """Authoritative durations keyed by the index embedded in the file name."""

    def __init__(self, durations, default=30):
        self.durations = durations
        self.default = default
        self.probed = []

    def resolve_from_file(self, path):
        self.probed.append(path)
        index = int(os.path.basename(path).split("_")[1])
        return self.durations.get(index, self.default)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def lifecycle(tmp_path):
    return RecordingLifecycle(temp_dir=str(tmp_path))


@pytest.fixture
def two_clips():
    return Playlist([
        PlaylistItem("https://youtu.be/A", "Clip A", 10),
        PlaylistItem("https://youtu.be/B", "Clip B", 5),
    ])


@pytest.fixture
def make_relay(tmp_path, lifecycle, clock):
    def _make(playlist, fetcher=None, publisher=None, resolver=None, **kwargs):
        fetcher = fetcher or FakeFetcher()
        publisher = publisher or FakePublisher()
        resolver = resolver or StubResolver({})
        pipeline = PrefetchPipeline(fetcher, str(tmp_path))
        kwargs.setdefault("retry_delay", 10)
        kwargs.setdefault("max_attempts", 3)
        kwargs.setdefault("tolerance", 1)
        return Relay(
            playlist,
            pipeline,
            publisher,
            resolver,
            lifecycle,
            endpoint="rtmp://example.com/live/key",
            clock=clock,
            **kwargs,
        )

    return _make
