import time
import logging
from dataclasses import dataclass, asdict
from typing import Optional

import config
from errors import FetchError, PublishError
from prefetch import PrefetchSlot
from utils import remove_partials

logger = logging.getLogger(__name__)


@dataclass
class RelayCursor:
    index: int = 0
    attempt: int = 0
    max_attempts: int = 3

    @property
    def exhausted(self):
        return self.attempt >= self.max_attempts

    def fail(self):
        self.attempt += 1
        return self.attempt

    def advance(self, length):
        self.index = (self.index + 1) % length
        self.attempt = 0
        return self.index


@dataclass(frozen=True)
class NowPlaying:
    index: int
    title: str
    locator: str
    duration: int
    started_at: float


class Relay:
    """Plays the playlist into one RTMP endpoint, one clip at a time, forever.

    Each index goes through acquire, pace-resolve, publish, synchronize,
    cleanup and advance. While a clip is on air the next one is downloaded in
    the background; ``slot`` holds that single outstanding prefetch.
    """

    def __init__(
        self,
        playlist,
        pipeline,
        publisher,
        resolver,
        lifecycle,
        endpoint=None,
        max_attempts=None,
        retry_delay=None,
        tolerance=None,
        publish_grace=None,
        clock=time.monotonic,
    ):
        self.playlist = playlist
        self.pipeline = pipeline
        self.publisher = publisher
        self.resolver = resolver
        self.lifecycle = lifecycle
        self.endpoint = endpoint or config.RTMP_URL
        self.retry_delay = config.RETRY_DELAY if retry_delay is None else retry_delay
        self.tolerance = config.PACING_TOLERANCE if tolerance is None else tolerance
        self.publish_grace = config.PUBLISH_GRACE if publish_grace is None else publish_grace
        self.cursor = RelayCursor(
            max_attempts=max_attempts if max_attempts is not None else config.MAX_ATTEMPTS
        )
        self.slot: Optional[PrefetchSlot] = None
        self.now_playing: Optional[NowPlaying] = None
        self.passes = 0
        self.played = 0
        self.skipped = 0
        self._clock = clock

    def run(self, start_index=0):
        self.cursor.index = start_index % len(self.playlist)
        self.cursor.attempt = 0
        logger.info("🚀 Relay starting at #%d → %s", self.cursor.index, self.endpoint)
        try:
            while not self.lifecycle.shutting_down:
                try:
                    self.play_current()
                except Exception as e:
                    index = self.cursor.index
                    logger.exception("Error in relay loop at #%d", index)
                    self._invalidate()
                    self._retry_or_skip(index, self.playlist[index], e)
        finally:
            self._invalidate()
            self.now_playing = None
            logger.info("Relay stopped after %d clips (%d skipped)", self.played, self.skipped)

    def play_current(self):
        """Take the cursor's index through one full cycle, retries included."""
        index = self.cursor.index
        item = self.playlist[index]
        logger.info("Now streaming #%d: %s (%s)", index, item.title, item.locator)
        logger.info("Preliminary video duration: %s seconds", item.duration)

        while not self.lifecycle.shutting_down:
            path = None
            try:
                path = self._acquire(index, item)
                duration = self.resolver.resolve_from_file(path)
                logger.info("Exact video duration: %s seconds", duration)
                handle = self.publisher.publish(path, self.endpoint)
            except (FetchError, PublishError) as e:
                remove_partials(path)
                if not self._retry_or_skip(index, item, e):
                    return
                continue
            except Exception:
                remove_partials(path)
                raise

            try:
                self._on_air(index, item, path, handle, duration)
            except Exception:
                # already aired: never replay it as a retry
                logger.exception("Error after #%d went on air (%s), moving on", index, item.locator)
                self._abandon(path, handle)
            return

    def _acquire(self, index, item):
        slot = self.slot
        if slot is not None and slot.target_index == index:
            self.slot = None
            try:
                return self.pipeline.consume(slot)
            finally:
                self.lifecycle.clear_fetch(slot.handle)
        if slot is not None:
            self._invalidate()

        handle = self.pipeline.fetch(item, index)
        self.lifecycle.register_fetch(handle)
        try:
            return handle.wait()
        except FetchError:
            remove_partials(handle.destination)
            raise
        finally:
            self.lifecycle.clear_fetch(handle)

    def _on_air(self, index, item, path, handle, duration):
        started = self._clock()
        self.lifecycle.register_publish(handle)
        self.now_playing = NowPlaying(index, item.title, item.locator, duration, time.time())
        try:
            self._begin_prefetch(index)
            handle.wait(timeout=duration + self.publish_grace)
        finally:
            self.lifecycle.clear_publish(handle)

        if handle.error and not self.lifecycle.shutting_down:
            logger.error("FFmpeg error on #%d (%s): %s", index, item.locator, handle.error)

        if not self.lifecycle.shutting_down:
            elapsed = self._clock() - started
            self.synchronize(duration, elapsed)
            logger.info("Switching to next video after %.1f seconds of playback", elapsed)

        if not remove_partials(path):
            logger.debug("Nothing to delete at %s", path)
        self.now_playing = None
        if self.lifecycle.shutting_down:
            return
        self.played += 1
        self._advance()

    def _abandon(self, path, handle):
        self.lifecycle.clear_publish(handle)
        handle.terminate()
        remove_partials(path)
        self.now_playing = None
        if not self.lifecycle.shutting_down:
            self._advance()

    def _begin_prefetch(self, index):
        target = self.playlist.next_index(index)
        if target == index or self.lifecycle.shutting_down:
            return
        if self.slot is not None:
            raise RuntimeError(f"Prefetch for #{self.slot.target_index} still outstanding")
        try:
            slot = self.pipeline.begin(self.playlist[target], target)
        except FetchError as e:
            logger.error("Error preloading next video #%d: %s", target, e)
            return
        self.slot = slot
        self.lifecycle.register_fetch(slot.handle)

    def synchronize(self, duration, elapsed):
        """Hold the clip on air until its real duration has passed."""
        remaining = max(duration - elapsed, 0)
        if remaining > self.tolerance:
            logger.info("Waiting for playback to complete: %.1f seconds", remaining)
            self.lifecycle.wait(remaining)
        else:
            logger.info("Playback finished on schedule")
        return remaining

    def _retry_or_skip(self, index, item, error):
        """Returns True when the same index should be tried again."""
        if self.lifecycle.shutting_down:
            return False
        attempt = self.cursor.fail()
        max_attempts = self.cursor.max_attempts
        if not self.cursor.exhausted:
            logger.warning(
                "Attempt %d of %d failed for #%d (%s): %s; retrying in %ss",
                attempt, max_attempts, index, item.locator, error, self.retry_delay,
            )
            self._invalidate(index)
            return not self.lifecycle.wait(self.retry_delay)

        logger.error(
            "All %d attempts exhausted, skipping #%d (%s): %s",
            max_attempts, index, item.locator, error,
        )
        self.skipped += 1
        self._advance()
        return False

    def _invalidate(self, index=None):
        slot = self.slot
        if slot is None or (index is not None and slot.target_index != index):
            return
        self.slot = None
        self.pipeline.cancel(slot)
        self.lifecycle.clear_fetch(slot.handle)

    def _advance(self):
        if self.cursor.advance(len(self.playlist)) == 0:
            self.passes += 1
            logger.info("🔁 Pass %d complete, looping to the start", self.passes)

    def status(self):
        now = self.now_playing
        return {
            "now_playing": asdict(now) if now else None,
            "index": self.cursor.index,
            "attempt": self.cursor.attempt,
            "playlist_length": len(self.playlist),
            "passes": self.passes,
            "played": self.played,
            "skipped": self.skipped,
            "prefetch": self.slot.target_index if self.slot else None,
        }
