import random
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

from errors import EmptyPlaylistError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Candidate:
    """A catalog entry before its duration has been settled."""

    locator: str
    title: str
    declared_duration: Optional[Union[str, int]] = None


@dataclass(frozen=True)
class PlaylistItem:
    locator: str
    title: str
    duration: int = 0


class Playlist:
    """Fixed, non-empty clip order. Indices wrap, so a pass never ends in error."""

    def __init__(self, items: Sequence[PlaylistItem]):
        self._items: Tuple[PlaylistItem, ...] = tuple(items)
        if not self._items:
            raise EmptyPlaylistError("Playlist has no playable items")

    def __len__(self):
        return len(self._items)

    def __iter__(self):
        return iter(self._items)

    def __getitem__(self, index: int) -> PlaylistItem:
        return self._items[index % len(self._items)]

    def next_index(self, index: int) -> int:
        return (index + 1) % len(self._items)

    @property
    def items(self) -> Tuple[PlaylistItem, ...]:
        return self._items


def build_playlist(candidates, resolver, rng=None, workers=4) -> Playlist:
    """Resolve every candidate's duration, then shuffle once.

    Raises EmptyPlaylistError when there is nothing to play.
    """
    candidates = list(candidates)
    if not candidates:
        raise EmptyPlaylistError("Failed to fetch videos for streaming")

    with ThreadPoolExecutor(max_workers=max(1, workers)) as pool:
        durations = list(pool.map(resolver.resolve, candidates))

    items = [
        PlaylistItem(locator=c.locator, title=c.title, duration=d)
        for c, d in zip(candidates, durations)
    ]
    rng = rng or random
    shuffled = rng.sample(items, len(items))
    logger.info("📺 Playlist built: %d clips", len(shuffled))
    return Playlist(shuffled)
