import os
import time
import logging

from errors import FetchError
from utils import remove_partials

logger = logging.getLogger(__name__)

PENDING = "pending"
CONSUMED = "consumed"
CANCELLED = "cancelled"


class PrefetchSlot:
    """One in-flight background download aimed at a specific playlist index."""

    def __init__(self, target_index, local_path, handle):
        self.target_index = target_index
        self.local_path = local_path
        self.handle = handle
        self.state = PENDING

    @property
    def usable(self):
        return self.state == PENDING

    def __repr__(self):
        return f"<PrefetchSlot index={self.target_index} state={self.state}>"


class PrefetchPipeline:
    """Starts, hands over and cancels background fetches.

    The pipeline itself does not limit how many slots exist; the relay holds
    at most one and only begins a new one after the previous was consumed or
    cancelled.
    """

    def __init__(self, fetcher, temp_dir, clock=time.time):
        self.fetcher = fetcher
        self.temp_dir = temp_dir
        self._clock = clock

    def path_for(self, index):
        return os.path.join(self.temp_dir, f"video_{index}_{int(self._clock() * 1000)}.mkv")

    def fetch(self, item, index):
        """Start a download for ``index`` and return its handle without waiting."""
        return self.fetcher.fetch(item.locator, self.path_for(index))

    def begin(self, item, target_index):
        handle = self.fetch(item, target_index)
        logger.info("⏩ Prefetching #%d: %s", target_index, item.title)
        return PrefetchSlot(target_index, handle.destination, handle)

    def consume(self, slot):
        """Wait for the slot's download and return the local path.

        Raises FetchError if the download failed or the slot was already used.
        """
        if not slot.usable:
            raise FetchError(f"Prefetch slot for #{slot.target_index} is {slot.state}")
        slot.state = CONSUMED
        try:
            return slot.handle.wait()
        except FetchError:
            remove_partials(slot.local_path)
            raise

    def cancel(self, slot):
        if slot is None or not slot.usable:
            return False
        slot.state = CANCELLED
        slot.handle.terminate()
        remove_partials(slot.local_path)
        logger.info("Cancelled prefetch for #%d", slot.target_index)
        return True
