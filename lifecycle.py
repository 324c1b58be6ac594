import os
import logging
import threading

import config
from utils import clear_dir

logger = logging.getLogger(__name__)


class LifecycleController:
    """Owns the shutdown flag and the only references to the live subprocesses.

    The relay registers and clears its handles here; anything outside the
    relay (signal handlers, the HTTP thread) only ever calls
    ``request_shutdown``.
    """

    def __init__(self, temp_dir=None, timeout=None, cleanup=None, exit_func=os._exit):
        self.temp_dir = temp_dir or config.TEMP_DIR
        self.timeout = timeout if timeout is not None else config.SHUTDOWN_TIMEOUT
        self._cleanup = cleanup or (lambda: clear_dir(self.temp_dir))
        self._exit = exit_func
        # reentrant: signal handlers run on the main thread, which may already hold it
        self._lock = threading.RLock()
        self._shutdown = threading.Event()
        self._publish = None
        self._fetch = None
        self._cleanup_thread = None
        self._deadline = None
        self.reason = None

    @property
    def shutting_down(self):
        return self._shutdown.is_set()

    def wait(self, seconds):
        """Sleep up to ``seconds``; True means shutdown cut the wait short."""
        if self._shutdown.is_set():
            return True
        if seconds <= 0:
            return False
        return self._shutdown.wait(seconds)

    # --- live handles ---

    def register_publish(self, handle):
        with self._lock:
            self._publish = handle
            stopping = self._shutdown.is_set()
        if stopping:
            handle.interrupt()

    def clear_publish(self, handle=None):
        with self._lock:
            if handle is None or self._publish is handle:
                self._publish = None

    def register_fetch(self, handle):
        with self._lock:
            self._fetch = handle
            stopping = self._shutdown.is_set()
        if stopping:
            handle.interrupt()

    def clear_fetch(self, handle=None):
        with self._lock:
            if handle is None or self._fetch is handle:
                self._fetch = None

    @property
    def live_publish(self):
        return self._publish

    @property
    def live_fetch(self):
        return self._fetch

    # --- teardown ---

    def request_shutdown(self, reason=None):
        """Stop the relay once. Returns False if shutdown was already under way."""
        with self._lock:
            if self._shutdown.is_set():
                return False
            self._shutdown.set()
            self.reason = reason
            publish, fetch = self._publish, self._fetch

        logger.info("🛑 Shutdown requested (%s)", reason or "unspecified")
        for handle, name in ((publish, "publish"), (fetch, "fetch")):
            if handle is None:
                continue
            try:
                handle.interrupt()
            except Exception:
                logger.exception("Failed to interrupt %s process", name)

        self._deadline = threading.Timer(self.timeout, self._force_exit)
        self._deadline.daemon = True
        self._deadline.start()

        self._cleanup_thread = threading.Thread(
            target=self._run_cleanup, name="shutdown-cleanup", daemon=True
        )
        self._cleanup_thread.start()
        return True

    def wait_for_teardown(self):
        """Give the cleanup thread whatever is left of the teardown budget."""
        if self._cleanup_thread is not None:
            self._cleanup_thread.join(self.timeout)
        if self._deadline is not None:
            self._deadline.cancel()

    def _run_cleanup(self):
        try:
            removed = self._cleanup()
            logger.info("🧹 Shutdown cleanup done (%s files removed)", removed)
        except Exception:
            logger.exception("Shutdown cleanup failed")

    def _force_exit(self):
        logger.error("Teardown exceeded %ss, exiting now", self.timeout)
        self._exit(0)
