import sys
import signal
import logging
import threading

import config
from durations import DurationResolver
from errors import ConfigError, EmptyPlaylistError
from lifecycle import LifecycleController
from playlist import build_playlist
from prefetch import PrefetchPipeline
from relay import Relay
from server import create_app, serve
from streaming import FfmpegPublisher, YtDlpFetcher
from utils import prepare_temp_dir, setup_logging
from youtube import fetch_candidates

logger = logging.getLogger("clip-relay")


def install_signal_handlers(lifecycle):
    def _handle(signum, _frame):
        lifecycle.request_shutdown(signal.Signals(signum).name)

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


def main():
    setup_logging()
    try:
        config.validate()
    except ConfigError as e:
        logger.error("%s", e)
        return 1

    temp_dir = prepare_temp_dir()
    resolver = DurationResolver()
    try:
        playlist = build_playlist(fetch_candidates(), resolver)
    except EmptyPlaylistError as e:
        logger.error("%s", e)
        return 1

    lifecycle = LifecycleController(temp_dir=temp_dir)
    relay = Relay(
        playlist,
        PrefetchPipeline(YtDlpFetcher(), temp_dir),
        FfmpegPublisher(),
        resolver,
        lifecycle,
    )
    install_signal_handlers(lifecycle)

    app = create_app(lifecycle, relay.status)
    threading.Thread(target=serve, args=(app,), daemon=True).start()

    logger.info("📝 FFmpeg logs → %s", config.FFMPEG_LOG)
    try:
        relay.run()
    finally:
        lifecycle.request_shutdown("relay exited")
        lifecycle.wait_for_teardown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
