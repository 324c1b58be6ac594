import os
import logging
import subprocess

import config
from errors import FetchError, PublishError
from utils import interrupt_process, stop_process

logger = logging.getLogger(__name__)


class ProcessHandle:
    """A running subprocess plus the log file it writes to."""

    name = "process"

    def __init__(self, proc, log_file=None):
        self.proc = proc
        self._log_file = log_file

    @property
    def pid(self):
        return self.proc.pid

    def done(self):
        return self.proc.poll() is not None

    def _wait(self, timeout=None):
        try:
            return self.proc.wait(timeout=timeout)
        finally:
            self._close_log()

    def interrupt(self):
        return interrupt_process(self.proc, self.name)

    def terminate(self):
        stop_process(self.proc, self.name)
        self._close_log()

    def _close_log(self):
        if self._log_file is not None and not self._log_file.closed:
            self._log_file.close()


class FetchHandle(ProcessHandle):
    name = "yt-dlp"

    def __init__(self, proc, locator, destination, log_file=None):
        super().__init__(proc, log_file)
        self.locator = locator
        self.destination = destination

    def wait(self):
        """Block until the download exits; raise FetchError unless it produced a file."""
        rc = self._wait()
        if rc != 0:
            raise FetchError(
                f"yt-dlp exited with {rc} for {self.locator}",
                locator=self.locator,
                returncode=rc,
            )
        if not os.path.exists(self.destination):
            raise FetchError(
                f"yt-dlp finished but {self.destination} is missing",
                locator=self.locator,
                returncode=rc,
            )
        return self.destination


class PublishHandle(ProcessHandle):
    name = "ffmpeg"

    def __init__(self, proc, source, endpoint, log_file=None):
        super().__init__(proc, log_file)
        self.source = source
        self.endpoint = endpoint
        self.error = None

    def wait(self, timeout=None):
        """Block until ffmpeg exits. A failed or stalled encode sets ``error`` instead of raising.

        After ``timeout`` seconds ffmpeg is terminated and None is returned.
        """
        try:
            rc = self._wait(timeout)
        except subprocess.TimeoutExpired:
            self.error = f"ffmpeg stalled for more than {timeout:.0f}s"
            self.terminate()
            return None
        if rc != 0:
            self.error = f"ffmpeg exited with {rc}"
        return rc


def _open_log():
    try:
        os.makedirs(os.path.dirname(os.path.abspath(config.FFMPEG_LOG)), exist_ok=True)
        return open(config.FFMPEG_LOG, "a")
    except OSError as e:
        logger.warning("Cannot open %s, discarding subprocess output: %s", config.FFMPEG_LOG, e)
        return None


def _popen(cmd, log_file):
    out = log_file if log_file is not None else subprocess.DEVNULL
    return subprocess.Popen(cmd, stdout=out, stderr=out, stdin=subprocess.DEVNULL)


class YtDlpFetcher:
    """Downloads one clip per call with the yt-dlp command line tool."""

    def __init__(self, binary="yt-dlp", fmt=None):
        self.binary = binary
        self.format = fmt or config.YTDLP_FORMAT

    def command(self, locator, destination):
        return [
            self.binary,
            "-o", destination,
            "-f", self.format,
            "--no-part",
            "--no-cache-dir",
            "--merge-output-format", "mkv",
            "--force-overwrites",
            locator,
        ]

    def fetch(self, locator, destination):
        log_file = _open_log()
        try:
            proc = _popen(self.command(locator, destination), log_file)
        except OSError as e:
            if log_file is not None:
                log_file.close()
            raise FetchError(f"Cannot start yt-dlp: {e}", locator=locator) from e
        logger.debug("⬇️ yt-dlp pid %s → %s", proc.pid, destination)
        return FetchHandle(proc, locator, destination, log_file)


class FfmpegPublisher:
    """Pushes a local file to an RTMP endpoint in real time with ffmpeg."""

    def __init__(self, binary="ffmpeg", video_bitrate=None, audio_bitrate=None):
        self.binary = binary
        self.video_bitrate = video_bitrate or config.VIDEO_BITRATE
        self.audio_bitrate = audio_bitrate or config.AUDIO_BITRATE

    def command(self, source, endpoint):
        return [
            self.binary,
            "-y",
            "-hide_banner",
            "-loglevel", "info",
            "-re",
            "-i", source,

            # Video
            "-c:v", "libx264",
            "-preset", "veryfast",
            "-r", "30",
            "-g", "60",
            "-b:v", self.video_bitrate,

            # Audio
            "-c:a", "aac",
            "-b:a", self.audio_bitrate,

            "-f", "flv",
            endpoint,
        ]

    def publish(self, source, endpoint):
        log_file = _open_log()
        try:
            proc = _popen(self.command(source, endpoint), log_file)
        except OSError as e:
            if log_file is not None:
                log_file.close()
            raise PublishError(f"Cannot start ffmpeg: {e}") from e
        logger.info("🎬 ffmpeg pid %s publishing %s", proc.pid, os.path.basename(source))
        return PublishHandle(proc, source, endpoint, log_file)
