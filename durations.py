import re
import math
import logging
import subprocess

from yt_dlp import YoutubeDL

import config

logger = logging.getLogger(__name__)

_ISO_RE = re.compile(
    r"^P(?:(?P<days>\d+)D)?"
    r"(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+)S)?)?$"
)


class YTDLPLogger:
    """Routes yt-dlp's own messages into our logging tree."""

    def __init__(self, name="yt-dlp"):
        self._log = logging.getLogger(name)

    def debug(self, msg):
        self._log.debug(msg)

    def info(self, msg):
        self._log.info(msg)

    def warning(self, msg):
        self._log.warning(msg)

    def error(self, msg):
        self._log.error(msg)


def parse_iso_duration(token):
    """Convert an ISO-8601 duration such as ``PT3M12S`` to whole seconds.

    Anything unparseable yields 0 so callers can fall back to a probe.
    """
    if not token or not isinstance(token, str):
        logger.warning("Invalid duration format, returning 0: %r", token)
        return 0
    match = _ISO_RE.match(token.strip())
    if not match:
        logger.warning("Failed to parse duration, returning 0: %s", token)
        return 0
    parts = {k: int(v) if v else 0 for k, v in match.groupdict().items()}
    return (
        parts["days"] * 86400
        + parts["hours"] * 3600
        + parts["minutes"] * 60
        + parts["seconds"]
    )


def parse_clock_duration(text):
    """Convert ``H:MM:SS``, ``M:SS`` or ``S`` (yt-dlp --get-duration) to seconds."""
    if not text:
        return 0
    parts = text.strip().split(":")
    if len(parts) > 3:
        return 0
    seconds = 0
    try:
        for part in parts:
            seconds = seconds * 60 + int(part)
    except ValueError:
        return 0
    return seconds


def probe_locator(locator):
    """Ask yt-dlp for a remote clip's length. Returns None when unknown."""
    opts = {
        "quiet": True,
        "skip_download": True,
        "no_warnings": True,
        "logger": YTDLPLogger(),
    }
    try:
        with YoutubeDL(opts) as ydl:
            info = ydl.extract_info(locator, download=False)
    except Exception as e:
        logger.warning("Error obtaining duration via yt-dlp (%s): %s", locator, e)
        return None
    duration = (info or {}).get("duration")
    if duration is None:
        duration = parse_clock_duration((info or {}).get("duration_string"))
    return int(math.ceil(duration)) if duration else None


def probe_file(path, binary="ffprobe", timeout=30):
    """Read the container duration of a local file with ffprobe."""
    cmd = [
        binary,
        "-v", "error",
        "-show_entries", "format=duration",
        "-of", "default=nw=1:nk=1",
        path,
    ]
    try:
        out = subprocess.check_output(
            cmd, stderr=subprocess.STDOUT, text=True, timeout=timeout
        )
        value = float(out.strip())
    except (OSError, subprocess.SubprocessError, ValueError) as e:
        logger.error("Error getting duration from file (%s): %s", path, e)
        return None
    if math.isnan(value) or value <= 0:
        return None
    return int(math.ceil(value))


class DurationResolver:
    """Decides how long a clip lasts, never failing.

    ``resolve`` works from catalog metadata and a remote probe, and is used to
    build the playlist. ``resolve_from_file`` probes the downloaded container
    and is what the relay paces against.
    """

    def __init__(self, probe_locator=probe_locator, probe_file=probe_file, default=None):
        self.probe_locator = probe_locator
        self.probe_file = probe_file
        self.default = default if default is not None else config.DEFAULT_DURATION

    def resolve(self, candidate):
        declared = candidate.declared_duration
        seconds = declared if isinstance(declared, int) else parse_iso_duration(declared)
        if seconds > 0:
            return seconds

        probed = self._safe(self.probe_locator, candidate.locator)
        if probed:
            return probed
        logger.info("No duration for %s, using %ss", candidate.locator, self.default)
        return self.default

    def resolve_from_file(self, path):
        probed = self._safe(self.probe_file, path)
        if probed:
            return probed
        logger.warning("Probe failed for %s, pacing with %ss", path, self.default)
        return self.default

    @staticmethod
    def _safe(probe, target):
        try:
            value = probe(target)
        except Exception:
            logger.exception("Duration probe crashed for %s", target)
            return None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        value = int(math.ceil(value))
        return value if value > 0 else None
