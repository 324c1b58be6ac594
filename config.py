import os

from dotenv import load_dotenv

from errors import ConfigError

load_dotenv(override=False)

BASE_DIR = os.getcwd()
TEMP_DIR = os.getenv("TEMP_DIR", os.path.join(BASE_DIR, "temp"))
FFMPEG_LOG = os.getenv("FFMPEG_LOG", os.path.join(BASE_DIR, "ffmpeg.log"))
LOG_FILE = os.getenv("LOG_FILE")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Catalog
YOUTUBE_API_KEY = os.getenv("YOUTUBE_API_KEY")
CHANNEL_ID = os.getenv("CHANNEL_ID")
CATALOG_MAX_RESULTS = int(os.getenv("CATALOG_MAX_RESULTS", "50"))
CATALOG_MAX_PAGES = int(os.getenv("CATALOG_MAX_PAGES", "1"))
CLIP_MIN_SECONDS = int(os.getenv("CLIP_MIN_SECONDS", "60"))
CLIP_MAX_SECONDS = int(os.getenv("CLIP_MAX_SECONDS", "300"))
EXCLUDED_KEYWORDS = tuple(
    k.strip().lower()
    for k in os.getenv("EXCLUDED_KEYWORDS", "live,podcast").split(",")
    if k.strip()
)

# Output
RTMP_URL = os.getenv("RTMP_URL")
HTTP_PORT = int(os.getenv("HTTP_PORT", "3000"))
YTDLP_FORMAT = os.getenv("YTDLP_FORMAT", "bestvideo+bestaudio/best")
VIDEO_BITRATE = os.getenv("VIDEO_BITRATE", "2000k")
AUDIO_BITRATE = os.getenv("AUDIO_BITRATE", "128k")

# Relay policy
MAX_ATTEMPTS = int(os.getenv("MAX_ATTEMPTS", "3"))
RETRY_DELAY = float(os.getenv("RETRY_DELAY", "10"))
DEFAULT_DURATION = int(os.getenv("DEFAULT_DURATION", "30"))
PACING_TOLERANCE = float(os.getenv("PACING_TOLERANCE", "1"))
SHUTDOWN_TIMEOUT = float(os.getenv("SHUTDOWN_TIMEOUT", "5"))
PUBLISH_GRACE = float(os.getenv("PUBLISH_GRACE", "30"))

REQUIRED = ("YOUTUBE_API_KEY", "CHANNEL_ID", "RTMP_URL")


def validate(settings=None):
    """Raise ConfigError listing every required setting that is unset."""
    settings = settings if settings is not None else globals()
    missing = [name for name in REQUIRED if not settings.get(name)]
    if missing:
        raise ConfigError(f"Missing required settings: {', '.join(missing)}")
