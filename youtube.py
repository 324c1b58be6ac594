# youtube.py
import logging
from dataclasses import dataclass
from typing import Tuple

import requests

import config
from durations import parse_iso_duration
from playlist import Candidate

logger = logging.getLogger(__name__)

API_BASE = "https://www.googleapis.com/youtube/v3"


@dataclass(frozen=True)
class CatalogFilter:
    """Which uploads count as short-form clips worth relaying."""

    min_seconds: int = 60
    max_seconds: int = 300
    excluded_keywords: Tuple[str, ...] = ("live", "podcast")

    @classmethod
    def from_config(cls):
        return cls(
            min_seconds=config.CLIP_MIN_SECONDS,
            max_seconds=config.CLIP_MAX_SECONDS,
            excluded_keywords=config.EXCLUDED_KEYWORDS,
        )

    def accepts(self, candidate):
        seconds = parse_iso_duration(candidate.declared_duration)
        if seconds < self.min_seconds or seconds > self.max_seconds:
            return False
        title = (candidate.title or "").lower()
        return not any(k in title for k in self.excluded_keywords)


def _get(session, endpoint, params, timeout):
    r = session.get(f"{API_BASE}/{endpoint}", params=params, timeout=timeout)
    r.raise_for_status()
    return r.json()


def search_video_ids(session, api_key, channel_id, max_results=50, max_pages=1, timeout=15):
    """Newest uploads of a channel, following nextPageToken up to max_pages."""
    ids, page_token = [], None
    for _ in range(max(1, max_pages)):
        params = {
            "part": "id",
            "channelId": channel_id,
            "maxResults": max_results,
            "type": "video",
            "order": "date",
            "key": api_key,
        }
        if page_token:
            params["pageToken"] = page_token
        data = _get(session, "search", params, timeout)
        for item in data.get("items", []):
            vid = (item.get("id") or {}).get("videoId")
            if vid:
                ids.append(vid)
        page_token = data.get("nextPageToken")
        if not page_token:
            break
    return ids


def video_details(session, api_key, video_ids, timeout=15):
    details = []
    # videos.list accepts at most 50 ids per call
    for start in range(0, len(video_ids), 50):
        chunk = video_ids[start:start + 50]
        data = _get(
            session,
            "videos",
            {"part": "contentDetails,snippet", "id": ",".join(chunk), "key": api_key},
            timeout,
        )
        for item in data.get("items", []):
            details.append(
                Candidate(
                    locator=f"https://www.youtube.com/watch?v={item['id']}",
                    title=(item.get("snippet") or {}).get("title", ""),
                    declared_duration=(item.get("contentDetails") or {}).get("duration") or "PT0S",
                )
            )
    return details


def fetch_candidates(
    api_key=None,
    channel_id=None,
    catalog_filter=None,
    session=None,
    max_results=None,
    max_pages=None,
):
    """Return the channel's filtered uploads, or [] if the API cannot be reached."""
    api_key = api_key or config.YOUTUBE_API_KEY
    channel_id = channel_id or config.CHANNEL_ID
    catalog_filter = catalog_filter or CatalogFilter.from_config()
    session = session or requests.Session()
    try:
        ids = search_video_ids(
            session,
            api_key,
            channel_id,
            max_results=max_results or config.CATALOG_MAX_RESULTS,
            max_pages=max_pages or config.CATALOG_MAX_PAGES,
        )
        if not ids:
            logger.warning("⚠️ No uploads found for channel %s", channel_id)
            return []
        videos = video_details(session, api_key, ids)
    except (requests.RequestException, ValueError, KeyError) as e:
        logger.error("Error fetching video list: %s", e)
        return []

    kept = [v for v in videos if catalog_filter.accepts(v)]
    logger.info("✅ Catalog: %d of %d uploads kept", len(kept), len(videos))
    return kept
