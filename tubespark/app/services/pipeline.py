"""
Keyword search -> video stats -> channel stats -> virality ranking.

Each run issues at most three YouTube calls, strictly in order, and keeps
every intermediate structure local to the call.
"""
import calendar
import logging
import re
from datetime import datetime, time, timedelta
from typing import Any

from tubespark.app.services.records import (
    SHORT_MAX_SECONDS,
    UNKNOWN_CHANNEL,
    UNKNOWN_COUNTRY,
    ChannelInfo,
    EnrichedVideoRecord,
    LengthFilter,
    SearchFilters,
    TranslatedQuery,
    best_thumbnail_url,
    category_label,
    virality_ratio,
)
from tubespark.app.services.youtube_api import (
    YOUTUBE_CHANNELS_LIST,
    YOUTUBE_SEARCH_LIST,
    YOUTUBE_VIDEOS_LIST,
    youtube_api_get,
)

logger = logging.getLogger(__name__)

MAX_RESULTS_LIMIT = 50
ISO8601_DURATION_RE = re.compile(
    r"P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?)?"
)


class InvalidFilter(ValueError):
    pass


# ---------------------------
# Helpers
# ---------------------------

def iso8601_duration_to_seconds(duration: str | None) -> int:
    match = ISO8601_DURATION_RE.fullmatch(duration or "")
    if not match:
        return 0
    days = int(match.group(1) or 0)
    hours = int(match.group(2) or 0)
    minutes = int(match.group(3) or 0)
    seconds = int(match.group(4) or 0)
    return days * 86400 + hours * 3600 + minutes * 60 + seconds


def safe_count(value: Any) -> int:
    try:
        count = int(value or 0)
    except (TypeError, ValueError):
        return 0
    return max(count, 0)


def _shift_months(moment: datetime, months: int) -> datetime:
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


# ---------------------------
# Stages
# ---------------------------

def translate_query(filters: SearchFilters, now: datetime | None = None) -> TranslatedQuery:
    keyword = (filters.keyword or "").strip()
    if not keyword:
        raise InvalidFilter("keyword is required")
    if not 1 <= filters.max_results <= MAX_RESULTS_LIMIT:
        raise InvalidFilter(f"max_results must be between 1 and {MAX_RESULTS_LIMIT}")

    # bounds are computed on wall-clock time; a naive bound takes the local
    # offset in force at the bound itself, not the one in force at `now`
    if now is None:
        now = datetime.now()

    published_after = None
    if filters.date == "today":
        published_after = datetime.combine(now.date(), time.min, tzinfo=now.tzinfo)
    elif filters.date == "week":
        published_after = now - timedelta(days=7)
    elif filters.date == "month":
        published_after = _shift_months(now, 1)
    elif filters.date == "year":
        published_after = _shift_months(now, 12)

    if published_after is not None and published_after.tzinfo is None:
        published_after = published_after.astimezone()

    return TranslatedQuery(query_text=keyword, page_size=filters.max_results, published_after=published_after)


def search_candidate_ids(query: TranslatedQuery, api_key: str) -> list[str]:
    payload = youtube_api_get(YOUTUBE_SEARCH_LIST, query.to_params(), api_key)
    ids: list[str] = []
    seen: set[str] = set()
    for item in payload.get("items") or []:
        id_obj = item.get("id") if isinstance(item, dict) else None
        video_id = id_obj.get("videoId") if isinstance(id_obj, dict) else None
        if not isinstance(video_id, str) or not video_id or video_id in seen:
            continue
        seen.add(video_id)
        ids.append(video_id)
    logger.info("search q=%r returned %d candidates", query.query_text, len(ids))
    return ids


def fetch_video_details(video_ids: list[str], api_key: str) -> list[dict[str, Any]]:
    payload = youtube_api_get(
        YOUTUBE_VIDEOS_LIST,
        {
            "part": "snippet,statistics,contentDetails",
            "id": ",".join(video_ids),
        },
        api_key,
    )
    videos = [item for item in payload.get("items") or [] if isinstance(item, dict)]
    logger.info("hydrated %d of %d candidate videos", len(videos), len(video_ids))
    return videos


def distinct_channel_ids(videos: list[dict[str, Any]]) -> list[str]:
    channel_ids: list[str] = []
    seen: set[str] = set()
    for video in videos:
        channel_id = (video.get("snippet") or {}).get("channelId")
        if not isinstance(channel_id, str) or not channel_id or channel_id in seen:
            continue
        seen.add(channel_id)
        channel_ids.append(channel_id)
    return channel_ids


def parse_channel_info(channel: dict[str, Any]) -> ChannelInfo:
    stats = channel.get("statistics") or {}
    snippet = channel.get("snippet") or {}
    return ChannelInfo(
        subscriber_count=safe_count(stats.get("subscriberCount")),
        created_at=snippet.get("publishedAt"),
        total_view_count=safe_count(stats.get("viewCount")),
        video_count=safe_count(stats.get("videoCount")),
        country=snippet.get("country") or UNKNOWN_COUNTRY,
    )


def fetch_channel_map(videos: list[dict[str, Any]], api_key: str) -> dict[str, ChannelInfo]:
    channel_ids = distinct_channel_ids(videos)
    if not channel_ids:
        return {}

    payload = youtube_api_get(
        YOUTUBE_CHANNELS_LIST,
        {
            "part": "snippet,statistics",
            "id": ",".join(channel_ids),
        },
        api_key,
    )
    channel_map: dict[str, ChannelInfo] = {}
    for channel in payload.get("items") or []:
        if not isinstance(channel, dict):
            continue
        channel_id = channel.get("id")
        if isinstance(channel_id, str) and channel_id:
            channel_map[channel_id] = parse_channel_info(channel)

    missing = [cid for cid in channel_ids if cid not in channel_map]
    if missing:
        logger.warning("channels missing from response, using empty stats: %s", ",".join(missing))
    logger.info("joined %d distinct channels", len(channel_ids))
    return channel_map


def build_record(video: dict[str, Any], channel_map: dict[str, ChannelInfo]) -> EnrichedVideoRecord:
    snippet = video.get("snippet") or {}
    stats = video.get("statistics") or {}
    details = video.get("contentDetails") or {}
    channel_id = snippet.get("channelId") or ""
    channel = channel_map.get(channel_id, UNKNOWN_CHANNEL)

    view_count = safe_count(stats.get("viewCount"))
    duration = details.get("duration") or ""

    return EnrichedVideoRecord(
        id=str(video.get("id") or ""),
        thumbnail_url=best_thumbnail_url(snippet.get("thumbnails") or {}),
        title=snippet.get("title") or "",
        description=snippet.get("description") or "",
        category_label=category_label(snippet.get("categoryId")),
        channel_id=channel_id,
        channel_title=snippet.get("channelTitle") or "",
        view_count=view_count,
        like_count=safe_count(stats.get("likeCount")),
        subscriber_count=channel.subscriber_count,
        published_at=snippet.get("publishedAt"),
        duration=duration,
        duration_seconds=iso8601_duration_to_seconds(duration),
        virality_ratio=virality_ratio(view_count, channel.subscriber_count),
        channel_created_at=channel.created_at,
        channel_total_view_count=channel.total_view_count,
        channel_video_count=channel.video_count,
        channel_country=channel.country,
    )


def compute_records(videos: list[dict[str, Any]], channel_map: dict[str, ChannelInfo]) -> list[EnrichedVideoRecord]:
    return [build_record(video, channel_map) for video in videos]


def apply_length_filter(records: list[EnrichedVideoRecord], length: LengthFilter) -> list[EnrichedVideoRecord]:
    if length == "short":
        return [r for r in records if r.duration_seconds <= SHORT_MAX_SECONDS]
    if length == "long":
        return [r for r in records if r.duration_seconds > SHORT_MAX_SECONDS]
    return list(records)


def run_pipeline(api_key: str, filters: SearchFilters, now: datetime | None = None) -> list[EnrichedVideoRecord]:
    query = translate_query(filters, now=now)
    candidate_ids = search_candidate_ids(query, api_key)
    if not candidate_ids:
        return []

    videos = fetch_video_details(candidate_ids, api_key)
    if not videos:
        return []

    channel_map = fetch_channel_map(videos, api_key)
    records = compute_records(videos, channel_map)
    filtered = apply_length_filter(records, filters.length)
    logger.info("pipeline produced %d records (%d after length=%s)", len(records), len(filtered), filters.length)
    return filtered
