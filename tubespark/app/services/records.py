import math
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


LengthFilter = Literal["all", "short", "long"]
DateFilter = Literal["all", "today", "week", "month", "year"]
SortField = Literal["viewCount", "likeCount", "subscriberCount", "ratio", "publishedAt"]
SortOrder = Literal["asc", "desc"]

SHORT_MAX_SECONDS = 60
UNKNOWN_COUNTRY = "unknown"
GENERIC_CATEGORY_LABEL = "Other"

# videoCategories.list ids shared by every region
CATEGORY_LABELS = MappingProxyType({
    "1": "Film & Animation",
    "2": "Autos & Vehicles",
    "10": "Music",
    "15": "Pets & Animals",
    "17": "Sports",
    "18": "Short Movies",
    "19": "Travel & Events",
    "20": "Gaming",
    "21": "Videoblogging",
    "22": "People & Blogs",
    "23": "Comedy",
    "24": "Entertainment",
    "25": "News & Politics",
    "26": "Howto & Style",
    "27": "Education",
    "28": "Science & Technology",
    "29": "Nonprofits & Activism",
    "30": "Movies",
    "43": "Shows",
    "44": "Trailers",
})

THUMBNAIL_PREFERENCE = ("maxres", "standard", "high", "medium", "default")


class _CamelModel(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class SearchFilters(_CamelModel):
    keyword: str = ""
    length: LengthFilter = "all"
    date: DateFilter = "all"
    max_results: int = 20


class TranslatedQuery(_CamelModel):
    query_text: str
    page_size: int
    published_after: datetime | None = None

    def to_params(self) -> dict[str, str | int]:
        params: dict[str, str | int] = {
            "part": "snippet",
            "type": "video",
            "order": "relevance",
            "q": self.query_text,
            "maxResults": self.page_size,
        }
        if self.published_after is not None:
            params["publishedAfter"] = self.published_after.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        return params


class ChannelInfo(_CamelModel):
    subscriber_count: int = 0
    created_at: str | None = None
    total_view_count: int = 0
    video_count: int = 0
    country: str = UNKNOWN_COUNTRY


UNKNOWN_CHANNEL = ChannelInfo()


class EnrichedVideoRecord(_CamelModel):
    id: str
    thumbnail_url: str | None = None
    title: str = ""
    description: str = ""
    category_label: str = GENERIC_CATEGORY_LABEL
    channel_id: str = ""
    channel_title: str = ""
    view_count: int = 0
    like_count: int = 0
    subscriber_count: int = 0
    published_at: str | None = None
    duration: str = ""
    duration_seconds: int = 0
    virality_ratio: float = 0.0
    channel_created_at: str | None = None
    channel_total_view_count: int = 0
    channel_video_count: int = 0
    channel_country: str = UNKNOWN_COUNTRY

    @property
    def watch_url(self) -> str:
        return f"https://www.youtube.com/watch?v={self.id}"


def category_label(category_id: str | None) -> str:
    return CATEGORY_LABELS.get(str(category_id or ""), GENERIC_CATEGORY_LABEL)


def best_thumbnail_object(thumbnails: dict) -> dict | None:
    for key in THUMBNAIL_PREFERENCE:
        t = thumbnails.get(key)
        if t and "url" in t:
            return t
    return None


def best_thumbnail_url(thumbnails: dict) -> str | None:
    thumb_obj = best_thumbnail_object(thumbnails)
    if thumb_obj is None:
        return None
    return thumb_obj.get("url")


def virality_ratio(view_count: int, subscriber_count: int) -> float:
    if subscriber_count <= 0 or view_count <= 0:
        return 0.0
    ratio = (view_count / subscriber_count) * 100
    return ratio if math.isfinite(ratio) else 0.0


def parse_iso8601_datetime(value: str | None):
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def _sort_value(record: EnrichedVideoRecord, field: SortField) -> float | datetime:
    if field == "publishedAt":
        return parse_iso8601_datetime(record.published_at) or _OLDEST
    if field == "ratio":
        return record.virality_ratio
    if field == "viewCount":
        return record.view_count
    if field == "likeCount":
        return record.like_count
    return record.subscriber_count


def sort_records(
    records: list[EnrichedVideoRecord],
    field: SortField = "ratio",
    order: SortOrder = "desc",
) -> list[EnrichedVideoRecord]:
    return sorted(records, key=lambda r: _sort_value(r, field), reverse=(order == "desc"))
