import io
from datetime import datetime
from typing import Any

import pandas as pd

from tubespark.app.services.records import EnrichedVideoRecord, parse_iso8601_datetime


EXPORT_SHEET_NAME = "떡상 분석 리포트"
EXPORT_COLUMNS = (
    "순위",
    "제목",
    "채널명",
    "조회수",
    "좋아요",
    "구독자수",
    "떡상 지수(%)",
    "영상 길이",
    "업로드 날짜",
    "유튜브 링크",
)


def format_duration(seconds: int) -> str:
    hours, rest = divmod(max(int(seconds or 0), 0), 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_date(value: str | None) -> str:
    parsed = parse_iso8601_datetime(value)
    if parsed is None:
        return ""
    return parsed.strftime("%Y-%m-%d")


def build_export_rows(records: list[EnrichedVideoRecord]) -> list[dict[str, Any]]:
    rows = []
    for index, record in enumerate(records, start=1):
        values = (
            index,
            record.title,
            record.channel_title,
            record.view_count,
            record.like_count,
            record.subscriber_count,
            f"{record.virality_ratio:.2f}",
            format_duration(record.duration_seconds),
            format_date(record.published_at),
            record.watch_url,
        )
        rows.append(dict(zip(EXPORT_COLUMNS, values)))
    return rows


def export_filename(keyword: str, now: datetime | None = None) -> str:
    date_str = (now or datetime.now()).strftime("%Y-%m-%d")
    safe_keyword = "".join(ch for ch in keyword.strip() if ch not in '\\/:*?"<>|') or "search"
    return f"YouTubeSparkle_분석_{safe_keyword}_{date_str}.xlsx"


def export_workbook(
    records: list[EnrichedVideoRecord],
    keyword: str,
    now: datetime | None = None,
) -> tuple[bytes, str]:
    frame = pd.DataFrame(build_export_rows(records), columns=list(EXPORT_COLUMNS))
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        frame.to_excel(writer, sheet_name=EXPORT_SHEET_NAME, index=False)
    return buffer.getvalue(), export_filename(keyword, now)
