"""
Favorite keywords and bookmarked videos, persisted to a JSON file.

The store is loaded once at startup and written back after every change.
Keywords and bookmarks live under independent keys; the search pipeline never
reads or writes either of them.
"""
import json
import logging
import os
import threading
from pathlib import Path
from typing import Any

from tubespark.app.services.records import EnrichedVideoRecord

logger = logging.getLogger(__name__)

FAVORITE_KEYWORDS_KEY = "favorite_keywords"
BOOKMARKED_VIDEOS_KEY = "bookmarked_videos"

LIBRARY: dict[str, Any] = {FAVORITE_KEYWORDS_KEY: [], BOOKMARKED_VIDEOS_KEY: {}}
LIBRARY_LOCK = threading.Lock()
LIBRARY_FILE = Path(
    os.getenv("TUBESPARK_LIBRARY_FILE")
    or (Path(__file__).resolve().parents[2] / "data_runtime" / "library.json")
)


def _reset() -> None:
    LIBRARY[FAVORITE_KEYWORDS_KEY] = []
    LIBRARY[BOOKMARKED_VIDEOS_KEY] = {}


def load_library() -> None:
    with LIBRARY_LOCK:
        _reset()
        try:
            if not LIBRARY_FILE.exists():
                return
            raw = json.loads(LIBRARY_FILE.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            logger.warning("library file %s is unreadable, starting empty", LIBRARY_FILE)
            return
        if not isinstance(raw, dict):
            return

        keywords = raw.get(FAVORITE_KEYWORDS_KEY)
        if isinstance(keywords, list):
            LIBRARY[FAVORITE_KEYWORDS_KEY] = [k for k in keywords if isinstance(k, str) and k.strip()]

        bookmarks = raw.get(BOOKMARKED_VIDEOS_KEY)
        if isinstance(bookmarks, dict):
            LIBRARY[BOOKMARKED_VIDEOS_KEY] = {
                key: value
                for key, value in bookmarks.items()
                if isinstance(key, str) and isinstance(value, dict)
            }


def _snapshot() -> dict[str, Any]:
    return {
        FAVORITE_KEYWORDS_KEY: list(LIBRARY[FAVORITE_KEYWORDS_KEY]),
        BOOKMARKED_VIDEOS_KEY: dict(LIBRARY[BOOKMARKED_VIDEOS_KEY]),
    }


def _write_library() -> None:
    # caller holds LIBRARY_LOCK; writes land in mutation order
    LIBRARY_FILE.parent.mkdir(parents=True, exist_ok=True)
    tmp_file = LIBRARY_FILE.with_name(LIBRARY_FILE.name + ".tmp")
    tmp_file.write_text(
        json.dumps(_snapshot(), ensure_ascii=False, indent=2),
        encoding="utf-8",
    )
    os.replace(tmp_file, LIBRARY_FILE)


def persist_library() -> None:
    with LIBRARY_LOCK:
        _write_library()


def list_favorite_keywords() -> list[str]:
    with LIBRARY_LOCK:
        return list(LIBRARY[FAVORITE_KEYWORDS_KEY])


def add_favorite_keyword(keyword: str) -> list[str]:
    keyword = (keyword or "").strip()
    if not keyword:
        raise ValueError("keyword is required")
    with LIBRARY_LOCK:
        keywords = LIBRARY[FAVORITE_KEYWORDS_KEY]
        if keyword not in keywords:
            keywords.append(keyword)
            _write_library()
        return list(keywords)


def remove_favorite_keyword(keyword: str) -> bool:
    keyword = (keyword or "").strip()
    with LIBRARY_LOCK:
        keywords = LIBRARY[FAVORITE_KEYWORDS_KEY]
        if keyword not in keywords:
            return False
        keywords.remove(keyword)
        _write_library()
    return True


def list_bookmarks() -> list[dict[str, Any]]:
    with LIBRARY_LOCK:
        return list(LIBRARY[BOOKMARKED_VIDEOS_KEY].values())


def add_bookmark(record: EnrichedVideoRecord) -> dict[str, Any]:
    entry = record.model_dump(by_alias=True)
    with LIBRARY_LOCK:
        LIBRARY[BOOKMARKED_VIDEOS_KEY][record.id] = entry
        _write_library()
    return entry


def remove_bookmark(video_id: str) -> bool:
    with LIBRARY_LOCK:
        if LIBRARY[BOOKMARKED_VIDEOS_KEY].pop(video_id, None) is None:
            return False
        _write_library()
    return True
