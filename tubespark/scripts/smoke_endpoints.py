from __future__ import annotations

import sys
from pathlib import Path
from unittest.mock import patch

from fastapi import HTTPException
from starlette.requests import Request

ROOT_DIR = Path(__file__).resolve().parents[2]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

import tubespark.app.services.pipeline as pipeline_module
import tubespark.main as main_module
from tubespark.app.services.youtube_api import (
    YOUTUBE_CHANNELS_LIST,
    YOUTUBE_SEARCH_LIST,
    YOUTUBE_VIDEOS_LIST,
    QuotaExceededError,
)


def make_request(ip: str = "127.0.0.1") -> Request:
    return Request(
        {
            "type": "http",
            "method": "GET",
            "path": "/",
            "headers": [(b"authorization", b"Bearer SMOKE_KEY")],
            "client": (ip, 8000),
            "query_string": b"",
            "server": ("test", 80),
            "scheme": "http",
            "http_version": "1.1",
        }
    )


def make_video(video_id: str, channel_id: str, views: int, duration: str) -> dict:
    return {
        "id": video_id,
        "snippet": {
            "title": f"Video {video_id}",
            "channelId": channel_id,
            "channelTitle": "Smoke Channel",
            "publishedAt": "2026-10-01T00:00:00Z",
            "categoryId": "10",
            "thumbnails": {
                "high": {"url": f"https://img/{video_id}.jpg", "width": 480, "height": 360},
            },
        },
        "statistics": {"viewCount": str(views), "likeCount": "10"},
        "contentDetails": {"duration": duration},
    }


def assert_true(condition: bool, message: str) -> None:
    if not condition:
        raise AssertionError(message)


def search_kwargs(**overrides) -> dict:
    params = {
        "keyword": "lofi",
        "length": "all",
        "date": "week",
        "max_results": 10,
        "sort": "ratio",
        "order": "desc",
    }
    params.update(overrides)
    return params


def test_health() -> None:
    payload = main_module.health()
    assert_true(payload.get("ok") is True, "/health should return ok=true")


def test_search_call_budget() -> None:
    main_module.API_RATE_LIMIT_BUCKETS.clear()
    urls: list[str] = []

    def fake_youtube_api_get(url: str, params: dict, api_key: str, timeout: int | None = None) -> dict:
        _ = (params, api_key, timeout)
        urls.append(url)
        if url == YOUTUBE_SEARCH_LIST:
            return {"items": [{"id": {"videoId": f"s{i}"}} for i in range(6)]}
        if url == YOUTUBE_VIDEOS_LIST:
            return {"items": [make_video(f"s{i}", f"UC{i % 2}", 1000 * (i + 1), "PT45S") for i in range(6)]}
        if url == YOUTUBE_CHANNELS_LIST:
            return {"items": [{"id": "UC0", "statistics": {"subscriberCount": "100"}}]}
        raise AssertionError(url)

    with patch.object(pipeline_module, "youtube_api_get", side_effect=fake_youtube_api_get):
        payload = main_module.search(make_request(), **search_kwargs())

    items = payload.get("items", [])
    assert_true(len(items) == 6, "/search should return one record per hydrated video")
    assert_true(urls == [YOUTUBE_SEARCH_LIST, YOUTUBE_VIDEOS_LIST, YOUTUBE_CHANNELS_LIST], "/search should make 3 calls")
    ratios = [item["viralityRatio"] for item in items]
    assert_true(ratios == sorted(ratios, reverse=True), "/search should default to ratio desc")
    assert_true(all(r >= 0 for r in ratios), "/search ratios should never be negative")


def test_search_quota() -> None:
    main_module.API_RATE_LIMIT_BUCKETS.clear()

    with patch.object(pipeline_module, "youtube_api_get", side_effect=QuotaExceededError(403, "quota")) as fake:
        try:
            main_module.search(make_request(), **search_kwargs())
        except QuotaExceededError:
            pass
        else:
            raise AssertionError("/search should surface quota exhaustion")
    assert_true(fake.call_count == 1, "/search should stop after the quota error")


def test_search_requires_keyword() -> None:
    main_module.API_RATE_LIMIT_BUCKETS.clear()
    try:
        main_module.search(make_request(), **search_kwargs(keyword=""))
    except (HTTPException, pipeline_module.InvalidFilter):
        return
    raise AssertionError("/search should reject an empty keyword")


def run() -> int:
    checks = [
        ("health", test_health),
        ("search call budget", test_search_call_budget),
        ("search quota", test_search_quota),
        ("search requires keyword", test_search_requires_keyword),
    ]
    failures = []

    for check_name, check_fn in checks:
        try:
            check_fn()
            print(f"[PASS] {check_name}")
        except Exception as exc:  # pragma: no cover - smoke script output path
            failures.append((check_name, str(exc)))
            print(f"[FAIL] {check_name}: {exc}")

    if failures:
        print(f"\nSmoke checks failed: {len(failures)}")
        for check_name, message in failures:
            print(f"- {check_name}: {message}")
        return 1

    print("\nAll smoke checks passed.")
    return 0


if __name__ == "__main__":
    sys.exit(run())
