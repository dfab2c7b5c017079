import logging
import os
from typing import Any

import requests

logger = logging.getLogger(__name__)

YOUTUBE_SEARCH_LIST = "https://www.googleapis.com/youtube/v3/search"
YOUTUBE_VIDEOS_LIST = "https://www.googleapis.com/youtube/v3/videos"
YOUTUBE_CHANNELS_LIST = "https://www.googleapis.com/youtube/v3/channels"

YOUTUBE_API_TIMEOUT_SECONDS = int(os.getenv("YOUTUBE_API_TIMEOUT_SECONDS") or 15)
GENERIC_UPSTREAM_MESSAGE = "YouTube search request failed."
QUOTA_REASONS = frozenset({"quotaExceeded", "dailyLimitExceeded"})


class UpstreamError(Exception):
    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status
        self.message = message


class QuotaExceededError(UpstreamError):
    """Quota for the credential is used up; retry after the daily reset."""


def _error_details(response: requests.Response) -> tuple[str, str]:
    reason = ""
    message = ""
    try:
        payload = response.json()
    except ValueError:
        return reason, message
    if not isinstance(payload, dict):
        return reason, message
    error = payload.get("error") or {}
    if not isinstance(error, dict):
        return reason, message
    errors = error.get("errors") or []
    if errors and isinstance(errors[0], dict):
        reason = str(errors[0].get("reason") or "")
    message = str(error.get("message") or "")
    return reason, message


def is_quota_exhausted(reason: str, message: str) -> bool:
    return reason in QUOTA_REASONS or "quota" in message.lower()


def youtube_api_get(url: str, params: dict[str, Any], api_key: str, timeout: int | None = None) -> dict[str, Any]:
    merged = params.copy()
    merged["key"] = api_key
    try:
        response = requests.get(url, params=merged, timeout=timeout or YOUTUBE_API_TIMEOUT_SECONDS)
    except requests.RequestException as exc:
        logger.error("YouTube request to %s failed: %s", url, exc.__class__.__name__)
        raise UpstreamError(502, "YouTube is temporarily unavailable. Please try again.") from exc

    if 200 <= response.status_code < 300:
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamError(502, GENERIC_UPSTREAM_MESSAGE) from exc
        return payload if isinstance(payload, dict) else {}

    reason, message = _error_details(response)
    logger.error(
        "YouTube API rejected %s (%s). reason=%s message=%s",
        url,
        response.status_code,
        reason or "unknown",
        message or "-",
    )
    if is_quota_exhausted(reason, message):
        raise QuotaExceededError(response.status_code, message or "YouTube API quota exceeded")
    raise UpstreamError(response.status_code, message or GENERIC_UPSTREAM_MESSAGE)
