import logging
import os
import time
from collections import deque
from contextlib import asynccontextmanager
from datetime import datetime
from urllib.parse import quote

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from tubespark.app.services import library
from tubespark.app.services.export import export_workbook
from tubespark.app.services.pipeline import InvalidFilter, run_pipeline
from tubespark.app.services.records import (
    DateFilter,
    EnrichedVideoRecord,
    LengthFilter,
    SearchFilters,
    SortField,
    SortOrder,
    sort_records,
)
from tubespark.app.services.youtube_api import QuotaExceededError, UpstreamError


# ---------------------------
# App setup
# ---------------------------

load_dotenv()

logging.basicConfig(level=(os.getenv("LOG_LEVEL") or "INFO").upper())
logger = logging.getLogger(__name__)

DEFAULT_YOUTUBE_API_KEY = (os.getenv("YOUTUBE_API_KEY") or "").strip()
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

API_RATE_LIMIT_WINDOW_SECONDS = 60
API_RATE_LIMIT_MAX_REQUESTS = 30
API_RATE_LIMIT_BUCKETS: dict[str, deque[float]] = {}


class KeywordRequest(BaseModel):
    keyword: str


def parse_cors_origins() -> tuple[list[str], bool]:
    raw = (os.getenv("CORS_ALLOWED_ORIGINS") or "").strip()
    if not raw:
        return ["http://localhost:5173"], True
    if raw == "*":
        return ["*"], False
    origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
    if not origins:
        return ["http://localhost:5173"], True
    return origins, True


@asynccontextmanager
async def lifespan(_app: FastAPI):
    library.load_library()
    logger.info("Loaded library store from %s", library.LIBRARY_FILE)
    yield


app = FastAPI(title="TubeSpark", lifespan=lifespan)

cors_origins, cors_credentials = parse_cors_origins()

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=cors_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(InvalidFilter)
async def invalid_filter_handler(_request: Request, exc: InvalidFilter):
    return JSONResponse(
        status_code=400,
        content={"detail": str(exc), "error_code": "invalid_filter"},
    )


@app.exception_handler(QuotaExceededError)
async def youtube_quota_exceeded_handler(_request: Request, exc: QuotaExceededError):
    return JSONResponse(
        status_code=429,
        content={
            "detail": "YouTube API quota is exhausted for today. Try again after the daily reset.",
            "upstream_message": exc.message,
            "error_code": "youtube_quota_exhausted",
        },
    )


@app.exception_handler(UpstreamError)
async def youtube_upstream_error_handler(_request: Request, exc: UpstreamError):
    return JSONResponse(
        status_code=502,
        content={
            "detail": exc.message,
            "upstream_status": exc.status,
            "error_code": "youtube_upstream_error",
        },
    )


# ---------------------------
# Request helpers
# ---------------------------

def get_client_ip(request: Request) -> str:
    forwarded = (request.headers.get("x-forwarded-for") or "").strip()
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def enforce_api_rate_limit(request: Request, scope: str = "search") -> None:
    now_ts = time.time()
    key = f"{scope}:{get_client_ip(request)}"
    cutoff = now_ts - API_RATE_LIMIT_WINDOW_SECONDS

    # drop clients with nothing left in the window
    for other_key, other_bucket in list(API_RATE_LIMIT_BUCKETS.items()):
        if other_key != key and (not other_bucket or other_bucket[-1] < cutoff):
            API_RATE_LIMIT_BUCKETS.pop(other_key, None)

    bucket = API_RATE_LIMIT_BUCKETS.get(key)
    if bucket is None:
        bucket = deque()
        API_RATE_LIMIT_BUCKETS[key] = bucket

    while bucket and bucket[0] < cutoff:
        bucket.popleft()

    if len(bucket) >= API_RATE_LIMIT_MAX_REQUESTS:
        raise HTTPException(
            status_code=429,
            detail="Too many requests. Please wait a minute and try again.",
        )

    bucket.append(now_ts)


def resolve_api_key(request: Request) -> str:
    header = (request.headers.get("authorization") or "").strip()
    # Remove 'Bearer ' prefix if present
    api_key = header[7:].strip() if header.lower().startswith("bearer ") else header
    api_key = api_key or (request.headers.get("x-youtube-api-key") or "").strip() or DEFAULT_YOUTUBE_API_KEY
    if not api_key:
        raise HTTPException(status_code=401, detail="Missing YouTube API key")
    return api_key


def run_search(
    request: Request,
    scope: str,
    keyword: str,
    length: LengthFilter,
    date: DateFilter,
    max_results: int,
    sort: SortField,
    order: SortOrder,
) -> tuple[SearchFilters, list[EnrichedVideoRecord]]:
    api_key = resolve_api_key(request)
    enforce_api_rate_limit(request, scope=scope)
    filters = SearchFilters(keyword=keyword, length=length, date=date, max_results=max_results)
    records = run_pipeline(api_key, filters)
    return filters, sort_records(records, sort, order)


# ---------------------------
# Routes
# ---------------------------

@app.get("/health")
def health():
    return {"ok": True}


@app.get("/search")
def search(
    request: Request,
    keyword: str = "",
    length: LengthFilter = "all",
    date: DateFilter = "all",
    max_results: int = 20,
    sort: SortField = "ratio",
    order: SortOrder = "desc",
):
    """
    Keyword search ranked by views relative to channel subscribers.
    One search call, one batched videos call, one batched channels call.
    """
    filters, records = run_search(request, "search", keyword, length, date, max_results, sort, order)
    return {
        "items": [record.model_dump(by_alias=True) for record in records],
        "meta": {
            "keyword": filters.keyword.strip(),
            "length": filters.length,
            "date": filters.date,
            "max_results": filters.max_results,
            "sort": sort,
            "order": order,
            "count": len(records),
        },
    }


@app.get("/search/export")
def search_export(
    request: Request,
    keyword: str = "",
    length: LengthFilter = "all",
    date: DateFilter = "all",
    max_results: int = 20,
    sort: SortField = "ratio",
    order: SortOrder = "desc",
):
    filters, records = run_search(request, "export", keyword, length, date, max_results, sort, order)
    if not records:
        raise HTTPException(status_code=404, detail="No videos to export for this search.")
    content, filename = export_workbook(records, filters.keyword, datetime.now())
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"},
    )


@app.get("/library/keywords")
def list_keywords():
    return {"items": library.list_favorite_keywords()}


@app.post("/library/keywords")
def add_keyword(payload: KeywordRequest):
    keyword = (payload.keyword or "").strip()
    if not keyword:
        raise HTTPException(status_code=400, detail="keyword is required")
    return {"items": library.add_favorite_keyword(keyword)}


@app.delete("/library/keywords/{keyword}")
def delete_keyword(keyword: str):
    if not library.remove_favorite_keyword(keyword):
        raise HTTPException(status_code=404, detail="Keyword is not in favorites.")
    return {"items": library.list_favorite_keywords()}


@app.get("/library/bookmarks")
def list_bookmarks():
    return {"items": library.list_bookmarks()}


@app.post("/library/bookmarks")
def add_bookmark(record: EnrichedVideoRecord):
    if not record.id:
        raise HTTPException(status_code=400, detail="video id is required")
    return {"item": library.add_bookmark(record)}


@app.delete("/library/bookmarks/{video_id}")
def delete_bookmark(video_id: str):
    if not library.remove_bookmark(video_id):
        raise HTTPException(status_code=404, detail="Video is not bookmarked.")
    return {"items": library.list_bookmarks()}
