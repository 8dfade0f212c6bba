from __future__ import annotations

import logging
import traceback
from datetime import datetime, timezone
from functools import lru_cache

from fastapi import Depends, FastAPI
from fastapi import HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .analyzer import SpamAnalyzer
from .errors import WaybackError
from .models import (
    AnalysisSummary,
    AnalyzeSpamRequest,
    AnalyzeSpamResponse,
    DomainResult,
    LogEntry,
    LogType,
    WaybackCheck,
    WaybackCheckRequest,
)
from .settings import Settings
from .stop_words import DEFAULT_STOP_WORDS, combine_stop_words, parse_stop_words


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


@lru_cache(maxsize=1)
def get_analyzer() -> SpamAnalyzer:
    return SpamAnalyzer.from_settings(get_settings())


logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Wayback Spam Agent", version="0.1.0")

# For local dev, this defaults to allowing http://localhost:3000.
# In production, set WAYBACK_SPAM_CORS_ORIGINS to your deployed frontend origins.
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class _RequestLog:
    def __init__(self) -> None:
        self.entries: list[LogEntry] = []

    def add(self, message: str, type: LogType = "info") -> None:
        self.record(message, type)
        logger.log(logging.ERROR if type == "error" else logging.INFO, "[%s] %s", type.upper(), message)

    def record(self, message: str, type: LogType = "info") -> None:
        """Keep a message for the response without logging it again."""
        timestamp = datetime.now(timezone.utc).isoformat()
        self.entries.append(LogEntry(timestamp=timestamp, type=type, message=message))

    def dump(self) -> list[dict]:
        return [e.model_dump() for e in self.entries]


def _resolve_stop_words(raw: str | list[str] | None) -> list[str]:
    if isinstance(raw, str):
        return combine_stop_words(parse_stop_words(raw))
    if isinstance(raw, list):
        return combine_stop_words(raw)
    return list(DEFAULT_STOP_WORDS)


def _summarize(results: list[DomainResult]) -> AnalysisSummary:
    def count(status: str) -> int:
        return sum(1 for r in results if r.status == status)

    return AnalysisSummary(
        total=len(results),
        clean=count("clean"),
        suspicious=count("suspicious"),
        spam=count("spam"),
        errors=count("error"),
        no_snapshots=count("no_snapshots"),
    )


@app.get("/healthz")
def healthz():
    return {"ok": True}


@app.post("/analyze-spam", response_model=AnalyzeSpamResponse)
def analyze_spam_endpoint(
    req: AnalyzeSpamRequest,
    analyzer: SpamAnalyzer = Depends(get_analyzer),
    settings: Settings = Depends(get_settings),
):
    log = _RequestLog()

    domains = [d for d in req.domains if analyzer.can_handle(d)]
    if not domains:
        log.add("domains array is required", "error")
        return JSONResponse(
            status_code=400,
            content={"error": "domains array is required", "logs": log.dump()},
        )

    stop_words = _resolve_stop_words(req.stop_words)
    limit = req.max_snapshots or settings.default_max_snapshots

    log.add(f"Starting spam analysis for {len(domains)} domain(s)")
    log.add(f"Using {len(stop_words)} stop words")
    log.add(f"Max snapshots per domain: {limit}")

    try:
        results = analyzer.analyze_domains(domains, stop_words, limit, log.record)
    except Exception as e:
        log.add(f"Fatal error: {e}", "error")
        log.add(f"Stack: {traceback.format_exc()}", "error")
        logger.exception("Spam analysis failed")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Spam analysis failed",
                "message": str(e),
                "details": traceback.format_exc(),
                "logs": log.dump(),
            },
        )

    summary = _summarize(results)
    log.add(
        f"Analysis complete: {summary.clean} clean, {summary.suspicious} suspicious, {summary.spam} spam",
        "success",
    )
    return AnalyzeSpamResponse(success=True, results=results, summary=summary, logs=log.entries)


@app.post("/wayback/test", response_model=WaybackCheck)
def wayback_test_endpoint(req: WaybackCheckRequest, analyzer: SpamAnalyzer = Depends(get_analyzer)):
    try:
        return analyzer.check_archive(req.target.strip())
    except WaybackError as e:
        raise HTTPException(status_code=502, detail=str(e))
