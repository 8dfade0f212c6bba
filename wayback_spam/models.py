from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

DomainStatus = Literal["no_snapshots", "clean", "suspicious", "spam", "error"]
LogType = Literal["info", "warning", "error", "success"]


class SnapshotDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Archive time token, e.g. "20150314092653". Sorts lexicographically.
    timestamp: str
    original_url: str | None = None


class SnapshotContent(BaseModel):
    html: str
    length: int
    snapshot_url: str


class StopWordHit(BaseModel):
    word: str
    count: int


class StopWordMatches(BaseModel):
    count: int = 0
    found: list[StopWordHit] = Field(default_factory=list)


class DocumentAnalysis(BaseModel):
    text_length: int
    meta_tags: dict[str, str] = Field(default_factory=dict)
    stop_words: StopWordMatches = Field(default_factory=StopWordMatches)
    is_spam: bool
    spam_score: float


class SnapshotError(BaseModel):
    timestamp: str
    original_url: str | None = None
    error: str
    stack: str | None = None


class DomainResult(BaseModel):
    domain: str
    snapshots_checked: int = 0
    successfully_analyzed: int = 0
    failed_snapshots: int = 0
    spam_snapshots: int = 0
    spam_percentage: float = 0
    avg_spam_score: float = 0
    # Same ratio as avg_spam_score, presented on the 0-10 scale.
    domain_spam_score: float = 0
    spam_detected: bool = False
    total_stop_words_found: int = 0
    stop_words_found: list[StopWordHit] = Field(default_factory=list)
    first_spam_date: str | None = None
    status: DomainStatus
    snapshot_errors: list[SnapshotError] | None = None
    error: str | None = None


class AnalyzeSpamRequest(BaseModel):
    domains: list[str] = Field(default_factory=list)
    # Either raw text (comma/newline separated) or an explicit list.
    stop_words: str | list[str] | None = None
    max_snapshots: int | None = Field(None, ge=1, le=50)


class AnalysisSummary(BaseModel):
    total: int
    clean: int
    suspicious: int
    spam: int
    errors: int
    no_snapshots: int


class LogEntry(BaseModel):
    timestamp: str
    type: LogType
    message: str


class AnalyzeSpamResponse(BaseModel):
    success: bool
    results: list[DomainResult]
    summary: AnalysisSummary
    logs: list[LogEntry]


class WaybackCheckRequest(BaseModel):
    target: str = Field(..., min_length=1)


class WaybackCheck(BaseModel):
    target: str
    snapshots_count: int
    first_snapshot_timestamp: str | None = None
    first_snapshot_url: str | None = None
    first_snapshot_html_length: int | None = None
    first_snapshot_wayback_url: str | None = None
