from __future__ import annotations

import logging
import re
import time
import traceback
from typing import Callable, Protocol, Sequence
from urllib.parse import urlparse

from .errors import DomainAnalysisError, SnapshotFetchError, WaybackError
from .models import (
    DocumentAnalysis,
    DomainResult,
    DomainStatus,
    SnapshotContent,
    SnapshotDescriptor,
    SnapshotError,
    StopWordHit,
    WaybackCheck,
)
from .settings import Settings
from .spam_scorer import analyze_html_for_spam
from .wayback_client import WaybackClient

logger = logging.getLogger(__name__)

ProgressSink = Callable[[str], None]
Scorer = Callable[[str, Sequence[str], str], DocumentAnalysis]

DEFAULT_SNAPSHOT_DELAY_S = 3.0
DEFAULT_DOMAIN_DELAY_S = 5.0
DEFAULT_MAX_SNAPSHOTS = 10
CHECK_SNAPSHOTS = 5

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z\d+.-]*://")


class SnapshotSource(Protocol):
    def list_snapshots(self, target: str, limit: int) -> list[SnapshotDescriptor]: ...

    def fetch_snapshot_content(self, snapshot: SnapshotDescriptor) -> SnapshotContent: ...


def exclusion_token(target: str) -> str:
    """Hostname of ``target``, used to keep a site's own name out of keyword matches."""
    value = target.strip()
    candidate = value if value.lower().startswith("http") else f"https://{value}"
    try:
        hostname = urlparse(candidate).hostname
    except ValueError:
        hostname = None
    if hostname:
        return hostname
    return re.split(r"[/:]", _SCHEME_RE.sub("", value), maxsplit=1)[0]


def _status_for(spam_percentage: float) -> DomainStatus:
    if spam_percentage >= 50:
        return "spam"
    if spam_percentage > 0:
        return "suspicious"
    return "clean"


def _preview(keywords: Sequence[str], limit: int = 5) -> str:
    shown = ", ".join(keywords[:limit])
    return shown + ("..." if len(keywords) > limit else "")


class _Progress:
    """Fans messages out to the module logger and an optional caller sink."""

    def __init__(self, sink: ProgressSink | None, *, echo: bool = True) -> None:
        self._sink = sink
        self._echo = echo

    def __call__(self, message: str, level: int = logging.INFO) -> None:
        if self._echo:
            logger.log(level, message)
        if self._sink is None:
            return
        # Progress is advisory; a failing sink must not fail the analysis.
        try:
            self._sink(message)
        except Exception:
            logger.warning("Progress sink raised on message %r", message, exc_info=True)


class SpamAnalyzer:
    """Sequential spam history check over archived snapshots of a domain.

    Requests are never issued concurrently. A fixed delay separates
    consecutive snapshots of one domain and consecutive domains of a batch,
    keeping request pressure on the archive low and predictable.
    """

    def __init__(
        self,
        source: SnapshotSource,
        scorer: Scorer = analyze_html_for_spam,
        *,
        snapshot_delay_s: float = DEFAULT_SNAPSHOT_DELAY_S,
        domain_delay_s: float = DEFAULT_DOMAIN_DELAY_S,
        sleep: Callable[[float], None] = time.sleep,
        archive_web_url: str = Settings.web_url,
    ) -> None:
        self.source = source
        self.scorer = scorer
        self.snapshot_delay_s = snapshot_delay_s
        self.domain_delay_s = domain_delay_s
        self._sleep = sleep
        self.archive_web_url = archive_web_url.rstrip("/")

    @classmethod
    def from_settings(cls, settings: Settings) -> "SpamAnalyzer":
        return cls(
            WaybackClient(settings),
            snapshot_delay_s=settings.snapshot_delay_ms / 1000,
            domain_delay_s=settings.domain_delay_ms / 1000,
            archive_web_url=settings.web_url,
        )

    def can_handle(self, target: object) -> bool:
        return isinstance(target, str) and bool(target.strip())

    def check_archive(self, target: str) -> WaybackCheck:
        """List a few snapshots and fetch the earliest one, as a connectivity check."""
        try:
            snapshots = self.source.list_snapshots(target, CHECK_SNAPSHOTS)
            if not snapshots:
                return WaybackCheck(target=target, snapshots_count=0)

            first = snapshots[0]
            content = self.source.fetch_snapshot_content(first)
            return WaybackCheck(
                target=target,
                snapshots_count=len(snapshots),
                first_snapshot_timestamp=first.timestamp,
                first_snapshot_url=first.original_url,
                first_snapshot_html_length=content.length,
                first_snapshot_wayback_url=content.snapshot_url,
            )
        except Exception as e:
            raise WaybackError(f"Wayback test failed: {e}") from e

    def analyze_domain(
        self,
        target: str,
        keywords: Sequence[str] = (),
        max_snapshots: int = DEFAULT_MAX_SNAPSHOTS,
        on_progress: ProgressSink | None = None,
    ) -> DomainResult:
        """Analyze the archived history of one target.

        Per-snapshot failures are recorded on the result. A failure to list
        snapshots is raised as :class:`DomainAnalysisError`.
        """
        if not self.can_handle(target):
            raise ValueError("Target must be a non-empty string.")
        if max_snapshots < 1:
            raise ValueError("max_snapshots must be at least 1.")

        log = _Progress(on_progress)
        try:
            return self._analyze_domain(target, list(keywords), max_snapshots, log)
        except DomainAnalysisError:
            raise
        except Exception as e:
            raise DomainAnalysisError(f"Domain analysis failed: {e}") from e

    def _analyze_domain(
        self,
        domain: str,
        keywords: list[str],
        max_snapshots: int,
        log: _Progress,
    ) -> DomainResult:
        log(f"Analyzing domain: {domain}")
        token = exclusion_token(domain)

        snapshots = self.source.list_snapshots(domain, max_snapshots)
        if not snapshots:
            log(f"No snapshots found for {domain}")
            return DomainResult(domain=domain, status="no_snapshots")

        total = len(snapshots)
        log(f"Found {total} snapshots, analyzing...")

        spam_snapshots = 0
        total_spam_score = 0.0
        successfully_analyzed = 0
        found_words: dict[str, int] = {}
        first_spam_date: str | None = None
        snapshot_errors: list[SnapshotError] = []

        for i, snapshot in enumerate(snapshots):
            outcome = self._analyze_snapshot(snapshot, i, total, keywords, token, log)

            if isinstance(outcome, SnapshotError):
                snapshot_errors.append(outcome)
            else:
                successfully_analyzed += 1
                if outcome.is_spam:
                    spam_snapshots += 1
                    total_spam_score += outcome.spam_score
                    for hit in outcome.stop_words.found:
                        found_words[hit.word] = found_words.get(hit.word, 0) + hit.count
                    if first_spam_date is None:
                        first_spam_date = snapshot.timestamp

            if i < total - 1:
                self._sleep(self.snapshot_delay_s)

        failed = len(snapshot_errors)
        spam_percentage = spam_snapshots / successfully_analyzed * 100 if successfully_analyzed else 0.0
        avg_spam_score = total_spam_score / spam_snapshots if spam_snapshots else 0.0

        # Stable sort: equal counts keep first-seen order.
        stop_words_found = sorted(
            (StopWordHit(word=w, count=c) for w, c in found_words.items()),
            key=lambda h: h.count,
            reverse=True,
        )

        result = DomainResult(
            domain=domain,
            snapshots_checked=total,
            successfully_analyzed=successfully_analyzed,
            failed_snapshots=failed,
            spam_snapshots=spam_snapshots,
            spam_percentage=round(spam_percentage, 2),
            avg_spam_score=round(avg_spam_score, 2),
            domain_spam_score=round(avg_spam_score, 1),
            spam_detected=spam_snapshots > 0,
            total_stop_words_found=len(found_words),
            stop_words_found=stop_words_found,
            first_spam_date=first_spam_date,
            status=_status_for(spam_percentage),
        )

        if snapshot_errors:
            result.snapshot_errors = snapshot_errors
            log(f"{failed} snapshot(s) failed to analyze out of {total} total", logging.WARNING)

        if successfully_analyzed == 0:
            log(f"CRITICAL: No snapshots were successfully analyzed! All {total} attempts failed.", logging.ERROR)
            result.status = "error"
            result.error = f"Failed to analyze any snapshots. {failed} errors occurred."
        elif successfully_analyzed < total:
            log(f"Only {successfully_analyzed} out of {total} snapshots were successfully analyzed", logging.WARNING)

        return result

    def _analyze_snapshot(
        self,
        snapshot: SnapshotDescriptor,
        index: int,
        total: int,
        keywords: list[str],
        token: str,
        log: _Progress,
    ) -> DocumentAnalysis | SnapshotError:
        tag = f"[{index + 1}/{total}]"
        label = snapshot.original_url or "unknown"
        log(f"{tag} Checking snapshot {label} ({snapshot.timestamp})...")
        if index == 0:
            log(f"[DEBUG] First snapshot - originalUrl: {snapshot.original_url}, timestamp: {snapshot.timestamp}", logging.DEBUG)

        try:
            content = self.source.fetch_snapshot_content(snapshot)
            if content is None or not content.html:
                raise SnapshotFetchError("Empty HTML result from snapshot")

            if index == 0:
                preview = re.sub(r"\s+", " ", content.html[:200])
                log(f"[DEBUG] First snapshot HTML preview ({len(content.html)} bytes): {preview}...", logging.DEBUG)
                log(f"[DEBUG] First snapshot rawUrl: {self.archive_web_url}/{snapshot.timestamp}id_/{label}", logging.DEBUG)
                log(f"[DEBUG] First snapshot wrapperUrl: {self.archive_web_url}/{snapshot.timestamp}/{label}", logging.DEBUG)

            log(f"{tag} HTML fetched: {content.length} bytes")
            log(f"{tag} Domain to ignore: {token}, Stop words: {_preview(keywords)}")

            analysis = self.scorer(content.html, keywords, token)
        except Exception as e:
            message = str(e) or e.__class__.__name__
            log(f"Error analyzing snapshot {snapshot.timestamp}: {message}", logging.WARNING)
            return SnapshotError(
                timestamp=snapshot.timestamp,
                original_url=snapshot.original_url,
                error=message,
                stack="".join(traceback.format_exception(type(e), e, e.__traceback__)),
            )

        title = analysis.meta_tags.get("title")
        log(f"{tag} Text extracted: {analysis.text_length} chars, Meta: title={title[:50] if title else 'none'}")
        log(
            f"{tag} Analysis complete: spam={analysis.is_spam}, score={analysis.spam_score}, "
            f"found={analysis.stop_words.count} stop words"
        )
        if analysis.stop_words.count == 0 and keywords and analysis.text_length > 100:
            log(
                f"{tag} WARNING: No stop words found but text length is {analysis.text_length} chars. "
                "Possible issues: domain filtering too aggressive or text extraction failed.",
                logging.WARNING,
            )
        if analysis.is_spam:
            words = ", ".join(h.word for h in analysis.stop_words.found)
            log(f"{tag} SPAM DETECTED: {words}", logging.WARNING)
        return analysis

    def analyze_domains(
        self,
        targets: Sequence[str],
        keywords: Sequence[str] = (),
        max_snapshots: int = DEFAULT_MAX_SNAPSHOTS,
        on_progress: ProgressSink | None = None,
    ) -> list[DomainResult]:
        """Analyze targets one after another, in input order.

        Blank targets are skipped. A target whose analysis raises yields a
        degraded ``status="error"`` result instead of aborting the batch.
        """
        results: list[DomainResult] = []
        count = len(targets)

        for i, raw in enumerate(targets):
            domain = (raw or "").strip()
            if not domain:
                continue

            prefix = f"[{i + 1}/{count}] {domain}: "

            def sink(msg: str, _prefix: str = prefix) -> None:
                if on_progress is not None:
                    on_progress(_prefix + msg)

            try:
                results.append(self.analyze_domain(domain, keywords, max_snapshots, sink))
            except Exception as e:
                logger.error("%sError: %s", prefix, e)
                _Progress(sink, echo=False)(f"Error: {e}", logging.ERROR)
                results.append(DomainResult(domain=domain, status="error", error=str(e)))

            if i < count - 1:
                self._sleep(self.domain_delay_s)

        return results
