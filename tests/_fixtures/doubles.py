"""Test doubles for the snapshot source, scorer and sleep primitive."""

from __future__ import annotations

from wayback_spam.models import (
    DocumentAnalysis,
    SnapshotContent,
    SnapshotDescriptor,
    StopWordHit,
    StopWordMatches,
)


class FakeSource:
    """Snapshot source double keyed by target; records every call."""

    def __init__(self, snapshots=None, pages=None, list_error=None) -> None:
        self.snapshots: dict[str, list[SnapshotDescriptor]] = snapshots or {}
        # timestamp -> html, or an Exception to raise on fetch
        self.pages: dict[str, object] = pages or {}
        self.list_error: dict[str, Exception] = list_error or {}
        self.list_calls: list[tuple[str, int]] = []
        self.fetch_calls: list[SnapshotDescriptor] = []

    def list_snapshots(self, target: str, limit: int) -> list[SnapshotDescriptor]:
        self.list_calls.append((target, limit))
        if target in self.list_error:
            raise self.list_error[target]
        return list(self.snapshots.get(target, []))[:limit]

    def fetch_snapshot_content(self, snapshot: SnapshotDescriptor) -> SnapshotContent:
        self.fetch_calls.append(snapshot)
        page = self.pages.get(snapshot.timestamp, "")
        if isinstance(page, Exception):
            raise page
        return SnapshotContent(
            html=page,
            length=len(page.encode("utf-8")),
            snapshot_url=f"https://web.archive.org/web/{snapshot.timestamp}id_/{snapshot.original_url}",
        )


class FakeScorer:
    """Scorer double returning canned hits per html body."""

    def __init__(self, hits: dict[str, dict[str, int]] | None = None, errors: dict[str, Exception] | None = None) -> None:
        self.hits = hits or {}
        self.errors = errors or {}
        self.calls: list[tuple[str, list[str], str]] = []

    def __call__(self, html: str, keywords, exclude: str) -> DocumentAnalysis:
        self.calls.append((html, list(keywords), exclude))
        if html in self.errors:
            raise self.errors[html]
        words = self.hits.get(html, {})
        found = [StopWordHit(word=w, count=c) for w, c in words.items()]
        total = sum(words.values())
        score = min(10.0, 2.0 * len(found) + 0.5 * (total - len(found))) if found else 0.0
        return DocumentAnalysis(
            text_length=len(html),
            meta_tags={},
            stop_words=StopWordMatches(count=total, found=found),
            is_spam=bool(found),
            spam_score=score,
        )


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def snap(ts: str, url: str | None = "http://example.com/") -> SnapshotDescriptor:
    return SnapshotDescriptor(timestamp=ts, original_url=url)
