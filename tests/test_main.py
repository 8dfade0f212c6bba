"""Tests for the FastAPI service in wayback_spam.main."""

from __future__ import annotations

import logging

import pytest
from fastapi.testclient import TestClient

from wayback_spam.analyzer import SpamAnalyzer
from wayback_spam.errors import SnapshotListingError
from wayback_spam.main import app, get_analyzer
from wayback_spam.stop_words import DEFAULT_STOP_WORDS
from tests._fixtures.doubles import FakeScorer, FakeSource, snap


@pytest.fixture
def source() -> FakeSource:
    return FakeSource(
        snapshots={
            "spamsite.com": [snap("20150101000000"), snap("20160101000000")],
            "cleansite.com": [snap("20170101000000")],
        },
        pages={"20150101000000": "casino page", "20160101000000": "plain", "20170101000000": "plain"},
        list_error={"down.com": SnapshotListingError("CDX down")},
    )


@pytest.fixture
def scorer() -> FakeScorer:
    return FakeScorer(hits={"casino page": {"casino": 2}})


@pytest.fixture
def client(source, scorer):
    analyzer = SpamAnalyzer(source, scorer, sleep=lambda _s: None)
    app.dependency_overrides[get_analyzer] = lambda: analyzer
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def test_healthz(client) -> None:
    res = client.get("/healthz")

    assert res.status_code == 200
    assert res.json() == {"ok": True}


def test_analyze_spam_returns_results_summary_and_logs(client, scorer) -> None:
    res = client.post(
        "/analyze-spam",
        json={"domains": ["spamsite.com", "cleansite.com", "down.com", "  "], "stop_words": "casino, Bitcoin Mixer"},
    )

    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert [r["domain"] for r in body["results"]] == ["spamsite.com", "cleansite.com", "down.com"]

    spam = body["results"][0]
    assert spam["status"] == "spam"
    assert spam["spam_percentage"] == 50.0
    assert spam["stop_words_found"] == [{"word": "casino", "count": 2}]
    assert body["results"][1]["status"] == "clean"
    assert body["results"][2]["status"] == "error"
    assert "CDX down" in body["results"][2]["error"]

    assert body["summary"] == {
        "total": 3,
        "clean": 1,
        "suspicious": 0,
        "spam": 1,
        "errors": 1,
        "no_snapshots": 0,
    }
    messages = [entry["message"] for entry in body["logs"]]
    assert messages[0] == "Starting spam analysis for 3 domain(s)"
    assert "Max snapshots per domain: 10" in messages
    assert any(m.startswith("[1/3] spamsite.com: ") for m in messages)
    assert body["logs"][-1]["type"] == "success"

    keywords = scorer.calls[0][1]
    assert keywords[: len(DEFAULT_STOP_WORDS)] == list(DEFAULT_STOP_WORDS)
    assert keywords[-1] == "bitcoin mixer"


def test_analyze_spam_uses_default_stop_words_and_limit(client, source, scorer) -> None:
    res = client.post("/analyze-spam", json={"domains": ["cleansite.com"], "max_snapshots": 3})

    assert res.status_code == 200
    assert source.list_calls == [("cleansite.com", 3)]
    assert scorer.calls[0][1] == list(DEFAULT_STOP_WORDS)


def test_analyze_spam_accepts_stop_word_list(client, scorer) -> None:
    res = client.post("/analyze-spam", json={"domains": ["cleansite.com"], "stop_words": ["Escrow Scam"]})

    assert res.status_code == 200
    assert scorer.calls[0][1][-1] == "escrow scam"


@pytest.mark.parametrize("payload", [{"domains": []}, {"domains": ["  ", ""]}, {}])
def test_analyze_spam_requires_domains(client, payload) -> None:
    res = client.post("/analyze-spam", json=payload)

    assert res.status_code == 400
    body = res.json()
    assert body["error"] == "domains array is required"
    assert body["logs"][0]["type"] == "error"


def test_analyze_spam_validates_snapshot_limit(client) -> None:
    res = client.post("/analyze-spam", json={"domains": ["a.com"], "max_snapshots": 500})

    assert res.status_code == 422


def test_analyze_spam_unexpected_failure(source, scorer) -> None:
    class ExplodingAnalyzer(SpamAnalyzer):
        def analyze_domains(self, *args, **kwargs):
            raise RuntimeError("boom")

    app.dependency_overrides[get_analyzer] = lambda: ExplodingAnalyzer(source, scorer)
    try:
        res = TestClient(app).post("/analyze-spam", json={"domains": ["a.com"]})
    finally:
        app.dependency_overrides.clear()

    assert res.status_code == 500
    body = res.json()
    assert body["error"] == "Spam analysis failed"
    assert body["message"] == "boom"
    assert any(entry["type"] == "error" for entry in body["logs"])


def test_wayback_check(client) -> None:
    res = client.post("/wayback/test", json={"target": " spamsite.com "})

    assert res.status_code == 200
    body = res.json()
    assert body["snapshots_count"] == 2
    assert body["first_snapshot_timestamp"] == "20150101000000"
    assert body["first_snapshot_html_length"] == len("casino page")


def test_wayback_check_failure(client) -> None:
    res = client.post("/wayback/test", json={"target": "down.com"})

    assert res.status_code == 502
    assert "Wayback test failed" in res.json()["detail"]


def test_progress_messages_are_logged_once(client, caplog) -> None:
    caplog.set_level(logging.INFO)

    res = client.post("/analyze-spam", json={"domains": ["cleansite.com"]})

    assert res.status_code == 200
    found = [r for r in caplog.records if "Found 1 snapshots, analyzing..." in r.getMessage()]
    assert len(found) == 1
    assert found[0].name == "wayback_spam.analyzer"
