from __future__ import annotations

import html as html_lib
import re
from typing import Iterable

from .models import DocumentAnalysis, StopWordHit, StopWordMatches

# Score contributed by the first occurrence of each distinct stop word and by
# every repeat. Capped at 10.
_DISTINCT_WEIGHT = 2.0
_REPEAT_WEIGHT = 0.5
_MAX_SCORE = 10.0
SPAM_THRESHOLD = 2.0

_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
_SCRIPT_RE = re.compile(r"<script\b[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
_STYLE_RE = re.compile(r"<style\b[^>]*>.*?</style>", re.IGNORECASE | re.DOTALL)
_NOSCRIPT_RE = re.compile(r"<noscript\b[^>]*>.*?</noscript>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")
_TITLE_RE = re.compile(r"<title\b[^>]*>(.*?)</title>", re.IGNORECASE | re.DOTALL)
_META_RE = re.compile(r"<meta\b([^>]*)>", re.IGNORECASE)
_ATTR_RE = re.compile(r"([a-zA-Z_:][-a-zA-Z0-9_:.]*)\s*=\s*(\"[^\"]*\"|'[^']*'|[^\s\"'>]+)")
_WS_RE = re.compile(r"\s+")

_META_KEYS = ("description", "keywords", "og:title", "og:description")
# Meta values that are scanned for stop words alongside the visible text.
_SCANNED_META = ("title", "description", "keywords")


def _clean(text: str) -> str:
    return _WS_RE.sub(" ", html_lib.unescape(text or "")).strip()


def extract_meta_tags(markup: str) -> dict[str, str]:
    tags: dict[str, str] = {}

    m = _TITLE_RE.search(markup)
    if m:
        title = _clean(_TAG_RE.sub(" ", m.group(1)))
        if title:
            tags["title"] = title

    for meta in _META_RE.finditer(markup):
        attrs = {k.lower(): v.strip("\"'") for k, v in _ATTR_RE.findall(meta.group(1))}
        key = (attrs.get("name") or attrs.get("property") or "").strip().lower()
        content = _clean(attrs.get("content", ""))
        if key in _META_KEYS and content and key not in tags:
            tags[key] = content
    return tags


def extract_text(markup: str) -> str:
    """Body text of a document. The title is reported through meta tags instead."""
    if not markup:
        return ""
    cleaned = _COMMENT_RE.sub(" ", markup)
    cleaned = _TITLE_RE.sub(" ", cleaned)
    cleaned = _SCRIPT_RE.sub(" ", cleaned)
    cleaned = _STYLE_RE.sub(" ", cleaned)
    cleaned = _NOSCRIPT_RE.sub(" ", cleaned)
    cleaned = _TAG_RE.sub(" ", cleaned)
    return _clean(cleaned)


def _exclusion_patterns(exclude_domain: str | None) -> list[re.Pattern[str]]:
    if not exclude_domain:
        return []
    host = exclude_domain.strip().lower()
    if not host:
        return []
    patterns = [_word_pattern(host)]

    # Whole words only.
    # The brand label alone ("example" for www.example.com) counts as a self-reference too.
    bare = host[4:] if host.startswith("www.") else host
    label = bare.split(".")[0]
    if len(label) >= 3 and label != host:
        patterns.append(_word_pattern(label))
    return patterns


def _word_pattern(word: str) -> re.Pattern[str]:
    parts = [re.escape(p) for p in word.split()]
    return re.compile(r"(?<!\w)" + r"\s+".join(parts) + r"(?!\w)", re.IGNORECASE)


def _normalize_keywords(stop_words: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for w in stop_words:
        word = _WS_RE.sub(" ", str(w or "")).strip().lower()
        if word and word not in seen:
            seen.add(word)
            out.append(word)
    return out


def score_matches(total: int, distinct: int) -> float:
    if distinct <= 0:
        return 0.0
    raw = distinct * _DISTINCT_WEIGHT + (total - distinct) * _REPEAT_WEIGHT
    return round(min(_MAX_SCORE, raw), 1)


def analyze_html_for_spam(
    markup: str,
    stop_words: Iterable[str],
    exclude_domain: str | None = None,
) -> DocumentAnalysis:
    """Score one archived document against a stop-word list.

    Occurrences of ``exclude_domain`` (and its leading label) are removed
    before matching, so a site mentioning its own name never matches a
    stop word contained in that name.
    """
    text = extract_text(markup)
    meta_tags = extract_meta_tags(markup or "")

    haystack = " ".join([text] + [meta_tags[k] for k in _SCANNED_META if k in meta_tags]).lower()
    for pattern in _exclusion_patterns(exclude_domain):
        haystack = pattern.sub(" ", haystack)

    found: list[StopWordHit] = []
    total = 0
    for word in _normalize_keywords(stop_words):
        count = len(_word_pattern(word).findall(haystack))
        if count:
            found.append(StopWordHit(word=word, count=count))
            total += count

    spam_score = score_matches(total, len(found))
    return DocumentAnalysis(
        text_length=len(text),
        meta_tags=meta_tags,
        stop_words=StopWordMatches(count=total, found=found),
        is_spam=spam_score >= SPAM_THRESHOLD,
        spam_score=spam_score,
    )
