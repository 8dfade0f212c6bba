from __future__ import annotations

import json
import logging
import time
from typing import Callable

import httpx

from .errors import SnapshotFetchError, SnapshotListingError
from .models import SnapshotContent, SnapshotDescriptor
from .settings import Settings

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class WaybackClient:
    """Lists and fetches Wayback Machine captures for a target.

    Listings go through the CDX index; content is fetched from the raw
    (``id_``) capture so the archive toolbar never leaks into the text.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        http: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
        cache: bool = True,
    ) -> None:
        self.settings = settings or Settings()
        self._owns_http = http is None
        self._http = http or httpx.Client(
            timeout=self.settings.timeout_ms / 1000,
            follow_redirects=True,
            headers={"user-agent": self.settings.user_agent},
        )
        self._sleep = sleep
        self._cache: dict[tuple[str, int], list[SnapshotDescriptor]] | None = {} if cache else None

    def __enter__(self) -> "WaybackClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def snapshot_url(self, snapshot: SnapshotDescriptor, *, raw: bool = True) -> str:
        marker = "id_" if raw else ""
        return f"{self.settings.web_url}/{snapshot.timestamp}{marker}/{snapshot.original_url or ''}"

    def list_snapshots(self, target: str, limit: int = 10) -> list[SnapshotDescriptor]:
        key = (target, limit)
        if self._cache is not None and key in self._cache:
            return list(self._cache[key])

        params = [
            ("url", target),
            ("output", "json"),
            ("fl", "timestamp,original,mimetype,statuscode"),
            ("filter", "statuscode:200"),
            ("filter", "mimetype:text/html"),
            ("collapse", "digest"),
            ("limit", str(limit)),
        ]
        try:
            res = self._get(self.settings.cdx_url, params=params)
        except httpx.HTTPError as e:
            raise SnapshotListingError(f"CDX request failed for {target}: {e}") from e
        if res.status_code < 200 or res.status_code >= 300:
            raise SnapshotListingError(f"CDX request failed for {target}: HTTP {res.status_code}")

        snapshots = _parse_cdx_rows(res.text, target)[:limit]
        logger.debug("CDX returned %d snapshots for %s", len(snapshots), target)
        if self._cache is not None:
            self._cache[key] = list(snapshots)
        return snapshots

    def fetch_snapshot_content(self, snapshot: SnapshotDescriptor) -> SnapshotContent:
        url = self.snapshot_url(snapshot, raw=True)
        try:
            res = self._get(url, headers={"accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8"})
        except httpx.HTTPError as e:
            raise SnapshotFetchError(f"Snapshot {snapshot.timestamp} unreachable: {e}") from e
        if res.status_code < 200 or res.status_code >= 300:
            raise SnapshotFetchError(f"Snapshot {snapshot.timestamp} unavailable: HTTP {res.status_code}")

        body = res.content
        if not body:
            raise SnapshotFetchError(f"Snapshot {snapshot.timestamp} returned an empty body")
        html = body.decode(res.encoding or "utf-8", errors="replace")
        return SnapshotContent(html=html, length=len(body), snapshot_url=url)

    def _get(self, url: str, **kwargs) -> httpx.Response:
        attempts = max(1, self.settings.max_retries)
        for attempt in range(attempts - 1):
            try:
                res = self._http.get(url, **kwargs)
            except httpx.TransportError as e:
                wait = self._backoff(attempt)
                logger.warning("Archive request error (%s), retry %d/%d in %.1fs", e, attempt + 1, attempts, wait)
                self._sleep(wait)
                continue

            if res.status_code not in _RETRYABLE_STATUS:
                return res
            wait = _retry_after(res) if res.status_code == 429 else None
            if wait is None:
                wait = self._backoff(attempt)
            logger.warning("Archive returned HTTP %d, retry %d/%d in %.1fs", res.status_code, attempt + 1, attempts, wait)
            self._sleep(wait)
        return self._http.get(url, **kwargs)

    def _backoff(self, attempt: int) -> float:
        return self.settings.retry_backoff_s * (2 ** attempt)


def _retry_after(res: httpx.Response) -> float | None:
    raw = res.headers.get("retry-after")
    if not raw:
        return None
    try:
        return max(0.0, float(raw))
    except ValueError:
        return None


def _parse_cdx_rows(text: str, target: str) -> list[SnapshotDescriptor]:
    if not text.strip():
        return []
    try:
        rows = json.loads(text)
    except ValueError as e:
        raise SnapshotListingError(f"Malformed CDX response for {target}") from e
    if not isinstance(rows, list):
        raise SnapshotListingError(f"Malformed CDX response for {target}")
    if not rows:
        return []

    header = rows[0]
    try:
        ts_idx = header.index("timestamp")
        url_idx = header.index("original")
    except (ValueError, AttributeError) as e:
        raise SnapshotListingError(f"CDX response for {target} has no header row") from e

    out: list[SnapshotDescriptor] = []
    for row in rows[1:]:
        if not isinstance(row, list) or len(row) <= max(ts_idx, url_idx):
            continue
        ts = str(row[ts_idx] or "").strip()
        if not ts:
            continue
        original = str(row[url_idx] or "").strip() or None
        out.append(SnapshotDescriptor(timestamp=ts, original_url=original))
    return out
