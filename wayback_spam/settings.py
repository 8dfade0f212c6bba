from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv


# Load environment variables from the repo root .env (local dev convenience).
_HERE = Path(__file__).resolve()
_REPO_ROOT = _HERE.parents[1]
load_dotenv(_REPO_ROOT / ".env", override=False)


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name, "").strip()
    return raw or default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, "").strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, "").strip())
    except ValueError:
        return default


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return list(default)
    return [o.strip() for o in raw.split(",") if o.strip()]


@dataclass(frozen=True)
class Settings:
    cdx_url: str = "https://web.archive.org/cdx/search/cdx"
    web_url: str = "https://web.archive.org/web"
    timeout_ms: int = 30000
    max_retries: int = 3
    retry_backoff_s: float = 2.0
    user_agent: str = "WaybackSpamAgent/1.0 (+historical spam check)"
    snapshot_delay_ms: int = 3000
    domain_delay_ms: int = 5000
    default_max_snapshots: int = 10
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        d = cls()
        return cls(
            cdx_url=_env_str("WAYBACK_CDX_URL", d.cdx_url),
            web_url=_env_str("WAYBACK_WEB_URL", d.web_url).rstrip("/"),
            timeout_ms=max(1000, _env_int("WAYBACK_TIMEOUT_MS", d.timeout_ms)),
            max_retries=max(1, _env_int("WAYBACK_MAX_RETRIES", d.max_retries)),
            retry_backoff_s=max(0.0, _env_float("WAYBACK_RETRY_BACKOFF_S", d.retry_backoff_s)),
            user_agent=_env_str("WAYBACK_USER_AGENT", d.user_agent),
            snapshot_delay_ms=max(0, _env_int("WAYBACK_SNAPSHOT_DELAY_MS", d.snapshot_delay_ms)),
            domain_delay_ms=max(0, _env_int("WAYBACK_DOMAIN_DELAY_MS", d.domain_delay_ms)),
            default_max_snapshots=min(50, max(1, _env_int("WAYBACK_DEFAULT_MAX_SNAPSHOTS", d.default_max_snapshots))),
            cors_origins=_env_list("WAYBACK_SPAM_CORS_ORIGINS", d.cors_origins),
            log_level=_env_str("WAYBACK_SPAM_LOG_LEVEL", d.log_level).upper(),
        )
