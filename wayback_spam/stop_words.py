from __future__ import annotations

import re
from typing import Iterable

DEFAULT_STOP_WORDS: tuple[str, ...] = (
    # gambling
    "casino",
    "online casino",
    "poker",
    "slots",
    "betting",
    "roulette",
    "jackpot",
    # pharma
    "viagra",
    "cialis",
    "levitra",
    "pharmacy",
    "tramadol",
    "xanax",
    "weight loss",
    # adult
    "porn",
    "xxx",
    "escort",
    "dating",
    # finance
    "payday loan",
    "payday loans",
    "forex",
    "binary options",
    # counterfeit
    "replica",
    "replica watches",
    "cheap jerseys",
    # crypto scams
    "crypto giveaway",
    "bitcoin doubler",
)

_SPLIT_RE = re.compile(r"[,;\r\n]+")


def _normalize(words: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for w in words:
        word = " ".join(str(w or "").split()).lower()
        if word and word not in seen:
            seen.add(word)
            out.append(word)
    return out


def parse_stop_words(text: str | None) -> list[str]:
    """Split user-supplied keywords on commas, semicolons or newlines."""
    if not text:
        return []
    return _normalize(_SPLIT_RE.split(text))


def combine_stop_words(custom: Iterable[str] | None = None, *, include_defaults: bool = True) -> list[str]:
    base = list(DEFAULT_STOP_WORDS) if include_defaults else []
    return _normalize(base + list(custom or []))
