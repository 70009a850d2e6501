"""Deterministic text cleanup applied before any matching."""

from __future__ import annotations

import re

FILLER_WORDS = frozenset({"um", "uh", "er", "like", "well", "so", "actually"})
FILLER_PHRASES = (("you", "know"),)
STOP_WORDS = frozenset(
    {
        "a",
        "an",
        "the",
        "please",
        "to",
        "of",
        "for",
        "and",
        "is",
        "are",
        "my",
        "me",
        "i",
        "it",
        "can",
        "could",
        "would",
        "will",
        "just",
    }
)

_NON_WORD_RE = re.compile(r"[\W_]+")
_REPEAT_RE = re.compile(r"(.)\1{2,}")


def normalize(text: object) -> str:
    """Lower-case, strip punctuation, drop filler/stop words, collapse runs.

    Never raises; anything that is not usable text yields ``""``.
    """
    if not isinstance(text, str) or not text:
        return ""
    cleaned = _NON_WORD_RE.sub(" ", text.lower())
    cleaned = _REPEAT_RE.sub(r"\1\1", cleaned)

    kept: list[str] = []
    for token in cleaned.split():
        if token in FILLER_WORDS or token in STOP_WORDS:
            continue
        kept.append(token)
        # stack-based removal so nested phrases ("you you know know") vanish too
        for phrase in FILLER_PHRASES:
            size = len(phrase)
            if tuple(kept[-size:]) == phrase:
                del kept[-size:]
                break
    return " ".join(kept)
