"""String similarity scores used by the wake word and command matchers.

Every function returns a float in ``[0, 1]`` and never raises on odd input;
non-string arguments are treated as empty text.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional, Tuple

from rapidfuzz.distance import Levenshtein

from normalizer import normalize

EDIT_WEIGHT = 0.3
PHONETIC_WEIGHT = 0.4
TOKEN_WEIGHT = 0.2
BIGRAM_WEIGHT = 0.1
CONTAINMENT_SCORE = 0.95

# applied in order
PHONETIC_SUBSTITUTIONS = (
    ("ph", "f"),
    ("gh", "f"),
    ("ck", "k"),
    ("ch", "k"),
    ("sh", "s"),
    ("th", "t"),
    ("wh", "w"),
    ("qu", "k"),
    ("x", "ks"),
    ("z", "s"),
)

_VOWEL_RE = re.compile(r"[aeiou]")
_DOUBLE_RE = re.compile(r"(.)\1+")


def _text(value: object) -> str:
    return value if isinstance(value, str) else ""


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def edit_similarity(a: object, b: object) -> float:
    a, b = _text(a), _text(b)
    if a == b:
        return 1.0
    longest = max(len(a), len(b))
    return _clamp(1.0 - Levenshtein.distance(a, b) / longest)


def phonetic_key(text: object) -> str:
    """Reduce text to a rough consonant skeleton."""
    key = _text(text).lower()
    for digraph, phoneme in PHONETIC_SUBSTITUTIONS:
        key = key.replace(digraph, phoneme)
    key = _VOWEL_RE.sub("", key)
    return _DOUBLE_RE.sub(r"\1", key)


def phonetic_similarity(a: object, b: object) -> float:
    return edit_similarity(phonetic_key(a), phonetic_key(b))


def _jaccard(left: set, right: set) -> float:
    union = left | right
    if not union:
        return 0.0
    return len(left & right) / len(union)


def token_jaccard(a: object, b: object) -> float:
    return _jaccard(set(_text(a).split()), set(_text(b).split()))


def _bigrams(text: str) -> set:
    return {text[i : i + 2] for i in range(len(text) - 1)}


def bigram_similarity(a: object, b: object) -> float:
    return _jaccard(_bigrams(_text(a)), _bigrams(_text(b)))


def blended_similarity(a: object, b: object) -> float:
    """Weighted blend of the four scores, without the containment shortcut."""
    score = (
        EDIT_WEIGHT * edit_similarity(a, b)
        + PHONETIC_WEIGHT * phonetic_similarity(a, b)
        + TOKEN_WEIGHT * token_jaccard(a, b)
        + BIGRAM_WEIGHT * bigram_similarity(a, b)
    )
    return _clamp(score)


def fused_similarity(a: object, b: object) -> float:
    a, b = _text(a), _text(b)
    if a == b:
        return 1.0
    if a and b and (a in b or b in a):
        return CONTAINMENT_SCORE
    return blended_similarity(a, b)


def best_match(
    text: object, candidates: Iterable[str], floor: float = 0.0
) -> Optional[Tuple[str, float]]:
    """Return the candidate phrase closest to ``text`` above ``floor``.

    Both sides are normalized first; the original candidate string is
    returned so it can be read back to the user.
    """
    query = normalize(text)
    if not query:
        return None
    best: Optional[Tuple[str, float]] = None
    for candidate in candidates:
        score = fused_similarity(query, normalize(candidate))
        if score > floor and (best is None or score > best[1]):
            best = (candidate, score)
    return best
