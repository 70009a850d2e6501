"""Fuzzy wake phrase detection on transcribed text."""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from models import WakeResult
from normalizer import normalize
from similarity import fused_similarity

logger = logging.getLogger(__name__)

WAKE_PHRASES = ("hey vision", "vision guide")
WAKE_PHONETIC_VARIANTS = ("hay vision", "hey vishun", "hey vizhun", "hey visions")
WAKE_ALIASES = ("hi vision", "okay vision")


def _normalized_unique(phrases: Iterable[str]) -> tuple[str, ...]:
    seen: list[str] = []
    for phrase in phrases:
        norm = normalize(phrase)
        if norm and norm not in seen:
            seen.append(norm)
    return tuple(seen)


class WakeWordDetector:
    """Decide whether an utterance starts with (or contains) the wake phrase.

    The whole utterance is compared against every variant, and every run of
    consecutive words as long as a variant is compared against it as well;
    window hits above ``window_threshold`` count at ``window_weight``. This
    catches a wake phrase that the recognizer split or garbled in the middle
    of a longer sentence. A recent wake phrase in history boosts confidence.
    """

    def __init__(
        self,
        phrases: Sequence[str] = WAKE_PHRASES,
        phonetic_variants: Sequence[str] = WAKE_PHONETIC_VARIANTS,
        aliases: Sequence[str] = WAKE_ALIASES,
        threshold: float = 0.65,
        window_threshold: float = 0.8,
        window_weight: float = 0.9,
        context_boost: float = 1.15,
        context_window: int = 3,
    ) -> None:
        self._variants = _normalized_unique([*phrases, *phonetic_variants, *aliases])
        if not self._variants:
            raise ValueError("at least one wake phrase is required")
        self.threshold = threshold
        self._window_threshold = window_threshold
        self._window_weight = window_weight
        self._context_boost = context_boost
        self._context_window = context_window

    @property
    def variants(self) -> tuple[str, ...]:
        return self._variants

    def contains_wake_phrase(self, text: str) -> bool:
        norm = normalize(text)
        return bool(norm) and any(variant in norm for variant in self._variants)

    def detect(self, raw_text: str, history: Sequence[str] = ()) -> WakeResult:
        text = normalize(raw_text)
        if not text:
            return WakeResult(activated=False, confidence=0.0, residual="")

        tokens = text.split()
        confidence = 0.0
        matched: set[int] = set()
        for variant in self._variants:
            size = len(variant.split())
            if len(tokens) < size:
                # a fragment of the phrase ("hey") is not the phrase
                continue
            confidence = max(confidence, fused_similarity(text, variant))
            for start in range(len(tokens) - size + 1):
                window = " ".join(tokens[start : start + size])
                score = fused_similarity(window, variant)
                if score > self._window_threshold:
                    confidence = max(confidence, score * self._window_weight)
                    matched.update(range(start, start + size))

        recent = list(history)[-self._context_window :] if self._context_window > 0 else []
        if confidence > 0 and any(self.contains_wake_phrase(entry) for entry in recent):
            confidence = min(1.0, confidence * self._context_boost)

        activated = confidence > self.threshold
        residual = " ".join(tok for i, tok in enumerate(tokens) if i not in matched)
        if activated:
            logger.debug("Wake phrase detected (%.2f) in %r", confidence, text)
        return WakeResult(activated=activated, confidence=confidence, residual=residual)
