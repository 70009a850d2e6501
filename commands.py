"""Command table and fuzzy matching of the text that follows the wake phrase."""

from __future__ import annotations

import logging
from typing import Mapping, Optional, Sequence

from models import CommandMatch, CommandPattern, LearningStat, SubCommand
from normalizer import normalize
from similarity import fused_similarity

logger = logging.getLogger(__name__)

CAMERA = "camera"
NAVIGATION = "navigation"
EMERGENCY = "emergency"
SETTINGS = "settings"
STATUS = "status"
HELP = "help"

MODES = (CAMERA, NAVIGATION, EMERGENCY, SETTINGS)

COMMAND_PATTERNS: tuple[CommandPattern, ...] = (
    CommandPattern(
        action=CAMERA,
        patterns=("camera", "smart vision", "see"),
        phonetic_variants=("kamera", "camra"),
        aliases=("detect objects", "look around"),
        context_tags=("photo", "picture", "object"),
    ),
    CommandPattern(
        action=NAVIGATION,
        patterns=("navigation", "navigate", "walk", "directions"),
        phonetic_variants=("navigashun", "navigat"),
        aliases=("walk guide", "guide me"),
        context_tags=("route", "walking", "step"),
    ),
    CommandPattern(
        action=EMERGENCY,
        patterns=("emergency", "call", "sos"),
        phonetic_variants=("emergensy", "emerjency"),
        aliases=("help me", "need help"),
        context_tags=("urgent", "danger", "911"),
    ),
    CommandPattern(
        action=SETTINGS,
        patterns=("settings", "preferences", "configure"),
        phonetic_variants=("setings", "setting"),
        aliases=("options",),
        context_tags=("voice", "speed", "volume"),
    ),
    CommandPattern(
        action=STATUS,
        patterns=("status", "where am i", "current mode"),
        phonetic_variants=("statis", "stadus"),
        aliases=("what mode",),
        context_tags=("mode",),
        weight=0.95,
    ),
    CommandPattern(
        action=HELP,
        patterns=("help", "commands", "what can i say"),
        phonetic_variants=("halp",),
        aliases=("list commands",),
        context_tags=("commands",),
        weight=0.95,
    ),
)

SUBCOMMANDS: tuple[SubCommand, ...] = (
    SubCommand(CAMERA, "start", ("start camera", "activate camera"), "Starting camera for object detection"),
    SubCommand(CAMERA, "stop", ("stop camera", "close camera"), "Stopping camera"),
    SubCommand(
        CAMERA, "analyze", ("analyze", "describe", "what do you see"), "Analyzing your surroundings now"
    ),
    SubCommand(NAVIGATION, "start", ("start navigation", "begin walking"), "Starting navigation"),
    SubCommand(NAVIGATION, "next", ("next step", "continue"), "Next step"),
    SubCommand(NAVIGATION, "repeat", ("repeat", "say again"), "Repeating the last instruction"),
    SubCommand(NAVIGATION, "stop", ("stop navigation", "end navigation"), "Navigation stopped"),
    SubCommand(
        EMERGENCY, "call-911", ("call emergency", "nine one one"), "Calling emergency services"
    ),
    SubCommand(EMERGENCY, "call-family", ("call family", "family contact"), "Calling your family contact"),
    SubCommand(EMERGENCY, "call-friend", ("call friend", "trusted friend"), "Calling your trusted friend"),
    SubCommand(
        EMERGENCY, "share-location", ("share location", "send location"), "Sharing your location"
    ),
    SubCommand(EMERGENCY, "send-help", ("send help", "help message"), "Sending a help message"),
    SubCommand(
        SETTINGS, "speechRate", ("speech faster", "speed up"), "Speech rate increased", "increase"
    ),
    SubCommand(
        SETTINGS, "speechRate", ("speech slower", "slow down"), "Speech rate decreased", "decrease"
    ),
    SubCommand(SETTINGS, "speechVolume", ("volume up", "louder"), "Volume increased", "increase"),
    SubCommand(SETTINGS, "speechVolume", ("volume down", "quieter"), "Volume decreased", "decrease"),
    SubCommand(
        SETTINGS,
        "test",
        ("test voice", "test speech"),
        "This is a test of your voice settings. You can adjust the speech rate and volume to your preference.",
    ),
    SubCommand(SETTINGS, "reset", ("reset settings", "default settings"), "Voice settings reset to default values"),
)

LITERAL_FACTOR = 1.0
PHONETIC_FACTOR = 0.9
ALIAS_FACTOR = 0.95
CONTEXT_TAG_BOOST = 1.25
MODE_BOOST = 1.15
LEARNING_SCALE = 0.2


def validate_patterns(table: Sequence[CommandPattern]) -> None:
    seen: set[str] = set()
    for entry in table:
        if entry.action in seen:
            raise ValueError(f"duplicate command action: {entry.action}")
        seen.add(entry.action)
        if entry.action not in entry.patterns:
            raise ValueError(f"command {entry.action!r} must list its own name as a pattern")


class CommandMatcher:
    def __init__(
        self,
        table: Sequence[CommandPattern] = COMMAND_PATTERNS,
        subcommands: Sequence[SubCommand] = SUBCOMMANDS,
        threshold: float = 0.7,
        adaptive_learning: bool = True,
    ) -> None:
        validate_patterns(table)
        self.threshold = threshold
        self.adaptive_learning = adaptive_learning
        self._table = tuple(table)
        self._subcommands = tuple(subcommands)
        self._candidates = [
            (
                entry,
                [
                    (normalize(phrase), factor, method)
                    for phrases, factor, method in (
                        (entry.patterns, LITERAL_FACTOR, "literal"),
                        (entry.phonetic_variants, PHONETIC_FACTOR, "phonetic"),
                        (entry.aliases, ALIAS_FACTOR, "alias"),
                    )
                    for phrase in phrases
                    if normalize(phrase)
                ],
                [normalize(tag) for tag in entry.context_tags if normalize(tag)],
            )
            for entry in self._table
        ]

    @property
    def table(self) -> tuple[CommandPattern, ...]:
        return self._table

    def known_phrases(self, mode: Optional[str] = None) -> list[str]:
        """Phrases a user can say, used for suggestions after a miss."""
        phrases = [phrase for entry in self._table for phrase in (*entry.patterns, *entry.aliases)]
        phrases.extend(
            phrase for sub in self._subcommands if sub.mode == mode for phrase in sub.patterns
        )
        return phrases

    def match(
        self,
        residual: str,
        current_mode: Optional[str] = None,
        learning_stats: Optional[Mapping[str, LearningStat]] = None,
    ) -> Optional[CommandMatch]:
        text = normalize(residual)
        if not text:
            return None

        best: Optional[CommandMatch] = None
        for entry, candidates, tags in self._candidates:
            score, similarity, method, phrase = 0.0, 0.0, "literal", ""
            for candidate, factor, kind in candidates:
                raw = fused_similarity(text, candidate)
                weighted = raw * factor * entry.weight
                if weighted > score:
                    score, similarity, method, phrase = weighted, raw, kind, candidate

            if any(tag in text for tag in tags):
                score *= CONTEXT_TAG_BOOST
            if current_mode is not None and entry.action == current_mode:
                score *= MODE_BOOST
            if self.adaptive_learning and learning_stats:
                stat = learning_stats.get(entry.action)
                if stat is not None:
                    score *= 1.0 + stat.success_rate * LEARNING_SCALE
            confidence = max(0.0, min(1.0, score))

            if best is None or confidence > best.confidence:
                best = CommandMatch(
                    action=entry.action,
                    confidence=confidence,
                    method=method,
                    similarity=similarity,
                    phrase=phrase,
                )

        if best is None or best.confidence <= self.threshold:
            logger.debug("No command above %.2f for %r", self.threshold, text)
            return None
        return best

    def match_subcommand(self, residual: str, mode: Optional[str]) -> Optional[CommandMatch]:
        """Match phrases that only apply while ``mode`` is active."""
        text = normalize(residual)
        if not text or mode is None:
            return None

        best: Optional[CommandMatch] = None
        for sub in self._subcommands:
            if sub.mode != mode:
                continue
            for phrase in sub.patterns:
                candidate = normalize(phrase)
                score = fused_similarity(text, candidate)
                if best is None or score > best.confidence:
                    best = CommandMatch(
                        action=sub.mode,
                        confidence=score,
                        method="subcommand",
                        similarity=score,
                        phrase=candidate,
                        subcommand=sub,
                    )

        if best is None or best.confidence <= self.threshold:
            return None
        return best
