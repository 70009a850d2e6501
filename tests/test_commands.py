from __future__ import annotations

import pytest

from commands import (
    CAMERA,
    COMMAND_PATTERNS,
    HELP,
    NAVIGATION,
    SETTINGS,
    CommandMatcher,
    validate_patterns,
)
from models import CommandPattern, LearningStat


def _custom_matcher(**kwargs: object) -> CommandMatcher:
    table = (
        CommandPattern(action="alpha", patterns=("alpha", "shared"), weight=0.8),
        CommandPattern(action="beta", patterns=("beta", "shared"), context_tags=("lamp",)),
    )
    return CommandMatcher(table=table, subcommands=(), **kwargs)


def test_default_table_is_valid() -> None:
    validate_patterns(COMMAND_PATTERNS)


def test_literal_match() -> None:
    match = CommandMatcher().match("camera")

    assert match is not None
    assert match.action == CAMERA
    assert match.method == "literal"
    assert match.confidence == 1.0


def test_phonetic_variant_match() -> None:
    match = CommandMatcher().match("kamera")

    assert match is not None
    assert match.action == CAMERA
    assert match.method == "phonetic"
    assert match.confidence == pytest.approx(0.9)


def test_alias_match() -> None:
    match = CommandMatcher().match("look around")

    assert match is not None
    assert match.action == CAMERA
    assert match.method == "alias"
    assert match.confidence == pytest.approx(0.95)


def test_help_word_maps_to_help_command() -> None:
    match = CommandMatcher().match("help")

    assert match is not None
    assert match.action == HELP


def test_no_match_below_threshold() -> None:
    assert _custom_matcher().match("zebra") is None
    assert CommandMatcher().match("") is None


def test_entry_weight_and_mode_boost() -> None:
    matcher = _custom_matcher()

    assert matcher.match("alpha").confidence == pytest.approx(0.8)
    assert matcher.match("alpha", current_mode="alpha").confidence == pytest.approx(0.92)


def test_context_tag_boost_is_clamped() -> None:
    matcher = _custom_matcher()

    assert matcher.match("beta on").confidence == pytest.approx(0.95)
    assert matcher.match("beta lamp").confidence == 1.0


def test_learning_stats_boost() -> None:
    stats = {"alpha": LearningStat(success_count=1, failure_count=1)}

    boosted = _custom_matcher().match("alpha", learning_stats=stats)
    assert boosted.confidence == pytest.approx(0.88)

    plain = _custom_matcher(adaptive_learning=False).match("alpha", learning_stats=stats)
    assert plain.confidence == pytest.approx(0.8)


def test_ties_go_to_first_entry() -> None:
    matcher = CommandMatcher(
        table=(
            CommandPattern(action="alpha", patterns=("alpha", "shared")),
            CommandPattern(action="beta", patterns=("beta", "shared")),
        ),
        subcommands=(),
    )

    assert matcher.match("shared").action == "alpha"


def test_validate_rejects_duplicate_actions() -> None:
    table = (
        CommandPattern(action="alpha", patterns=("alpha",)),
        CommandPattern(action="alpha", patterns=("alpha", "again")),
    )
    with pytest.raises(ValueError, match="duplicate"):
        validate_patterns(table)


def test_validate_requires_own_name_as_pattern() -> None:
    with pytest.raises(ValueError):
        CommandMatcher(table=(CommandPattern(action="alpha", patterns=("first",)),))


def test_subcommand_match_in_active_mode() -> None:
    match = CommandMatcher().match_subcommand("start camera", CAMERA)

    assert match is not None
    assert match.action == CAMERA
    assert match.method == "subcommand"
    assert match.similarity == 1.0
    assert match.subcommand is not None
    assert match.subcommand.action == "start"


def test_subcommand_ignored_outside_its_mode() -> None:
    matcher = CommandMatcher()

    assert matcher.match_subcommand("start camera", NAVIGATION) is None
    assert matcher.match_subcommand("start camera", None) is None


def test_settings_subcommand_carries_value() -> None:
    match = CommandMatcher().match_subcommand("speed up", SETTINGS)

    assert match.subcommand.action == "speechRate"
    assert match.subcommand.value == "increase"


def test_known_phrases_include_mode_specific_phrases() -> None:
    matcher = CommandMatcher()

    assert "speed up" in matcher.known_phrases(SETTINGS)
    assert "camera" in matcher.known_phrases(SETTINGS)
    assert "speed up" not in matcher.known_phrases(None)
