"""Tests for storyframe.core.lexicon — rule evaluation and lexicon files.

Tests cover:
- All-keywords rule matching and first-match priority.
- Group de-duplication and limits in all_matches.
- Loading override files, and falling back on missing or invalid files.
- Specific-before-generic ordering of rule tables.
- The per-path lexicon cache.
"""

from __future__ import annotations

import json
import logging

import pytest

from storyframe.core.lexicon import (
    ACTION_RULES,
    BACKGROUND_RULES,
    CHARACTER_RULES,
    DEFAULT_LEXICON,
    EMOTION_RULES,
    MIDGROUND_RULES,
    OBJECT_RULES,
    POSE_RULES,
    all_matches,
    clear_lexicon_cache,
    first_match,
    get_lexicon,
    load_lexicon,
    rule,
    rule_order_problems,
    shadowed_rules,
    transition,
)


class TestKeywordRules:
    """Tests for rule construction and matching."""

    def test_rule_lowercases_keywords(self):
        """Keywords are stored lowercase so matching ignores case."""
        r = rule("Pip", "Squirrel", result="x")
        assert r.keywords == ("pip", "squirrel")

    def test_all_keywords_must_match(self):
        """A rule fires only when every keyword is present."""
        r = rule("glowing", "pebble", result="x")
        assert r.matches("a glowing pebble")
        assert not r.matches("a glowing stone")

    def test_keywords_match_as_substrings(self):
        """Word stems match inflected words ('kneel' in 'kneels')."""
        assert rule("kneel", result="x").matches("she kneels down")

    def test_first_match_returns_default(self):
        """No firing rule returns the default."""
        assert first_match(POSE_RULES, "nothing here", "fallback") == "fallback"

    def test_first_match_respects_order(self):
        """The earliest firing rule wins even when later rules also fire."""
        rules = (rule("a", "b", result="specific"), rule("a", result="generic"))
        assert first_match(rules, "A and B", "none") == "specific"
        assert first_match(rules, "just A", "none") == "generic"


class TestAllMatches:
    """Tests for multi-result rule evaluation."""

    def test_limit(self):
        """At most *limit* results are returned."""
        rules = (rule("a", result="1"), rule("b", result="2"), rule("c", result="3"))
        assert all_matches(rules, "a b c", limit=2) == ["1", "2"]

    def test_group_only_fires_once(self):
        """A later rule in an already-claimed group is skipped."""
        rules = (
            rule("pip", "squirrel", result="specific pip", group="pip"),
            rule("pip", result="generic pip", group="pip"),
            rule("owl", result="owl", group="owl"),
        )
        assert all_matches(rules, "Pip the squirrel and the owl") == ["specific pip", "owl"]

    def test_no_matches(self):
        """No firing rule gives an empty list."""
        assert all_matches(POSE_RULES, "") == []


class TestLoadLexicon:
    """Tests for lexicon override files."""

    def test_override_replaces_section(self, lexicon_file):
        """Sections present in the file replace the built-in ones."""
        lexicon = load_lexicon(lexicon_file)
        assert lexicon.pose_rules[0].result == "swimming beside a playful dolphin"
        assert len(lexicon.character_rules) == 1

    def test_missing_sections_keep_defaults(self, lexicon_file):
        """Sections absent from the file are inherited from the base lexicon."""
        lexicon = load_lexicon(lexicon_file)
        assert lexicon.emotion_rules == DEFAULT_LEXICON.emotion_rules
        assert lexicon.camera_presets == DEFAULT_LEXICON.camera_presets

    def test_default_lexicon_untouched(self, lexicon_file):
        """Loading a file never mutates the built-in lexicon."""
        load_lexicon(lexicon_file)
        assert DEFAULT_LEXICON.pose_rules == POSE_RULES

    def test_missing_file_falls_back(self, temp_dir, caplog):
        """A missing file logs an error and returns the base lexicon."""
        with caplog.at_level(logging.ERROR):
            lexicon = load_lexicon(temp_dir / "nope.json")
        assert lexicon is DEFAULT_LEXICON
        assert "not found" in caplog.text

    def test_invalid_json_falls_back(self, temp_dir):
        """Malformed JSON returns the base lexicon."""
        path = temp_dir / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        assert load_lexicon(path) is DEFAULT_LEXICON

    def test_schema_error_falls_back(self, temp_dir):
        """A rule without keywords fails validation and is ignored."""
        path = temp_dir / "bad.json"
        path.write_text(json.dumps({"pose_rules": [{"keywords": [], "result": "x"}]}), encoding="utf-8")
        assert load_lexicon(path) is DEFAULT_LEXICON

    def test_bad_regex_falls_back(self, temp_dir):
        """An uncompilable transition pattern is ignored."""
        path = temp_dir / "regex.json"
        path.write_text(
            json.dumps({"transition_rules": [{"start": "(unclosed", "end": "x", "result": "x"}]}),
            encoding="utf-8",
        )
        assert load_lexicon(path) is DEFAULT_LEXICON

    def test_transition_override(self, temp_dir):
        """Transition patterns from a file are compiled case-insensitively."""
        path = temp_dir / "transitions.json"
        path.write_text(
            json.dumps({"transition_rules": [{"start": "bored", "end": "thrilled", "result": "boredom to thrill"}]}),
            encoding="utf-8",
        )
        lexicon = load_lexicon(path)
        assert lexicon.transition_rules[0].matches("BORED at first, then THRILLED")


class TestGetLexicon:
    """Tests for the cached lexicon accessor."""

    def test_default_without_path(self):
        """With no path and no configured file the built-in lexicon is used."""
        assert get_lexicon() is DEFAULT_LEXICON

    def test_cached_per_path(self, lexicon_file):
        """The same path returns the same instance until the cache is cleared."""
        first = get_lexicon(lexicon_file)
        assert get_lexicon(lexicon_file) is first
        clear_lexicon_cache()
        assert get_lexicon(lexicon_file) is not first

    @pytest.mark.parametrize("section", ["pose_rules", "character_rules"])
    def test_file_sections_applied(self, lexicon_file, section):
        """Overridden sections differ from the built-in ones."""
        lexicon = get_lexicon(lexicon_file)
        assert getattr(lexicon, section) != getattr(DEFAULT_LEXICON, section)


class TestRuleOrdering:
    """Tests for detecting rules hidden behind more general ones."""

    @pytest.mark.parametrize(
        "rules",
        [POSE_RULES, EMOTION_RULES, OBJECT_RULES, ACTION_RULES, MIDGROUND_RULES, BACKGROUND_RULES],
        ids=["pose", "emotion", "object", "action", "midground", "background"],
    )
    def test_builtin_tables_specific_first(self, rules):
        """No built-in rule is hidden by an earlier, more general rule."""
        assert shadowed_rules(rules) == []

    def test_builtin_character_rules(self):
        """Companion rules are specific-first within each group."""
        assert shadowed_rules(CHARACTER_RULES, grouped=True) == []

    def test_builtin_lexicon_has_no_problems(self):
        """The built-in lexicon passes the ordering check."""
        assert rule_order_problems(DEFAULT_LEXICON) == []

    def test_generic_first_is_shadowed(self):
        """A generic rule before a specific one hides it."""
        generic = rule("kneel", result="kneeling")
        specific = rule("kneel", "pebble", result="kneeling with a pebble")
        assert shadowed_rules([generic, specific]) == [(generic, specific)]
        assert shadowed_rules([specific, generic]) == []

    def test_substring_keywords_shadow(self):
        """A keyword inside a longer keyword counts as covered."""
        assert shadowed_rules([rule("kneel", result="a"), rule("kneeling", result="b")])

    def test_groups_compete_separately(self):
        """In grouped tables, rules for different companions never shadow each other."""
        rules = [rule("pip", result="a", group="pip"), rule("pip", "owl", result="b", group="owl")]
        assert shadowed_rules(rules, grouped=True) == []
        assert shadowed_rules(rules) != []

    def test_misordered_file_falls_back(self, temp_dir, caplog):
        """A file listing a generic rule before a specific one is rejected."""
        path = temp_dir / "misordered.json"
        path.write_text(
            json.dumps(
                {
                    "pose_rules": [
                        {"keywords": ["kneel"], "result": "kneeling"},
                        {"keywords": ["kneel", "pebble"], "result": "kneeling with a pebble"},
                    ]
                }
            ),
            encoding="utf-8",
        )
        with caplog.at_level(logging.ERROR):
            assert load_lexicon(path) is DEFAULT_LEXICON
        assert "pose_rules" in caplog.text


class TestTransitionRule:
    """Tests for two-part emotion transitions."""

    def test_order_matters(self):
        """The end pattern must come after the start pattern."""
        rule_ = transition(r"excit\w*", r"\bsurpris", "x")
        assert rule_.matches("Excited, then surprised.")
        assert not rule_.matches("Surprised, then excited.")

    def test_end_needs_word_boundary(self):
        """The end pattern's word boundary is checked against the full text."""
        rule_ = transition(r"\bsad", r"\bjoy", "x")
        assert not rule_.matches("sad killjoy")
        assert rule_.matches("sad, then joy")
