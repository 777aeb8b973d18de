"""Keyword lexicon and priority-ordered rule tables.

This module holds every piece of domain vocabulary the extractors use.  The
tables are plain, read-only data: nested conditionals keyed on substring
checks are replaced by explicit ordered lists of :class:`KeywordRule` records
that are evaluated top to bottom with short-circuit on the first full match.

Rule Semantics
--------------
A :class:`KeywordRule` fires when **all** of its keywords appear as
case-insensitive substrings of the text.  Rule lists are ordered most specific
first, so a four-keyword rule is always checked before any two-keyword rule
whose keywords it contains.  This ordering is the tie-break policy and is what
makes every extractor deterministic.

Category tables (``setting_keywords`` and friends) use the opposite test: a
category matches when **any** of its keywords is present.

Replacing the Vocabulary
------------------------
The built-in tables were tuned against sample stories featuring a child hero
and a squirrel companion called Pip.  The mechanism is fixed; the content is
not.  A JSON file can replace any subset of sections::

    {
        "pose_rules": [
            {"keywords": ["kneel", "shell"], "result": "kneeling to pick up a shell"},
            {"keywords": ["swim"], "result": "swimming with happy splashes"}
        ],
        "sudden_markers": ["suddenly", "all at once"]
    }

Sections missing from the file keep their built-in values.  Point
``STORYFRAME_LEXICON_FILE`` at the file, or call :func:`load_lexicon`.

Usage Example
-------------
    >>> from storyframe.core.lexicon import DEFAULT_LEXICON, first_match
    >>> first_match(DEFAULT_LEXICON.pose_rules, "She began to climb.", "standing")
    'climbing carefully with determined focus'
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType

from pydantic import BaseModel, Field, ValidationError

from storyframe.core.config import config
from storyframe.core.models import CameraLighting, ChapterTheme

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Rule records and evaluation helpers.
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class KeywordRule:
    """An all-keywords-must-match rule producing a fixed phrase.

    Attributes:
        keywords: Lowercase substrings that must all be present.
        result: Phrase returned when the rule fires.
        group: Optional subject label.  When several rules share a group,
            :func:`all_matches` lets only the first firing one through.
    """

    keywords: tuple[str, ...]
    result: str
    group: str | None = None

    def matches(self, text_lower: str) -> bool:
        return all(keyword in text_lower for keyword in self.keywords)


@dataclass(frozen=True)
class TransitionRule:
    """One emotion giving way to another later in the text.

    ``start`` is searched once; ``end`` is then searched from where the
    first ``start`` match finished.  The earliest start leaves the most text
    for ``end``, so one pass of each pattern decides the rule in linear time.
    """

    start: re.Pattern
    end: re.Pattern
    result: str

    def matches(self, text: str) -> bool:
        match = self.start.search(text)
        return match is not None and self.end.search(text, match.end()) is not None


@dataclass(frozen=True)
class EnvironmentFamily:
    """A family of scene nouns that share one background description.

    The family applies when the noun set contains at least one ``anchors``
    noun and, if ``qualifiers`` is non-empty, at least one qualifier too.
    ``relevant`` lists the nouns worth naming alongside the family label.
    """

    name: str
    label: str
    anchors: tuple[str, ...]
    relevant: tuple[str, ...]
    qualifiers: tuple[str, ...] = ()

    def applies_to(self, nouns: Iterable[str]) -> bool:
        noun_set = set(nouns)
        if not noun_set.intersection(self.anchors):
            return False
        return not self.qualifiers or bool(noun_set.intersection(self.qualifiers))


def rule(*keywords: str, result: str, group: str | None = None) -> KeywordRule:
    """Shorthand constructor used by the tables below."""
    return KeywordRule(tuple(k.lower() for k in keywords), result, group)


def transition(start: str, end: str, result: str) -> TransitionRule:
    return TransitionRule(re.compile(start, re.IGNORECASE), re.compile(end, re.IGNORECASE), result)


def first_match(rules: Iterable[KeywordRule], text: str, default: str) -> str:
    """Return the result of the first rule whose keywords are all present.

    Args:
        rules: Rules in priority order.
        text: Text to scan (case is ignored).
        default: Value returned when no rule fires.

    Returns:
        The winning rule's result, or *default*.
    """
    text_lower = text.lower()
    for keyword_rule in rules:
        if keyword_rule.matches(text_lower):
            return keyword_rule.result
    return default


def all_matches(rules: Iterable[KeywordRule], text: str, limit: int | None = None) -> list[str]:
    """Return up to *limit* results from firing rules, in list order.

    A rule is skipped when an earlier firing rule already claimed its group.
    """
    text_lower = text.lower()
    results: list[str] = []
    used_groups: set[str] = set()
    for keyword_rule in rules:
        if limit is not None and len(results) >= limit:
            break
        if keyword_rule.group and keyword_rule.group in used_groups:
            continue
        if keyword_rule.matches(text_lower):
            results.append(keyword_rule.result)
            if keyword_rule.group:
                used_groups.add(keyword_rule.group)
    return results


def _covers(general: KeywordRule, specific: KeywordRule) -> bool:
    """True when *specific* matching guarantees *general* matches too."""
    return all(any(g in s for s in specific.keywords) for g in general.keywords)


def shadowed_rules(
    rules: Sequence[KeywordRule], grouped: bool = False
) -> list[tuple[KeywordRule, KeywordRule]]:
    """Find rules that can never fire because an earlier rule always wins.

    A later rule is shadowed when every keyword of an earlier rule occurs
    inside one of its own keywords.  For ``grouped`` tables (evaluated with
    :func:`all_matches`) only rules sharing a group compete, so only those
    pairs are reported.

    Returns:
        ``(earlier, shadowed)`` pairs in table order; empty for a valid table.
    """
    pairs = []
    for index, later in enumerate(rules):
        for earlier in rules[:index]:
            if grouped and (earlier.group is None or earlier.group != later.group):
                continue
            if _covers(earlier, later):
                pairs.append((earlier, later))
                break
    return pairs


def contains_any(text_lower: str, keywords: Iterable[str]) -> bool:
    return any(keyword in text_lower for keyword in keywords)


def _freeze(table: Mapping[str, Iterable[str]]) -> Mapping[str, tuple[str, ...]]:
    return MappingProxyType({key: tuple(k.lower() for k in values) for key, values in table.items()})


# ---------------------------------------------------------------------------
# Chapter element categories (any keyword matches the category).
# Iteration order is the order labels appear in ChapterElements.
# ---------------------------------------------------------------------------

SETTING_KEYWORDS = _freeze(
    {
        "forest": ["forest", "woods", "trees", "woodland", "grove"],
        "castle": ["castle", "palace", "tower", "throne", "kingdom"],
        "ocean": ["ocean", "sea", "beach", "waves", "underwater"],
        "mountain": ["mountain", "cliff", "peak", "valley", "cave"],
        "garden": ["garden", "park", "meadow", "field", "flowers"],
        "city": ["city", "town", "street", "building", "market"],
        "sky": ["sky", "clouds", "flying", "air", "wind"],
        "space": ["space", "planet", "stars", "galaxy", "rocket"],
    }
)

OBJECT_KEYWORDS = _freeze(
    {
        "crystal": ["crystal", "gem", "stone", "jewel"],
        "book": ["book", "scroll", "map", "letter"],
        "sword": ["sword", "shield", "weapon", "armor"],
        "wand": ["wand", "staff", "magic stick", "rod"],
        "crown": ["crown", "tiara", "ring", "treasure"],
        "door": ["door", "gate", "portal", "entrance"],
        "bridge": ["bridge", "path", "road", "way"],
        "flower": ["flower", "rose", "petal", "bloom"],
    }
)

ACTION_KEYWORDS = _freeze(
    {
        "exploring": ["exploring", "searching", "looking", "discovering"],
        "flying": ["flying", "soaring", "floating", "gliding"],
        "running": ["running", "chasing", "racing", "rushing"],
        "climbing": ["climbing", "ascending", "scaling", "rising"],
        "swimming": ["swimming", "diving", "splashing", "floating"],
        "fighting": ["fighting", "battling", "defeating", "conquering"],
        "helping": ["helping", "saving", "rescuing", "protecting"],
    }
)

MOOD_KEYWORDS = _freeze(
    {
        "magical": ["magical", "enchanted", "mystical", "glowing", "sparkling"],
        "happy": ["happy", "joyful", "cheerful", "smiling", "laughing"],
        "exciting": ["exciting", "thrilling", "adventurous", "amazing"],
        "peaceful": ["peaceful", "calm", "serene", "quiet", "gentle"],
        "brave": ["brave", "courageous", "bold", "fearless", "heroic"],
        "mysterious": ["mysterious", "secret", "hidden", "unknown"],
    }
)


# ---------------------------------------------------------------------------
# Visual pose rules, most specific first.
# ---------------------------------------------------------------------------

DEFAULT_POSE = "standing with a warm, friendly expression"

POSE_RULES = (
    rule(
        "kneel",
        "holding",
        "pebble",
        "glowing",
        result="kneeling near the old oak tree, gently holding a glowing rainbow pebble in cupped hands",
    ),
    rule(
        "kneel",
        "stream",
        "water",
        "reach",
        result="kneeling at the edge of the sparkling stream, reaching one hand toward the water",
    ),
    rule(
        "reach",
        "touch",
        "flower",
        "glow",
        result="reaching out on tiptoe to gently touch a glowing flower",
    ),
    rule("holding", "hand", "pip", result="holding hands with Pip, walking side by side"),
    rule(
        "climb",
        "tree",
        "branch",
        result="climbing onto a low tree branch, one arm stretched upward",
    ),
    rule("run", "laugh", "meadow", result="running through the meadow with arms wide open, laughing"),
    rule("sit", "rock", "listen", result="sitting on a mossy rock, leaning forward to listen"),
    rule("step", "through", "portal", result="stepping bravely through a shimmering portal"),
    rule("open", "locket", result="opening a heart-shaped locket with both hands"),
    rule("hug", "friend", result="hugging a new friend tightly with both arms"),
    rule("wave", "goodbye", result="waving goodbye with one hand raised high"),
    rule("look", "up", "sky", result="looking up at the sky with wide, shining eyes"),
    rule("glowing", "pebble", result="holding a glowing pebble"),
    rule("kneel", result="kneeling down on the soft grass"),
    rule("climb", result="climbing carefully with determined focus"),
    rule("jump", result="jumping up with both arms raised in joy"),
    rule("danc", result="dancing and twirling happily"),
    rule("run", result="running forward with excited energy"),
    rule("sit", result="sitting cross-legged with hands resting in the lap"),
    rule("point", result="pointing ahead with an outstretched arm"),
    rule("holding", result="holding something precious close to the chest"),
    rule("walk", result="walking along the path with a cheerful stride"),
    rule("peek", result="peeking around a corner with playful curiosity"),
)


# ---------------------------------------------------------------------------
# Emotion tables: transitions, sudden-change markers, keyword groups.
# ---------------------------------------------------------------------------

DEFAULT_EMOTION = "wonder and excitement"
DEFAULT_SUDDEN_EMOTION = "surprise and wonder"

TRANSITION_RULES = (
    transition(r"excit\w*", r"\bsurpris", "excitement turning to surprise"),
    transition(r"\b(?:worr|nervous|scared|afraid)\w*", r"\b(?:relie|happ|smil)", "worry melting into relief"),
    transition(r"\bcurio\w*", r"\b(?:amaz|awe|wonder)", "curiosity blossoming into awe"),
    transition(r"\b(?:sad|lonely)\w*", r"\b(?:joy|happ|smil|laugh)", "sadness brightening into joy"),
    transition(r"\bdetermin\w*", r"\b(?:proud|triumph|success)", "determination turning to pride"),
)

SUDDEN_MARKERS = ("suddenly", "just then", "all of a sudden", "out of nowhere")

SUDDEN_EMOTIONS = ("delight", "joy", "curiosity", "awe", "fear", "excitement")

EMOTION_RULES = (
    rule("awe", "wonder", result="awe and wonder"),
    rule("excit", "joy", result="excitement and joy"),
    rule("brave", "determin", result="brave determination"),
    rule("gentle", "care", result="gentle care and kindness"),
    rule("curious", "excit", result="curious excitement"),
    rule("awe", result="quiet awe"),
    rule("curious", result="wide-eyed curiosity"),
    rule("joy", result="pure joy"),
    rule("happy", result="pure joy"),
    rule("laugh", result="joyful laughter"),
    rule("proud", result="beaming pride"),
    rule("peaceful", result="peaceful calm"),
    rule("calm", result="peaceful calm"),
    rule("brave", result="brave confidence"),
    rule("worried", result="gentle concern"),
    rule("sad", result="tender sadness"),
    rule("surprise", result="delighted surprise"),
    rule("smil", result="smiling warmly"),
)


# ---------------------------------------------------------------------------
# Scene context: companions (up to two clauses) and notable objects (one).
# ---------------------------------------------------------------------------

MAX_CHARACTER_CLAUSES = 2
MAX_OBJECT_CLAUSES = 1

CHARACTER_RULES = (
    rule("pip", "squirrel", result="Pip the little squirrel scampering close by", group="pip"),
    rule("pip", result="Pip the friendly companion staying close by", group="pip"),
    rule("owl", result="a wise old owl watching from a branch", group="owl"),
    rule("dragon", result="a friendly little dragon with shimmering scales", group="dragon"),
    rule("fairies", result="tiny glowing fairies fluttering in the air", group="fairy"),
    rule("fairy", result="a tiny glowing fairy fluttering in the air", group="fairy"),
    rule("rabbit", result="a family of fluffy rabbits hopping nearby", group="rabbit"),
    rule("giant", result="a gentle giant smiling kindly in the distance", group="giant"),
    rule("butterfl", result="colorful butterflies dancing in the air", group="butterfly"),
    rule("bird", result="small songbirds perched on nearby branches", group="bird"),
)

OBJECT_RULES = (
    rule("portal", "shimmer", result="a shimmering portal glowing in the background"),
    rule("door", "magic", result="a magical door standing slightly open"),
    rule("locket", "heart", result="a heart-shaped locket glowing softly"),
    rule("moonpetal", result="Moonpetal Flowers blooming with silvery light"),
    rule("giggle", "vine", result="shimmering Giggle-Vines wiggling nearby"),
    rule("crystal", result="floating crystals sparkling with inner light"),
    rule("treasure", result="a small treasure chest glinting in the light"),
    rule("map", result="an old treasure map unrolled nearby"),
)


# ---------------------------------------------------------------------------
# Scene nouns and environment families.
# ---------------------------------------------------------------------------

SCENE_VOCABULARY = _freeze(
    {
        "environment": [
            "forest",
            "woods",
            "clearing",
            "garden",
            "backyard",
            "meadow",
            "stream",
            "brook",
            "river",
            "pond",
            "lake",
            "waterfall",
            "ocean",
            "beach",
            "cave",
            "castle",
            "mountain",
            "village",
            "sky",
            "path",
            "bridge",
        ],
        "nature": [
            "oak",
            "tree",
            "flower",
            "moss",
            "grass",
            "leaves",
            "mushroom",
            "vine",
            "rainbow",
            "stars",
            "moon",
            "sunlight",
            "rock",
            "stone",
            "shell",
        ],
        "creature": [
            "squirrel",
            "owl",
            "rabbit",
            "dragon",
            "fairy",
            "butterfly",
            "bird",
            "fox",
            "deer",
            "frog",
            "fish",
        ],
        "object": [
            "pebble",
            "crystal",
            "door",
            "portal",
            "locket",
            "lantern",
            "map",
            "treasure",
            "book",
            "basket",
            "boat",
        ],
    }
)

DEFAULT_SCENE_DESCRIPTION = "a colorful magical storybook setting"

# Checked in this order; the first applicable family wins.
ENVIRONMENT_FAMILIES = (
    EnvironmentFamily(
        name="magical-forest",
        label="A glowing magical forest",
        anchors=("forest", "woods", "clearing"),
        qualifiers=("fairy", "crystal", "portal", "mushroom", "rainbow", "dragon", "lantern"),
        relevant=("oak", "tree", "mushroom", "moss", "crystal", "portal", "lantern", "rainbow"),
    ),
    EnvironmentFamily(
        name="stream",
        label="A sparkling stream winding through soft grass",
        anchors=("stream", "brook"),
        relevant=("pebble", "moss", "rock", "stone", "flower", "frog", "fish", "waterfall"),
    ),
    EnvironmentFamily(
        name="garden",
        label="A sunny garden full of color",
        anchors=("garden", "backyard"),
        relevant=("oak", "tree", "flower", "grass", "vine", "mushroom", "sunlight", "butterfly"),
    ),
    EnvironmentFamily(
        name="forest",
        label="An enchanted forest of tall trees",
        anchors=("forest", "woods", "clearing"),
        relevant=("oak", "moss", "leaves", "mushroom", "path", "sunlight", "flower"),
    ),
    EnvironmentFamily(
        name="water",
        label="A shimmering waterside scene",
        anchors=("river", "pond", "lake", "waterfall", "ocean", "beach"),
        relevant=("rock", "stone", "shell", "boat", "fish", "frog", "bridge"),
    ),
)


# ---------------------------------------------------------------------------
# Physical actions (single-verb rules).
# ---------------------------------------------------------------------------

DEFAULT_ACTION = "smiling warmly"

ACTION_RULES = (
    rule("climb", result="climbing"),
    rule("swim", result="swimming"),
    rule("fly", result="flying"),
    rule("jump", result="jumping"),
    rule("danc", result="dancing"),
    rule("run", result="running"),
    rule("kneel", result="kneeling"),
    rule("hug", result="hugging"),
    rule("wave", result="waving"),
    rule("reach", result="reaching out"),
    rule("point", result="pointing"),
    rule("sit", result="sitting"),
    rule("walk", result="walking"),
    rule("explor", result="exploring"),
)


# ---------------------------------------------------------------------------
# Chapter themes and camera/lighting presets.
# ---------------------------------------------------------------------------

THEME_KEYWORDS = (
    (ChapterTheme.DISCOVERY, ("discover", "found", "glowing", "mysterious")),
    (ChapterTheme.PROBLEM_SOLVING, ("problem", "blocked", "help", "fix", "solve")),
    (ChapterTheme.JOYFUL_ENDING, ("bloom", "success", "celebrate", "triumph", "victory", "saved")),
    (ChapterTheme.CONFLICT, ("worried", "danger", "challenge", "difficult")),
    (ChapterTheme.RESOLUTION, ("finally", "resolved", "peaceful", "return home")),
    (ChapterTheme.ADVENTURE, ("journey", "explore", "adventure", "followed")),
)

CAMERA_PRESETS = MappingProxyType(
    {
        ChapterTheme.DISCOVERY: CameraLighting(
            "front view, slightly low angle", "warm sunlight with magical glows"
        ),
        ChapterTheme.PROBLEM_SOLVING: CameraLighting(
            "mid-shot, eye level", "diffused light with dramatic shadows"
        ),
        ChapterTheme.CONFLICT: CameraLighting(
            "mid-shot, eye level", "diffused light with dramatic shadows"
        ),
        ChapterTheme.JOYFUL_ENDING: CameraLighting(
            "wide shot, slightly high angle", "bright light with sparkles and glow"
        ),
        ChapterTheme.RESOLUTION: CameraLighting(
            "wide shot, slightly high angle", "bright light with sparkles and glow"
        ),
        ChapterTheme.ADVENTURE: CameraLighting(
            "dynamic angle, slightly tilted", "vibrant light with strong highlights"
        ),
    }
)

DEFAULT_CAMERA = CameraLighting("front view, eye level", "soft daylight")


# ---------------------------------------------------------------------------
# Scene composition layers.
# ---------------------------------------------------------------------------

MIDGROUND_RULES = (
    rule("pebble", "rainbow", "glow", result="a glowing rainbow pebble held in both hands"),
    rule("giggle", "vines", result="shimmering Giggle-Vines wiggling nearby"),
    rule("moonpetal", "flower", result="Moonpetal Flowers blooming with silvery light"),
    rule("locket", "heart", result="a heart-shaped locket glowing softly"),
    rule("portal", "shimmer", result="a shimmering portal just behind"),
    rule("moss", "sparkle", result="moss and small flowers glowing faintly"),
    rule("crystal", result="floating crystals"),
    rule("star", result="glowing stars"),
)

BACKGROUND_RULES = (
    rule("magical", "forest", result="glowing magical forest"),
    rule("stream", "sparkl", result="sparkling stream with soft ripples"),
    rule("garden", "oak", result="garden with old oak tree and sunlight filtering through branches"),
    rule("garden", result="sunny garden with flowers"),
    rule("forest", result="enchanted forest with tall trees"),
    rule("ocean", result="ocean waves and blue sky"),
    rule("sea", result="ocean waves and blue sky"),
    rule("meadow", result="open meadow with wildflowers"),
    rule("castle", result="castle walls and towers"),
    rule("cave", result="cave with glowing crystals"),
    rule("sky", "cloud", result="clouds and sky"),
)

DEFAULT_BACKGROUND = "colorful storybook setting"
BACKGROUND_GLOW = "soft magical glow in the air"


# ---------------------------------------------------------------------------
# Story-level themes (occurrence counts decide the primary theme).
# ---------------------------------------------------------------------------

STORY_THEME_KEYWORDS = _freeze(
    {
        "magic": ["magic", "magical", "enchanted", "spell", "wizard", "fairy"],
        "adventure": ["adventure", "journey", "quest", "explore", "discover"],
        "friendship": ["friend", "friendship", "together", "help", "kind"],
        "nature": ["forest", "tree", "flower", "animal", "garden", "nature"],
        "ocean": ["ocean", "sea", "water", "fish", "mermaid", "wave"],
        "space": ["space", "star", "planet", "rocket", "galaxy", "cosmic"],
    }
)


# ---------------------------------------------------------------------------
# The lexicon bundle.
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Lexicon:
    """Immutable bundle of every table the extractors read.

    Instances are never mutated; :func:`load_lexicon` builds a new instance
    with :func:`dataclasses.replace`.
    """

    setting_keywords: Mapping[str, tuple[str, ...]] = field(default_factory=lambda: SETTING_KEYWORDS)
    object_keywords: Mapping[str, tuple[str, ...]] = field(default_factory=lambda: OBJECT_KEYWORDS)
    action_keywords: Mapping[str, tuple[str, ...]] = field(default_factory=lambda: ACTION_KEYWORDS)
    mood_keywords: Mapping[str, tuple[str, ...]] = field(default_factory=lambda: MOOD_KEYWORDS)
    pose_rules: tuple[KeywordRule, ...] = POSE_RULES
    transition_rules: tuple[TransitionRule, ...] = TRANSITION_RULES
    sudden_markers: tuple[str, ...] = SUDDEN_MARKERS
    sudden_emotions: tuple[str, ...] = SUDDEN_EMOTIONS
    emotion_rules: tuple[KeywordRule, ...] = EMOTION_RULES
    character_rules: tuple[KeywordRule, ...] = CHARACTER_RULES
    object_rules: tuple[KeywordRule, ...] = OBJECT_RULES
    scene_vocabulary: Mapping[str, tuple[str, ...]] = field(default_factory=lambda: SCENE_VOCABULARY)
    environment_families: tuple[EnvironmentFamily, ...] = ENVIRONMENT_FAMILIES
    action_rules: tuple[KeywordRule, ...] = ACTION_RULES
    theme_keywords: tuple[tuple[ChapterTheme, tuple[str, ...]], ...] = THEME_KEYWORDS
    camera_presets: Mapping[ChapterTheme, CameraLighting] = field(default_factory=lambda: CAMERA_PRESETS)
    midground_rules: tuple[KeywordRule, ...] = MIDGROUND_RULES
    background_rules: tuple[KeywordRule, ...] = BACKGROUND_RULES
    story_theme_keywords: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: STORY_THEME_KEYWORDS
    )

    @property
    def creature_nouns(self) -> tuple[str, ...]:
        return self.scene_vocabulary.get("creature", ())

    @property
    def all_scene_nouns(self) -> tuple[str, ...]:
        """Every vocabulary noun, sub-list by sub-list, without duplicates."""
        seen: dict[str, None] = {}
        for nouns in self.scene_vocabulary.values():
            for noun in nouns:
                seen.setdefault(noun, None)
        return tuple(seen)


DEFAULT_LEXICON = Lexicon()

# Section names a lexicon file may override.
OVERRIDABLE_SECTIONS = (
    "setting_keywords",
    "object_keywords",
    "action_keywords",
    "mood_keywords",
    "pose_rules",
    "transition_rules",
    "sudden_markers",
    "sudden_emotions",
    "emotion_rules",
    "character_rules",
    "object_rules",
    "scene_vocabulary",
    "action_rules",
    "story_theme_keywords",
)


# ---------------------------------------------------------------------------
# JSON lexicon files.
# ---------------------------------------------------------------------------


class RuleEntry(BaseModel):
    """One ``{"keywords": [...], "result": "..."}`` entry in a lexicon file."""

    keywords: list[str] = Field(..., min_length=1)
    result: str = Field(..., min_length=1)
    group: str | None = None

    def to_rule(self) -> KeywordRule:
        return rule(*self.keywords, result=self.result, group=self.group)


class TransitionEntry(BaseModel):
    """One ``{"start": "...", "end": "...", "result": "..."}`` transition entry.

    ``start`` and ``end`` are regexes; the rule fires when ``end`` matches
    somewhere after the first ``start`` match.
    """

    start: str = Field(..., min_length=1)
    end: str = Field(..., min_length=1)
    result: str = Field(..., min_length=1)


class LexiconFile(BaseModel):
    """Schema of a lexicon override file.  Every section is optional."""

    setting_keywords: dict[str, list[str]] | None = None
    object_keywords: dict[str, list[str]] | None = None
    action_keywords: dict[str, list[str]] | None = None
    mood_keywords: dict[str, list[str]] | None = None
    pose_rules: list[RuleEntry] | None = None
    transition_rules: list[TransitionEntry] | None = None
    sudden_markers: list[str] | None = None
    sudden_emotions: list[str] | None = None
    emotion_rules: list[RuleEntry] | None = None
    character_rules: list[RuleEntry] | None = None
    object_rules: list[RuleEntry] | None = None
    scene_vocabulary: dict[str, list[str]] | None = None
    action_rules: list[RuleEntry] | None = None
    story_theme_keywords: dict[str, list[str]] | None = None

    def apply_to(self, base: Lexicon) -> Lexicon:
        """Return a copy of *base* with every section present in this file replaced.

        Raises:
            re.error: If a transition pattern does not compile.
        """
        overrides: dict = {}
        for name in ("setting_keywords", "object_keywords", "action_keywords", "mood_keywords"):
            value = getattr(self, name)
            if value is not None:
                overrides[name] = _freeze(value)
        for name in ("scene_vocabulary", "story_theme_keywords"):
            value = getattr(self, name)
            if value is not None:
                overrides[name] = _freeze(value)
        for name in ("pose_rules", "emotion_rules", "character_rules", "object_rules", "action_rules"):
            value = getattr(self, name)
            if value is not None:
                overrides[name] = tuple(entry.to_rule() for entry in value)
        for name in ("sudden_markers", "sudden_emotions"):
            value = getattr(self, name)
            if value is not None:
                overrides[name] = tuple(item.lower() for item in value)
        if self.transition_rules is not None:
            overrides["transition_rules"] = tuple(
                transition(entry.start, entry.end, entry.result) for entry in self.transition_rules
            )
        return replace(base, **overrides)


# Rule sections evaluated first-match (or with a single slot); character rules
# only compete within their group.
_ORDERED_SECTIONS = ("pose_rules", "emotion_rules", "object_rules", "action_rules")
_GROUPED_SECTIONS = ("character_rules",)


def rule_order_problems(lexicon: Lexicon) -> list[str]:
    """Describe every rule in *lexicon* that an earlier, more general rule hides."""
    problems = []
    for name in _ORDERED_SECTIONS + _GROUPED_SECTIONS:
        rules = getattr(lexicon, name)
        for earlier, later in shadowed_rules(rules, grouped=name in _GROUPED_SECTIONS):
            problems.append(
                f"{name}: {list(later.keywords)} can never match after {list(earlier.keywords)}"
            )
    return problems


def load_lexicon(path: Path | str, base: Lexicon = DEFAULT_LEXICON) -> Lexicon:
    """Load a lexicon override file, falling back to *base* on any problem.

    The engine must always be able to produce a prompt, so a bad lexicon file
    is logged and ignored rather than raised.

    Args:
        path: JSON file with any subset of the overridable sections.
        base: Lexicon supplying the sections the file leaves out.

    Returns:
        The merged lexicon, or *base* if the file is missing or invalid.
    """
    path = Path(path)
    if not path.exists():
        logger.error(f"Lexicon file not found: {path}")
        return base

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        lexicon = LexiconFile.model_validate(data).apply_to(base)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Error reading lexicon file {path}: {e}")
        return base
    except ValidationError as e:
        logger.error(f"Invalid lexicon file {path}: {e}")
        return base
    except re.error as e:
        logger.error(f"Invalid transition pattern in {path}: {e}")
        return base

    shadowed = rule_order_problems(lexicon)
    if shadowed:
        for problem in shadowed:
            logger.error(f"Lexicon file {path}: {problem}")
        return base

    sections = sorted(k for k in data if k in OVERRIDABLE_SECTIONS)
    logger.info(f"Loaded lexicon overrides from {path}: {', '.join(sections) or 'none'}")
    return lexicon


@lru_cache(maxsize=8)
def _cached_lexicon(path: str) -> Lexicon:
    return load_lexicon(path)


def get_lexicon(path: Path | str | None = None) -> Lexicon:
    """Return the active lexicon.

    Uses *path* when given, otherwise ``config.lexicon_file``.  With neither
    set, the built-in :data:`DEFAULT_LEXICON` is returned.  Loaded files are
    cached per path; call :func:`clear_lexicon_cache` after editing one.
    """
    if path is None:
        path = config.lexicon_file
    if path is None:
        return DEFAULT_LEXICON
    return _cached_lexicon(str(path))


def clear_lexicon_cache() -> None:
    """Forget every lexicon file loaded by :func:`get_lexicon`."""
    _cached_lexicon.cache_clear()
