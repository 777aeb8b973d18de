"""Feature extractors for chapter text.

Each extractor scans the raw chapter text on its own, with its own
priority-ordered table from :mod:`storyframe.core.lexicon`, and returns a
single best match or a fixed default.  None of them can fail: empty or
unrecognisable text always produces the default.

Extractors
----------
extract_visual_pose
    Character stance/action phrase.  Most specific rule wins.
extract_emotional_transition
    Emotion phrase, checked in three tiers: regex transitions, then
    sudden-change markers, then single/compound emotion keywords.
extract_scene_context
    Companion and notable-object clauses (may be empty).
extract_scene_nouns
    Every vocabulary noun present, in vocabulary order.
extract_physical_action
    Short action verb phrase.

:func:`extract_features` runs all of them once and resolves the chapter
theme and camera/lighting preset.

Usage Example
-------------
    >>> from storyframe.core.features import extract_visual_pose
    >>> extract_visual_pose("Anya kneels by the oak, holding a glowing pebble.")
    'kneeling near the old oak tree, gently holding a glowing rainbow pebble in cupped hands'
"""

import logging

from storyframe.core.lexicon import (
    DEFAULT_ACTION,
    DEFAULT_EMOTION,
    DEFAULT_LEXICON,
    DEFAULT_POSE,
    DEFAULT_SUDDEN_EMOTION,
    MAX_CHARACTER_CLAUSES,
    MAX_OBJECT_CLAUSES,
    Lexicon,
    all_matches,
    contains_any,
    first_match,
    get_lexicon,
)
from storyframe.core.models import ExtractedFeatures
from storyframe.core.scene import build_scene_description, detect_chapter_theme, get_camera_and_lighting

logger = logging.getLogger(__name__)

CONTEXT_JOINER = ", and "


def extract_visual_pose(text: str, lexicon: Lexicon = DEFAULT_LEXICON) -> str:
    """Return the pose phrase of the first rule whose keywords are all present.

    Rules are ordered most specific first, so a chapter mentioning kneeling,
    holding, a pebble and a glow gets the full kneeling pose rather than the
    generic "holding a glowing pebble".

    Returns:
        The pose phrase, or ``"standing with a warm, friendly expression"``.
    """
    return first_match(lexicon.pose_rules, text or "", DEFAULT_POSE)


def extract_emotional_transition(text: str, lexicon: Lexicon = DEFAULT_LEXICON) -> str:
    """Return the emotion phrase for a chapter.

    1. The first regex transition that matches (e.g. excitement followed by
       surprise) returns its composite phrase.
    2. Otherwise, a sudden-change marker ("suddenly", "just then", ...)
       returns ``"surprise and <emotion>"`` for the first listed emotion word
       present, or ``"surprise and wonder"``.
    3. Otherwise, the first matching emotion keyword group wins.

    Returns:
        The emotion phrase, or ``"wonder and excitement"``.
    """
    text = text or ""
    for transition_rule in lexicon.transition_rules:
        if transition_rule.matches(text):
            return transition_rule.result

    text_lower = text.lower()
    if contains_any(text_lower, lexicon.sudden_markers):
        for emotion in lexicon.sudden_emotions:
            if emotion in text_lower:
                return f"surprise and {emotion}"
        return DEFAULT_SUDDEN_EMOTION

    return first_match(lexicon.emotion_rules, text, DEFAULT_EMOTION)


def extract_scene_context(text: str, lexicon: Lexicon = DEFAULT_LEXICON) -> str:
    """Describe companions and notable objects mentioned in the chapter.

    Up to two companion clauses and one object clause, joined with
    ``", and "``.  An empty string means there is nothing to add and the
    caller should leave the context out.
    """
    text = text or ""
    clauses = all_matches(lexicon.character_rules, text, MAX_CHARACTER_CLAUSES)
    clauses += all_matches(lexicon.object_rules, text, MAX_OBJECT_CLAUSES)
    return CONTEXT_JOINER.join(clauses)


def extract_scene_nouns(text: str, lexicon: Lexicon = DEFAULT_LEXICON) -> tuple[str, ...]:
    """Return every vocabulary noun that appears in the text.

    Membership is all that matters here, so there is no priority; nouns come
    back in vocabulary order (environment, nature, creature, object) so the
    result is deterministic.
    """
    text_lower = (text or "").lower()
    return tuple(noun for noun in lexicon.all_scene_nouns if noun in text_lower)


def extract_physical_action(text: str, lexicon: Lexicon = DEFAULT_LEXICON) -> str:
    """Return a short action phrase, or ``"smiling warmly"``."""
    return first_match(lexicon.action_rules, text or "", DEFAULT_ACTION)


def extract_features(
    text: str, chapter_number: int = 1, lexicon: Lexicon | None = None
) -> ExtractedFeatures:
    """Run every extractor over one chapter.

    Args:
        text: Chapter text (``full_chapter_text`` when available).
        chapter_number: 1-based chapter position, used for theme detection.
        lexicon: Tables to use; defaults to :func:`get_lexicon`.

    Returns:
        ExtractedFeatures with every field filled.
    """
    lexicon = lexicon or get_lexicon()
    text = text or ""

    visual_pose = extract_visual_pose(text, lexicon)
    nouns = extract_scene_nouns(text, lexicon)
    theme = detect_chapter_theme(text, chapter_number, lexicon)
    preset = get_camera_and_lighting(theme, chapter_number, lexicon)

    features = ExtractedFeatures(
        visual_pose=visual_pose,
        emotion=extract_emotional_transition(text, lexicon),
        scene_context=extract_scene_context(text, lexicon),
        scene_nouns=nouns,
        environment=build_scene_description(nouns, lexicon),
        physical_action=extract_physical_action(text, lexicon),
        chapter_theme=theme,
        camera_angle=preset.camera_angle,
        lighting=preset.lighting,
        pose_is_default=visual_pose == DEFAULT_POSE,
    )
    logger.debug(f"Chapter {chapter_number} features: {features.as_dict()}")
    return features
