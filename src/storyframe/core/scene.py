"""Scene description, chapter theme and scene composition builders.

These functions turn extracted features into the background sentence, the
camera/lighting preset and the layered composition block the image model
reads.  All of them are pure lookups or fixed-order text assembly.

Scene Composition Block
-----------------------
The composition block always has the same line order::

    Scene Composition:
    Foreground: <pose>, <emotion>.
    Midground: <objects>.          (only when there are objects)
    Background: <settings>.        (only when there are settings)
    Camera angle: <camera>.
    Lighting: <lighting>.

A layer with nothing to show is dropped as a whole line; it never produces a
half-filled line.
"""

import logging
import re
from collections.abc import Sequence

from storyframe.core.lexicon import (
    BACKGROUND_GLOW,
    DEFAULT_BACKGROUND,
    DEFAULT_CAMERA,
    DEFAULT_LEXICON,
    DEFAULT_SCENE_DESCRIPTION,
    Lexicon,
    all_matches,
    contains_any,
    first_match,
)
from storyframe.core.models import CameraLighting, ChapterTheme, ExtractedFeatures

logger = logging.getLogger(__name__)

DEFAULT_COMPOSITION_CAMERA = "front view"
DEFAULT_COMPOSITION_LIGHTING = "soft daylight"
NO_FAMILY_LABEL = "A storybook scene"

# Splits a scene-context clause into object phrases.
_PHRASE_SPLIT = re.compile(r",|\band\b")


def _join_nouns(nouns: Sequence[str]) -> str:
    if len(nouns) == 1:
        return nouns[0]
    return f"{', '.join(nouns[:-1])} and {nouns[-1]}"


def build_scene_description(nouns: Sequence[str], lexicon: Lexicon = DEFAULT_LEXICON) -> str:
    """Compose a background description from a set of scene nouns.

    The first environment family (in lexicon order) that applies to the noun
    set supplies the label, followed by up to three nouns relevant to that
    family.  Without an applicable family, or when none of the nouns is
    relevant to it, the first three raw nouns are used.  One creature noun not already named is appended at the end.

    Args:
        nouns: Scene nouns, typically from
            :func:`~storyframe.core.features.extract_scene_nouns`.
        lexicon: Tables providing the families and creature list.

    Returns:
        The description, or ``"a colorful magical storybook setting"`` when
        *nouns* is empty.
    """
    nouns = list(nouns)
    if not nouns:
        return DEFAULT_SCENE_DESCRIPTION

    family = next((f for f in lexicon.environment_families if f.applies_to(nouns)), None)
    if family is not None:
        label = family.label
        picked = [noun for noun in nouns if noun in family.relevant][:3] or nouns[:3]
    else:
        label = NO_FAMILY_LABEL
        picked = nouns[:3]

    description = f"{label} with {_join_nouns(picked)}"

    creature = next(
        (noun for noun in nouns if noun in lexicon.creature_nouns and noun not in picked),
        None,
    )
    if creature:
        description += f", and a friendly {creature} nearby"

    logger.debug(f"Scene description ({family.name if family else 'none'}): {description}")
    return description


def detect_chapter_theme(
    chapter_text: str, chapter_number: int, lexicon: Lexicon = DEFAULT_LEXICON
) -> ChapterTheme:
    """Classify a chapter into a narrative-beat theme.

    Rules are checked in order: discovery, problem-solving, joyful-ending,
    conflict, resolution, adventure.  Chapter 1 is always discovery, whatever
    its text says.  Adventure is the catch-all.
    """
    if chapter_number == 1:
        return ChapterTheme.DISCOVERY

    text_lower = (chapter_text or "").lower()
    for theme, keywords in lexicon.theme_keywords:
        if contains_any(text_lower, keywords):
            return theme
    return ChapterTheme.ADVENTURE


def get_camera_and_lighting(
    theme: ChapterTheme | str,
    chapter_number: int | None = None,
    lexicon: Lexicon = DEFAULT_LEXICON,
) -> CameraLighting:
    """Look up the camera angle and lighting for a chapter.

    Args:
        theme: Chapter theme (enum or its string value).
        chapter_number: The first chapter always gets the discovery preset.
        lexicon: Tables providing the presets.

    Returns:
        The preset for *theme*, or the neutral default for an unknown theme.
    """
    if chapter_number == 1:
        theme = ChapterTheme.DISCOVERY
    try:
        theme = ChapterTheme(theme)
    except ValueError:
        logger.warning(f"Unknown chapter theme {theme!r}, using default camera preset")
        return DEFAULT_CAMERA
    return lexicon.camera_presets.get(theme, DEFAULT_CAMERA)


def build_scene_composition(
    character_pose: str,
    emotion: str,
    objects: Sequence[str] = (),
    settings: Sequence[str] = (),
    camera_angle: str = DEFAULT_COMPOSITION_CAMERA,
    lighting: str = DEFAULT_COMPOSITION_LIGHTING,
) -> str:
    """Build the layered foreground/midground/background composition block.

    Args:
        character_pose: What the character is doing (foreground).
        emotion: The character's expression (foreground).
        objects: Key objects for the midground; omitted when empty.
        settings: Setting phrases for the background; omitted when empty.
        camera_angle: Camera framing line.
        lighting: Lighting line.

    Returns:
        Newline-joined block in fixed line order.
    """
    lines = ["Scene Composition:"]
    lines.append(f"Foreground: {character_pose}, {emotion}.")
    if objects:
        lines.append(f"Midground: {', '.join(objects)}.")
    if settings:
        lines.append(f"Background: {', '.join(settings)}.")
    lines.append(f"Camera angle: {camera_angle}.")
    lines.append(f"Lighting: {lighting}.")
    return "\n".join(lines)


def extract_midground_objects(scene_context: str, lexicon: Lexicon = DEFAULT_LEXICON) -> list[str]:
    """Pick midground objects out of a scene-context clause.

    Every matching object pattern contributes one phrase.  With no pattern
    match the first two comma- or "and"-separated phrases of the context are
    used as-is.
    """
    if not scene_context or not scene_context.strip():
        return []

    objects = all_matches(lexicon.midground_rules, scene_context)
    if not objects:
        phrases = [p.strip() for p in _PHRASE_SPLIT.split(scene_context) if p.strip()]
        objects = phrases[:2]
    return objects


def extract_background_settings(environment: str, lexicon: Lexicon = DEFAULT_LEXICON) -> list[str]:
    """Derive background setting phrases from an environment description.

    Only the first matching environment pattern is used; without a match the
    environment text itself becomes the setting.  A glow hint is appended
    when the environment mentions glow or magic.
    """
    if not environment or not environment.strip():
        return [DEFAULT_BACKGROUND]

    primary = first_match(lexicon.background_rules, environment, "")
    settings = [primary or environment.strip()]
    if contains_any(environment.lower(), ("glow", "magical")):
        settings.append(BACKGROUND_GLOW)
    return settings


def build_chapter_composition(features: ExtractedFeatures, lexicon: Lexicon = DEFAULT_LEXICON) -> str:
    """Build the composition block for one chapter's extracted features.

    The physical action stands in for the pose when the pose extractor fell
    back to its default.
    """
    pose = features.physical_action if features.pose_is_default else features.visual_pose
    return build_scene_composition(
        character_pose=pose,
        emotion=features.emotion,
        objects=extract_midground_objects(features.scene_context, lexicon),
        settings=extract_background_settings(features.environment, lexicon),
        camera_angle=features.camera_angle,
        lighting=features.lighting,
    )
