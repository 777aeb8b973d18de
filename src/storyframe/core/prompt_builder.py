"""Storybook prompt template compilation.

The prompt handed to the image model is a fixed sequence of single-purpose
lines.  Two templates are available and share every line except the scene
block.

Scene-Composition Template (default)::

    Create a 3D plus digital sketch illustration type of character named <name>, ...
    Scene: <name> <pose>, <context>. <Environment>. <camera>, <lighting>.
    Style: bold outlines (3–5 px), solid colors, clean shapes.
    Preserve facial likeness, hairstyle, proportions, and clothing.
    Keywords: storybook illustration, vibrant colors, expressive, magical forest, <emotion>.

Legacy Template::

    Create a 3D plus digital sketch illustration type of character named <name>, ...
    Scene: <name> is <pose>, <his/her> face showing <emotion>.
    <Context>.                       (only when there is a context)
    <Environment>.                   (or a fixed forest-clearing sentence)
    Style: ...
    Preserve ...
    Keywords: ...

Lines are joined with single newlines.  An empty feature drops its line (or
its clause in the scene line) entirely, so the output never contains a
half-filled line.

Usage
-----
::

    params = PromptParams(
        child_name="Anya",
        age=6,
        gender="girl",
        visual_pose="kneeling by the stream",
        emotion="quiet awe",
    )
    prompt = build_storybook_prompt(params)
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum

from storyframe.core.lexicon import DEFAULT_EMOTION, DEFAULT_POSE
from storyframe.core.models import GENDERS, MAX_AGE, MIN_AGE, PromptParams
from storyframe.core.scene import detect_chapter_theme, get_camera_and_lighting

# ---------------------------------------------------------------------------
# Fixed template lines.
# The image model has been tuned against exactly this wording, so these are
# constants rather than configuration.
# ---------------------------------------------------------------------------

_STYLE_LINE = "Style: bold outlines (3–5 px), solid colors, clean shapes."

_LIKENESS_LINE = "Preserve facial likeness, hairstyle, proportions, and clothing."

_KEYWORDS_TEMPLATE = "Keywords: storybook illustration, vibrant colors, expressive, magical forest, {emotion}."

_INTRO_TEMPLATE = (
    "Create a 3D plus digital sketch illustration type of character named {name}, "
    "a {age}-year-old {gender} in a magical forest."
)

_LEGACY_DEFAULT_BACKGROUND = "A bright forest clearing glows with warm sunlight."


class TemplateMode(str, Enum):
    """Which prompt template to compile."""

    SCENE_COMPOSITION = "scene-composition"
    LEGACY = "legacy"


def _pose(params: PromptParams) -> str:
    return params.visual_pose.strip() or DEFAULT_POSE


def _emotion(params: PromptParams) -> str:
    return params.emotion.strip() or DEFAULT_EMOTION


def _intro_line(params: PromptParams) -> str:
    gender = "boy" if params.gender == "boy" else "girl"
    return _INTRO_TEMPLATE.format(name=params.child_name, age=params.age, gender=gender)


def _closing_lines(params: PromptParams) -> list[str]:
    """Style, likeness and keyword lines shared by both templates."""
    return [
        _STYLE_LINE,
        _LIKENESS_LINE,
        _KEYWORDS_TEMPLATE.format(emotion=_emotion(params)),
    ]


def build_scene_composition_prompt(params: PromptParams) -> str:
    """Compile the scene-composition template.

    The camera and lighting come from the chapter theme detected in
    ``params.chapter_text`` (chapter 1 is always a discovery scene).
    """
    theme = detect_chapter_theme(params.chapter_text, params.chapter_number)
    preset = get_camera_and_lighting(theme, params.chapter_number)

    # --- Narrative scene line ------------------------------------------------
    scene = f"Scene: {params.child_name} {_pose(params)}"
    if params.scene_context.strip():
        scene += f", {params.scene_context}"
    if params.environment.strip():
        scene += f". {params.environment}"
    scene += f". {preset.camera_angle}, {preset.lighting}."

    return "\n".join([_intro_line(params), scene, *_closing_lines(params)])


def build_legacy_prompt(params: PromptParams) -> str:
    """Compile the legacy flat template."""
    lines = [
        _intro_line(params),
        f"Scene: {params.child_name} is {_pose(params)}, {params.possessive} face showing {_emotion(params)}.",
    ]

    if params.scene_context.strip():
        lines.append(f"{params.scene_context}.")

    if params.environment.strip():
        lines.append(f"{params.environment}.")
    else:
        lines.append(_LEGACY_DEFAULT_BACKGROUND)

    lines.extend(_closing_lines(params))
    return "\n".join(lines)


_BUILDERS: dict[TemplateMode, Callable[[PromptParams], str]] = {
    TemplateMode.SCENE_COMPOSITION: build_scene_composition_prompt,
    TemplateMode.LEGACY: build_legacy_prompt,
}


def build_storybook_prompt(params: PromptParams) -> str:
    """Compile the image prompt for one chapter.

    Dispatches on ``params.use_scene_composition`` to one of the two
    template builders.  An empty pose or emotion is replaced by its default
    so the output is always well-formed; use :func:`validate_prompt_params`
    to find out about such problems.

    Args:
        params: Character identity plus extracted chapter features.

    Returns:
        The newline-joined prompt.
    """
    mode = TemplateMode.SCENE_COMPOSITION if params.use_scene_composition else TemplateMode.LEGACY
    return _BUILDERS[mode](params)


def validate_prompt_params(params: PromptParams) -> list[str]:
    """Check prompt parameters and describe every problem found.

    This never raises.  An empty list means the parameters are valid; the
    caller decides what to do with warnings (the pipeline logs them and
    builds the prompt anyway).

    Args:
        params: Parameters to check.

    Returns:
        Human-readable warnings, possibly empty.
    """
    warnings: list[str] = []

    if not params.child_name or not params.child_name.strip():
        warnings.append("childName is required")

    if not isinstance(params.age, int) or not MIN_AGE <= params.age <= MAX_AGE:
        warnings.append(f"age must be between {MIN_AGE} and {MAX_AGE}")

    if params.gender not in GENDERS:
        warnings.append('gender must be "boy" or "girl"')

    if not params.visual_pose or not params.visual_pose.strip():
        warnings.append("visualPose is required")

    if not params.emotion or not params.emotion.strip():
        warnings.append("emotion is required")

    return warnings
