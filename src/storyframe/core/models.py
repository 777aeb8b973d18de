"""Data models for the chapter visual-prompt engine.

Every record here is created fresh per (chapter, character) pair and discarded
once the prompt string has been produced.  Only :class:`CharacterIdentity` is
shared across the chapters of one story, and it is immutable.
"""

from dataclasses import dataclass, field
from enum import Enum

MIN_AGE = 2
MAX_AGE = 12
GENDERS = ("boy", "girl")


class ChapterTheme(str, Enum):
    """Narrative-beat classification used to pick camera/lighting presets."""

    DISCOVERY = "discovery"
    PROBLEM_SOLVING = "problem-solving"
    JOYFUL_ENDING = "joyful-ending"
    CONFLICT = "conflict"
    RESOLUTION = "resolution"
    ADVENTURE = "adventure"


@dataclass(frozen=True)
class CharacterIdentity:
    """The child hero whose likeness must stay consistent across chapters.

    Attributes
    ----------
    name : str
        Child's name as it appears in the story.
    age : int
        Age in years (2-12 is the supported range).
    gender : str
        ``"boy"`` or ``"girl"``.
    """

    name: str
    age: int
    gender: str


@dataclass(frozen=True)
class Chapter:
    """One narrative segment as returned by the story-generation step."""

    chapter_number: int
    chapter_text: str
    full_chapter_text: str = ""

    @property
    def best_text(self) -> str:
        """The richest available text (full text includes the heading)."""
        return self.full_chapter_text or self.chapter_text


@dataclass(frozen=True)
class ChapterElements:
    """Category tags detected in one chapter.

    Each field holds the matched group labels in lexicon order.  Tuples keep
    the record immutable and the ordering deterministic.
    """

    settings: tuple[str, ...] = ()
    objects: tuple[str, ...] = ()
    actions: tuple[str, ...] = ()
    moods: tuple[str, ...] = ()
    chapter_text: str = ""

    def is_empty(self) -> bool:
        return not (self.settings or self.objects or self.actions or self.moods)


@dataclass(frozen=True)
class CameraLighting:
    """Camera framing and lighting preset for one chapter."""

    camera_angle: str
    lighting: str


@dataclass(frozen=True)
class ExtractedFeatures:
    """All features extracted from one chapter's text.

    Every string field is guaranteed non-empty except ``scene_context``,
    which is empty when no companion or notable object is mentioned.
    """

    visual_pose: str
    emotion: str
    scene_context: str
    scene_nouns: tuple[str, ...]
    environment: str
    physical_action: str
    chapter_theme: ChapterTheme
    camera_angle: str
    lighting: str
    pose_is_default: bool = False

    def as_dict(self) -> dict:
        return {
            "visual_pose": self.visual_pose,
            "emotion": self.emotion,
            "scene_context": self.scene_context,
            "scene_nouns": list(self.scene_nouns),
            "environment": self.environment,
            "physical_action": self.physical_action,
            "chapter_theme": self.chapter_theme.value,
            "camera_angle": self.camera_angle,
            "lighting": self.lighting,
        }


@dataclass
class PromptParams:
    """Input to the storybook prompt template builder.

    This mirrors the parameters the image-generation step needs for one
    chapter.  :func:`~storyframe.core.prompt_builder.validate_prompt_params`
    reports invalid values without blocking the build.
    """

    child_name: str
    age: int
    gender: str
    visual_pose: str
    emotion: str
    scene_context: str = ""
    environment: str = ""
    chapter_number: int = 1
    chapter_text: str = ""
    use_scene_composition: bool = True

    @property
    def possessive(self) -> str:
        """Possessive pronoun for the legacy scene sentence."""
        return "his" if self.gender == "boy" else "her"

    @classmethod
    def from_identity(cls, identity: CharacterIdentity, **kwargs) -> "PromptParams":
        """Build params for *identity*, passing chapter features as keywords."""
        return cls(
            child_name=identity.name,
            age=identity.age,
            gender=identity.gender,
            **kwargs,
        )


@dataclass(frozen=True)
class StoryAnalysis:
    """Story-level classification used for the reference-character prompt."""

    primary_theme: str
    age_category: str
    theme_counts: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class ChapterPrompt:
    """Everything compiled for one chapter: the prompt and what it was built from."""

    chapter_number: int
    prompt: str
    features: ExtractedFeatures
    composition: str
    warnings: tuple[str, ...] = ()
    character_prompt: str = ""
