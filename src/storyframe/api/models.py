"""Pydantic request and response models for the Storyframe API.

These models define the JSON schema for every API endpoint.  FastAPI uses
them for automatic request validation, serialisation, and OpenAPI
documentation generation.

Models
------
IdentityModel
    The child hero: name, age and gender.
ChapterPromptRequest
    Payload for ``POST /api/prompt/chapter`` — one chapter of text.
StoryPromptRequest
    Payload for ``POST /api/prompt/story`` — a whole story or a chapter list.
PromptParamsRequest
    Payload for ``POST /api/prompt/validate`` — raw template parameters.
SplitRequest
    Payload for ``POST /api/chapters/split``.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from storyframe.core.models import Chapter, CharacterIdentity, ChapterPrompt, PromptParams


class IdentityModel(BaseModel):
    """The child whose likeness is drawn in every chapter.

    Age and gender are deliberately not range-checked here: out-of-range
    values are reported as validator warnings instead of rejecting the
    request (unless the request is ``strict``).

    Attributes:
        name: Child's name as it appears in the story.
        age: Age in years (2–12 supported).
        gender: ``"boy"`` or ``"girl"``.
    """

    name: str = Field(
        ...,
        description="Child's name as it appears in the story.",
    )
    age: int = Field(
        ...,
        description="Age in years (2–12 supported).",
    )
    gender: str = Field(
        ...,
        description="'boy' or 'girl'.",
    )

    def to_identity(self) -> CharacterIdentity:
        return CharacterIdentity(name=self.name, age=self.age, gender=self.gender)


class ChapterModel(BaseModel):
    """One chapter as produced by the story generator."""

    chapter_number: int = Field(
        ...,
        ge=1,
        description="1-based chapter position.",
    )
    chapter_text: str = Field(
        default="",
        description="Chapter title and body.",
    )
    full_chapter_text: str = Field(
        default="",
        description="Chapter text including the 'Chapter N:' heading (preferred when present).",
    )

    def to_chapter(self) -> Chapter:
        return Chapter(
            chapter_number=self.chapter_number,
            chapter_text=self.chapter_text,
            full_chapter_text=self.full_chapter_text,
        )

    @classmethod
    def from_chapter(cls, chapter: Chapter) -> ChapterModel:
        return cls(
            chapter_number=chapter.chapter_number,
            chapter_text=chapter.chapter_text,
            full_chapter_text=chapter.full_chapter_text,
        )


class ChapterPromptRequest(BaseModel):
    """Request body for the ``POST /api/prompt/chapter`` endpoint.

    Attributes:
        identity: The child hero.
        chapter_text: Raw chapter prose (may be empty).
        chapter_number: 1-based chapter position.  Chapter 1 is always a
            discovery scene.
        use_scene_composition: Template mode.  ``None`` uses the server
            default.
        strict: Reject the request with 400 when the validator reports
            warnings.
    """

    identity: IdentityModel
    chapter_text: str = Field(
        default="",
        description="Raw chapter prose.",
    )
    chapter_number: int = Field(
        default=1,
        ge=1,
        description="1-based chapter position.",
    )
    use_scene_composition: bool | None = Field(
        default=None,
        description="Template mode; None uses the server default.",
    )
    strict: bool = Field(
        default=False,
        description="Return 400 instead of a prompt when validation warnings occur.",
    )


class StoryPromptRequest(BaseModel):
    """Request body for the ``POST /api/prompt/story`` endpoint.

    Either ``story_text`` or ``chapters`` is used.  When ``chapters`` is
    given it wins; otherwise the story text is split (falling back to the
    built-in chapters when it has no headings).
    """

    identity: IdentityModel
    story_text: str = Field(
        default="",
        description="Whole story with 'Chapter N: Title' headings.",
    )
    chapters: list[ChapterModel] | None = Field(
        default=None,
        description="Pre-split chapters; overrides story_text.",
    )
    use_scene_composition: bool | None = Field(
        default=None,
        description="Template mode; None uses the server default.",
    )
    strict: bool = Field(
        default=False,
        description="Return 400 instead of prompts when validation warnings occur.",
    )


class PromptParamsRequest(BaseModel):
    """Request body for the ``POST /api/prompt/validate`` endpoint.

    Mirrors :class:`~storyframe.core.models.PromptParams`.  Every field is
    optional so the validator, not pydantic, reports what is missing.
    """

    child_name: str = ""
    age: int | None = None
    gender: str = ""
    visual_pose: str = ""
    emotion: str = ""
    scene_context: str = ""
    environment: str = ""
    chapter_number: int = 1
    chapter_text: str = ""
    use_scene_composition: bool = True

    def to_params(self) -> PromptParams:
        return PromptParams(**self.model_dump())


class SplitRequest(BaseModel):
    """Request body for the ``POST /api/chapters/split`` endpoint."""

    story_text: str = Field(
        ...,
        description="Story text with 'Chapter N: Title' headings.",
    )


class ChapterPromptResponse(BaseModel):
    """One compiled chapter prompt and the features it was built from."""

    chapter_number: int
    prompt: str
    preview: str
    features: dict
    composition: str
    warnings: list[str]
    character_prompt: str = ""

    @classmethod
    def from_compiled(cls, compiled: ChapterPrompt, preview: str) -> ChapterPromptResponse:
        return cls(
            chapter_number=compiled.chapter_number,
            prompt=compiled.prompt,
            preview=preview,
            features=compiled.features.as_dict(),
            composition=compiled.composition,
            warnings=list(compiled.warnings),
            character_prompt=compiled.character_prompt,
        )
