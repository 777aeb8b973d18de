"""Storyframe — FastAPI Application.

This module is the single entry point for the web service.  It defines the
FastAPI ``app`` instance, all REST API routes, and the ``main()`` CLI
function that launches the uvicorn server.

Architecture
------------
The service is stateless: every request is a pure text transformation.

- **Configuration** comes from :data:`~storyframe.core.config.config`
  (``STORYFRAME_*`` environment variables).
- **The lexicon** is resolved once at startup and stored on ``app.state``;
  a broken lexicon file is logged and the built-in tables are used.
- **Validation warnings** never block a prompt unless the request sets
  ``strict``, in which case they become a 400 response.

Endpoints
---------
========  ============================  ====================================
Method    Path                          Purpose
========  ============================  ====================================
GET       ``/api/config``               Version, themes, defaults, lexicon
POST      ``/api/prompt/chapter``       Compile one chapter prompt
POST      ``/api/prompt/story``         Compile prompts for a whole story
POST      ``/api/prompt/validate``      Validate prompt parameters
POST      ``/api/chapters/split``       Split story text into chapters
========  ============================  ====================================

Usage
-----
CLI (installed entry point)::

    storyframe

Direct invocation::

    python -m storyframe.api.main
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from storyframe import __version__
from storyframe.api.models import (
    ChapterModel,
    ChapterPromptRequest,
    ChapterPromptResponse,
    PromptParamsRequest,
    SplitRequest,
    StoryPromptRequest,
)
from storyframe.core.config import config
from storyframe.core.lexicon import OVERRIDABLE_SECTIONS, Lexicon, get_lexicon
from storyframe.core.models import ChapterPrompt, ChapterTheme
from storyframe.core.prompt_builder import validate_prompt_params
from storyframe.core.story import (
    analyze_story,
    build_character_prompt,
    compile_chapter,
    compile_chapters,
    get_prompt_preview,
    split_chapters,
    story_chapters,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Application lifecycle: lexicon resolution.
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Resolve the active lexicon on startup and keep it on ``app.state``.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control back to the application for the duration of its lifetime.
    """
    app.state.lexicon = get_lexicon()
    source = config.lexicon_file or "built-in tables"
    logger.info(f"Lexicon ready ({source}).")

    yield


app = FastAPI(
    title="Storyframe",
    description="Chapter visual-prompt synthesis for personalised storybooks.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _lexicon(request: Request) -> Lexicon:
    """Return the lexicon resolved at startup (or resolve it now)."""
    lexicon = getattr(request.app.state, "lexicon", None)
    return lexicon or get_lexicon()


def _raise_if_strict(strict: bool, warnings: list[str]) -> None:
    if strict and warnings:
        raise HTTPException(status_code=400, detail=warnings)


def _response(compiled: ChapterPrompt) -> ChapterPromptResponse:
    return ChapterPromptResponse.from_compiled(compiled, get_prompt_preview(compiled.prompt))


# ---------------------------------------------------------------------------
# Routes.
# ---------------------------------------------------------------------------


@app.get("/api/config")
async def get_config() -> dict:
    """Return the engine configuration.

    Returns:
        Dictionary with ``version``, ``themes`` (chapter theme values),
        ``use_scene_composition`` (default template mode),
        ``max_chapters`` and ``lexicon_sections`` (overridable section names).
    """
    return {
        "version": __version__,
        "themes": [theme.value for theme in ChapterTheme],
        "use_scene_composition": config.use_scene_composition,
        "max_chapters": config.max_chapters,
        "lexicon_sections": list(OVERRIDABLE_SECTIONS),
    }


@app.post("/api/prompt/chapter")
async def chapter_prompt(req: ChapterPromptRequest, request: Request) -> ChapterPromptResponse:
    """Compile the image prompt for a single chapter.

    Args:
        req: Validated :class:`ChapterPromptRequest` payload.

    Returns:
        The prompt, a short preview, the extracted features, the scene
        composition block, the chapter character prompt and any validator
        warnings.

    Raises:
        HTTPException: 400 if ``strict`` is set and validation warnings occur.
    """
    compiled = compile_chapter(
        req.chapter_text,
        req.identity.to_identity(),
        chapter_number=req.chapter_number,
        use_scene_composition=req.use_scene_composition,
        lexicon=_lexicon(request),
    )
    _raise_if_strict(req.strict, list(compiled.warnings))
    return _response(compiled)


@app.post("/api/prompt/story")
async def story_prompts(req: StoryPromptRequest, request: Request) -> dict:
    """Compile prompts for every chapter of a story.

    This endpoint:

    1. Uses ``chapters`` when given, otherwise splits ``story_text``
       (falling back to the built-in chapters).
    2. Compiles one prompt per chapter, up to ``config.max_chapters``.
    3. Analyses the whole story and builds the reference character prompt.

    Returns:
        Dictionary with ``chapters`` (compiled chapter prompts),
        ``analysis`` (primary theme, age category, theme counts) and
        ``character_prompt``.

    Raises:
        HTTPException: 400 if ``strict`` is set and any chapter has warnings.
    """
    identity = req.identity.to_identity()
    lexicon = _lexicon(request)

    if req.chapters:
        chapters = [c.to_chapter() for c in req.chapters]
        story_text = "\n\n".join(c.best_text for c in chapters)
    else:
        chapters = story_chapters(req.story_text, identity)
        story_text = req.story_text

    compiled = compile_chapters(chapters, identity, req.use_scene_composition, lexicon)
    _raise_if_strict(req.strict, [w for c in compiled for w in c.warnings])

    analysis = analyze_story(story_text, identity.age, lexicon)

    return {
        "chapters": [_response(c).model_dump() for c in compiled],
        "analysis": {
            "primary_theme": analysis.primary_theme,
            "age_category": analysis.age_category,
            "theme_counts": analysis.theme_counts,
        },
        "character_prompt": build_character_prompt(analysis),
    }


@app.post("/api/prompt/validate")
async def validate_params(req: PromptParamsRequest) -> dict:
    """Validate prompt template parameters without building a prompt.

    Returns:
        Dictionary with ``valid`` and the list of ``warnings``.
    """
    warnings = validate_prompt_params(req.to_params())
    return {"valid": not warnings, "warnings": warnings}


@app.post("/api/chapters/split")
async def split_story(req: SplitRequest) -> dict:
    """Split story text into chapters.

    Returns:
        Dictionary with ``count`` and ``chapters``.  Text without any
        ``Chapter N:`` heading gives an empty list.
    """
    chapters = split_chapters(req.story_text)
    return {
        "count": len(chapters),
        "chapters": [ChapterModel.from_chapter(c).model_dump() for c in chapters],
    }


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host and port from :data:`~storyframe.core.config.config` (which
    loads from ``STORYFRAME_SERVER_HOST`` and ``STORYFRAME_SERVER_PORT``
    environment variables).  Defaults to ``0.0.0.0:7860``.

    This function is registered as the ``storyframe`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    uvicorn.run(
        "storyframe.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
