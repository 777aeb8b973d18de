"""Core functionality for chapter prompt synthesis.

This module turns a chapter of children's-story prose plus the child's
identity into a single text-to-image prompt.  Everything here is pure text
processing: no I/O apart from the optional lexicon file.

Architecture Overview
---------------------
The core module follows a layered architecture:

1. **Configuration Layer** (config.py):
   - Environment-based configuration using Pydantic Settings
   - All settings prefixed with STORYFRAME_ in .env files

2. **Lexicon Layer** (lexicon.py):
   - Priority-ordered keyword rules and vocabulary tables
   - Optional JSON override file, validated with Pydantic

3. **Extraction Layer** (elements.py, features.py, scene.py):
   - Category tags, pose, emotion, scene context, scene nouns
   - Environment description, chapter theme, camera/lighting preset
   - Layered scene composition block

4. **Template Layer** (prompt_builder.py):
   - Scene-composition and legacy prompt templates
   - Non-blocking parameter validation

5. **Story Layer** (story.py):
   - Chapter splitting, story analysis, batch prompt generation

Usage Example
-------------
    from storyframe.core import CharacterIdentity, build_story_prompts

    anya = CharacterIdentity(name="Anya", age=6, gender="girl")
    prompts = build_story_prompts(story_text, anya)

See Also
--------
- StoryframeConfig: Configuration options and environment variables
- Lexicon: The tables every extractor reads
"""

from storyframe.core.config import StoryframeConfig, config
from storyframe.core.features import extract_features
from storyframe.core.lexicon import DEFAULT_LEXICON, Lexicon, get_lexicon, load_lexicon
from storyframe.core.models import (
    Chapter,
    ChapterElements,
    ChapterPrompt,
    ChapterTheme,
    CharacterIdentity,
    ExtractedFeatures,
    PromptParams,
    StoryAnalysis,
)
from storyframe.core.prompt_builder import build_storybook_prompt, validate_prompt_params
from storyframe.core.story import (
    analyze_story,
    build_chapter_character_prompt,
    build_character_prompt,
    build_story_prompts,
    generate_batch_prompts,
    split_chapters,
)

__all__ = [
    "Chapter",
    "ChapterElements",
    "ChapterPrompt",
    "ChapterTheme",
    "CharacterIdentity",
    "DEFAULT_LEXICON",
    "ExtractedFeatures",
    "Lexicon",
    "PromptParams",
    "StoryAnalysis",
    "StoryframeConfig",
    "analyze_story",
    "build_chapter_character_prompt",
    "build_character_prompt",
    "build_story_prompts",
    "build_storybook_prompt",
    "config",
    "extract_features",
    "generate_batch_prompts",
    "get_lexicon",
    "load_lexicon",
    "split_chapters",
    "validate_prompt_params",
]
