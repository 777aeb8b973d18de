"""Storyframe - chapter visual-prompt synthesis for personalised storybooks."""

__version__ = "0.1.0"

from storyframe.core.config import StoryframeConfig, config
from storyframe.core.models import CharacterIdentity, PromptParams
from storyframe.core.prompt_builder import build_storybook_prompt, validate_prompt_params
from storyframe.core.story import build_story_prompts, split_chapters

__all__ = [
    "CharacterIdentity",
    "PromptParams",
    "StoryframeConfig",
    "build_story_prompts",
    "build_storybook_prompt",
    "config",
    "split_chapters",
    "validate_prompt_params",
]
