"""Configuration management for Storyframe.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the STORYFRAME_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (STORYFRAME_* prefix)
2. .env file in the project root
3. Default values defined in StoryframeConfig

Example .env file:
    STORYFRAME_LEXICON_FILE=lexicons/ocean_story.json
    STORYFRAME_USE_SCENE_COMPOSITION=false
    STORYFRAME_MAX_CHAPTERS=6
    STORYFRAME_LOG_LEVEL=DEBUG

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.
This ensures a single source of truth for all configuration values across
the application.

Usage Example
-------------
    from storyframe.core.config import config

    print(config.max_chapters)
    print(config.use_scene_composition)

Template Mode
-------------
``use_scene_composition`` selects the default prompt template.  The
scene-composition template folds pose, companions, environment and a
theme-derived camera/lighting pair into one narrative line; the legacy
template spreads them over separate sentences.  Callers can still choose a
mode per request.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoryframeConfig(BaseSettings):
    """Main configuration for Storyframe.

    Attributes
    ----------
    Engine Settings:
        lexicon_file : Path | None
            Optional JSON file replacing sections of the built-in lexicon
        use_scene_composition : bool
            Default template mode for chapter prompts
        max_chapters : int
            Maximum number of chapters illustrated per story (1-8)
        preview_length : int
            Number of characters shown by prompt previews

    Server Settings:
        server_host : str
            Server bind address (0.0.0.0 for local network)
        server_port : int
            Server port (1024-65535)
        log_level : Literal["DEBUG", "INFO", "WARNING", "ERROR"]
            Root log level used by the server entry point

    Notes
    -----
    - Configuration is immutable after initialization
    - To modify config, set environment variables and restart the application

    Examples
    --------
    Create a custom configuration:

        >>> custom_config = StoryframeConfig(
        ...     use_scene_composition=False,
        ...     max_chapters=4,
        ... )

    Use the global configuration instance:

        >>> from storyframe.core.config import config
        >>> print(config.max_chapters)
        8
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="STORYFRAME_",
        case_sensitive=False,
    )

    # Engine settings
    lexicon_file: Path | None = Field(
        default=None,
        description="Optional JSON file overriding sections of the built-in lexicon",
    )
    use_scene_composition: bool = Field(
        default=True,
        description="Use the scene-composition template by default (legacy template otherwise)",
    )
    max_chapters: int = Field(
        default=8,
        description="Maximum number of chapters illustrated per story",
        ge=1,
        le=8,
    )
    preview_length: int = Field(
        default=200,
        description="Number of characters shown by prompt previews",
        ge=1,
    )

    # Server settings
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address (0.0.0.0 for local network)",
    )
    server_port: int = Field(
        default=7860,
        description="Server port",
        ge=1024,
        le=65535,
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Log level for the server entry point",
    )


# Global configuration instance
# Loads values from environment variables (STORYFRAME_* prefix) and .env file.
config = StoryframeConfig()
