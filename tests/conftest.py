"""Shared pytest fixtures for Storyframe tests."""

import json
import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from storyframe.core.lexicon import clear_lexicon_cache
from storyframe.core.models import CharacterIdentity, PromptParams


@pytest.fixture(autouse=True)
def _isolate_lexicon_cache(monkeypatch):
    """Keep lexicon files from leaking between tests."""
    monkeypatch.delenv("STORYFRAME_LEXICON_FILE", raising=False)
    clear_lexicon_cache()
    yield
    clear_lexicon_cache()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def anya() -> CharacterIdentity:
    """The sample heroine used throughout the tests."""
    return CharacterIdentity(name="Anya", age=6, gender="girl")


@pytest.fixture
def leo() -> CharacterIdentity:
    return CharacterIdentity(name="Leo", age=9, gender="boy")


@pytest.fixture
def kneeling_chapter() -> str:
    """Chapter text that triggers the most specific pose rule.

    Returns:
        One-sentence chapter about kneeling with a glowing pebble
    """
    return "Anya kneels near the old oak tree, gently holding a glowing, rainbow-colored pebble with awe."


@pytest.fixture
def sample_story() -> str:
    """A three-chapter story in the generator's heading format.

    Returns:
        Story text with 'Chapter N: Title' headings
    """
    return (
        "Chapter 1: The Glowing Pebble\n\n"
        "Anya kneels near the old oak tree in the garden, gently holding a glowing pebble.\n\n"
        "Chapter 2: The Blocked Path\n\n"
        "A fallen log blocked the forest path. Pip the squirrel chattered. "
        "Anya had to solve the problem before sunset.\n\n"
        "Chapter 3: Home Again\n\n"
        "Finally the friends return home, peaceful and happy, and Anya danced in the meadow.\n"
    )


@pytest.fixture
def valid_prompt_params() -> PromptParams:
    """Create valid prompt parameters for testing.

    Returns:
        PromptParams with valid values
    """
    return PromptParams(
        child_name="Anya",
        age=6,
        gender="girl",
        visual_pose="kneeling by the stream",
        emotion="quiet awe",
        scene_context="Pip the little squirrel scampering close by",
        environment="A sparkling stream winding through soft grass",
        chapter_number=1,
        chapter_text="Anya kneels by the stream.",
    )


@pytest.fixture
def lexicon_file(temp_dir: Path) -> Path:
    """Write a small lexicon override file.

    Overrides the pose rules and the companion rules so tests can tell the
    file was applied; everything else comes from the built-in tables.

    Returns:
        Path to the JSON file
    """
    path = temp_dir / "ocean_lexicon.json"
    path.write_text(
        json.dumps(
            {
                "pose_rules": [
                    {"keywords": ["swim", "dolphin"], "result": "swimming beside a playful dolphin"},
                    {"keywords": ["swim"], "result": "swimming with strong strokes"},
                ],
                "character_rules": [
                    {"keywords": ["dolphin"], "result": "a playful dolphin leaping nearby", "group": "dolphin"},
                ],
            }
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def test_client() -> Generator[TestClient, None, None]:
    """FastAPI TestClient with the application lifespan running.

    Yields:
        TestClient bound to :data:`storyframe.api.main.app`
    """
    from storyframe.api.main import app

    with TestClient(app) as client:
        yield client
