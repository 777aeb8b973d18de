"""Chapter element tagging.

Tags a chapter with zero or more labels per category (settings, objects,
actions, moods).  A label applies when any of its keywords appears in the
lowercased chapter text.  Categories are not mutually exclusive and a chapter
with no recognisable vocabulary simply yields empty tuples.
"""

import logging
from collections.abc import Mapping

from storyframe.core.lexicon import DEFAULT_LEXICON, Lexicon, contains_any
from storyframe.core.models import ChapterElements

logger = logging.getLogger(__name__)


def _detect(text_lower: str, table: Mapping[str, tuple[str, ...]]) -> tuple[str, ...]:
    return tuple(label for label, keywords in table.items() if contains_any(text_lower, keywords))


def analyze_chapter_elements(chapter_text: str, lexicon: Lexicon = DEFAULT_LEXICON) -> ChapterElements:
    """Extract category tags from one chapter.

    Args:
        chapter_text: Raw narrative prose for the chapter (may be empty).
        lexicon: Keyword tables to use.

    Returns:
        ChapterElements with labels in lexicon order and the original text.
    """
    text_lower = (chapter_text or "").lower()

    elements = ChapterElements(
        settings=_detect(text_lower, lexicon.setting_keywords),
        objects=_detect(text_lower, lexicon.object_keywords),
        actions=_detect(text_lower, lexicon.action_keywords),
        moods=_detect(text_lower, lexicon.mood_keywords),
        chapter_text=chapter_text or "",
    )
    logger.debug(
        f"Chapter elements: settings={elements.settings} objects={elements.objects} "
        f"actions={elements.actions} moods={elements.moods}"
    )
    return elements
