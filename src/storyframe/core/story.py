"""Story-level pipeline: chapter splitting, story analysis and batch prompts.

This module ties the per-chapter extractors to the prompt builder and runs
them over a whole story.

Pipeline Flow
-------------
1. :func:`split_chapters` cuts generated story text into
   :class:`~storyframe.core.models.Chapter` records
2. Each chapter is tagged (:func:`~storyframe.core.elements.analyze_chapter_elements`)
   and its features extracted (:func:`~storyframe.core.features.extract_features`)
3. The features become :class:`~storyframe.core.models.PromptParams`, are
   validated (warnings are logged, never raised) and compiled with
   :func:`~storyframe.core.prompt_builder.build_storybook_prompt`

Story text without any chapter heading falls back to eight built-in chapter
synopses so a storybook can always be illustrated.

Independently, :func:`analyze_story` classifies the whole story by theme and
the child's age so :func:`build_character_prompt` can produce the reference
caricature prompt used before any chapter is drawn.
"""

import logging
import re
from collections.abc import Sequence

from storyframe.core.config import config
from storyframe.core.elements import analyze_chapter_elements
from storyframe.core.features import extract_features
from storyframe.core.lexicon import Lexicon, get_lexicon
from storyframe.core.models import (
    Chapter,
    ChapterElements,
    ChapterPrompt,
    CharacterIdentity,
    PromptParams,
    StoryAnalysis,
)
from storyframe.core.prompt_builder import build_storybook_prompt, validate_prompt_params
from storyframe.core.scene import build_chapter_composition

logger = logging.getLogger(__name__)

# "Chapter 3: Title" followed by the body up to the next heading.
_CHAPTER_PATTERN = re.compile(
    r"Chapter\s+(\d+):\s*([^\n]+)\n\n?(.*?)(?=Chapter\s+\d+:|$)",
    re.IGNORECASE | re.DOTALL,
)
_HEADING_LINE = re.compile(r"Chapter\s+(\d+):\s*(.+)", re.IGNORECASE)

DEFAULT_STORY_THEME = "adventure"
DEFAULT_TAGGED_ENVIRONMENT = "simple colorful storybook setting"

# ============================================================================
# Chapter splitting
# ============================================================================


def _split_by_lines(story_text: str) -> list[Chapter]:
    """Group lines under each ``Chapter <n>:`` heading line."""
    chapters: list[Chapter] = []
    number: int | None = None
    content: list[str] = []

    def flush() -> None:
        if number is not None and content:
            body = "\n".join(content).strip()
            chapters.append(Chapter(number, body, f"Chapter {number}: {body}"))

    for line in story_text.split("\n"):
        heading = _HEADING_LINE.search(line)
        if heading:
            flush()
            number = int(heading.group(1))
            content = [heading.group(2)]
        elif number is not None and line.strip():
            content.append(line)
    flush()

    return chapters


def split_chapters(story_text: str) -> list[Chapter]:
    """Split story text into chapters.

    Headings look like ``Chapter 2: The Magical Journey``.  The chapter text
    is the title and body separated by a blank line; the full chapter text
    also keeps the heading.

    Args:
        story_text: Generated story text.

    Returns:
        Chapters in text order.  Text without any heading gives ``[]``.
    """
    if not story_text:
        return []

    chapters = []
    for match in _CHAPTER_PATTERN.finditer(story_text):
        number = int(match.group(1))
        title = match.group(2).strip()
        body = match.group(3).strip()
        chapters.append(
            Chapter(
                chapter_number=number,
                chapter_text=f"{title}\n\n{body}",
                full_chapter_text=f"Chapter {number}: {title}\n\n{body}",
            )
        )

    if not chapters:
        chapters = _split_by_lines(story_text)
        if chapters:
            logger.warning(f"Chapter headings only matched line by line, found {len(chapters)} chapters")

    logger.info(f"Extracted {len(chapters)} chapters from story")
    return chapters


def default_chapter_texts(child_name: str) -> list[str]:
    """Built-in chapter synopses used when a story has no usable chapters."""
    return [
        f"{child_name} discovers a magical door hidden behind the old oak tree in their backyard. "
        "As they push it open, a world of wonder and adventure awaits them on the other side.",
        f"Stepping through the magical door, {child_name} finds themselves in an enchanted forest "
        "where the trees whisper secrets and flowers glow with their own light.",
        f"{child_name} meets a wise talking owl who becomes their guide. The owl tells them about an "
        "ancient treasure that can only be found by someone with a pure heart.",
        f"Together with their new friend, {child_name} crosses a sparkling river on the back of a "
        "friendly dragon who loves to help young adventurers on their quests.",
        f"{child_name} discovers a hidden cave filled with glittering crystals. Each crystal holds a "
        "memory of courage from children who came before them.",
        f"In a beautiful meadow, {child_name} helps a family of lost rabbits find their way home, "
        "learning that kindness is the greatest magic of all.",
        f"{child_name} faces their biggest challenge yet - crossing a bridge guarded by a lonely "
        "giant who just wants a friend to talk to.",
        f"With the treasure in hand and new friends by their side, {child_name} returns home, "
        "knowing that the greatest adventure is the one that lives in their heart.",
    ]


# ============================================================================
# Story analysis and reference character prompt
# ============================================================================

_CARICATURE_BASE = (
    "Create a digital caricature of the person in the uploaded photo. "
    "Exaggerate the head size and facial features in a humorous yet flattering style, "
    "with bold outlines and vibrant shading. Maintain the person's recognizable hairstyle, "
    "clothing, and accessories."
)

_CARICATURE_CLOSING = (
    "Use a warm, artistic background to keep focus on the character. The overall look should be "
    "colorful, playful, and expressive — like a professional hand-drawn caricature illustration."
)

AGE_TEMPLATES = {
    "toddler": (
        "The character should have toddler proportions with a large head, chubby cheeks, "
        "short legs, and an innocent, playful expression. Show them in comfortable play clothes "
        "like overalls or a colorful t-shirt."
    ),
    "young_child": (
        "The character should have young child proportions with a slightly larger head, "
        "energetic posture, and bright, curious eyes. Dress them in adventure-ready clothes "
        "like jeans and a fun t-shirt or dress."
    ),
    "child": (
        "The character should have child proportions with confident posture, intelligent eyes, "
        "and a ready-for-anything attitude. Show them in casual but neat clothes suitable for adventures."
    ),
    "teen": (
        "The character should have teen proportions with a more mature stance, expressive features, "
        "and stylish but practical clothing that shows their personality."
    ),
}

THEME_TEMPLATES = {
    "magic": (
        "Incorporate magical elements like sparkles, a wizard hat, or magical accessories. "
        "Use mystical colors like deep purples, shimmering golds, and magical blues. "
        "Add a subtle magical aura or glowing effects."
    ),
    "adventure": (
        "Show them in explorer gear like a safari hat, adventure backpack, or compass. "
        "Use earth tones mixed with bright accent colors. Position them in an action-ready pose "
        "that suggests they're ready for any adventure."
    ),
    "friendship": (
        "Include warm, welcoming body language and a big, genuine smile. "
        "Use warm colors like yellows, oranges, and soft pinks. Maybe add a friendly pet "
        "or companion in the background."
    ),
    "nature": (
        "Surround them with natural elements like flowers, leaves, or small forest creatures. "
        "Use natural greens, browns, and floral colors. Show them in outdoor-appropriate "
        "clothing with a peaceful, nature-loving expression."
    ),
    "ocean": (
        "Include ocean-themed elements like seashells, a sailor's hat, or ocean colors. "
        "Use blues, teals, and sandy colors. Maybe add some splashing water effects "
        "or sea creatures in the background."
    ),
    "space": (
        "Add cosmic elements like stars, planets, or a space helmet. Use cosmic colors "
        "like deep blues, purples, and silver accents. Include some twinkling star effects "
        "or nebula colors in the background."
    ),
}


def age_category(age: int) -> str:
    if age <= 4:
        return "toddler"
    if age <= 7:
        return "young_child"
    if age <= 12:
        return "child"
    return "teen"


def analyze_story(story_text: str, age: int, lexicon: Lexicon | None = None) -> StoryAnalysis:
    """Classify a story by its dominant theme and the child's age bracket.

    Each story theme scores the total number of keyword occurrences in the
    lowercased text.  The first theme with a strictly higher score than all
    earlier ones wins; a story with no theme keyword at all is an adventure.
    """
    lexicon = lexicon or get_lexicon()
    story_lower = (story_text or "").lower()

    counts: dict[str, int] = {}
    primary_theme = DEFAULT_STORY_THEME
    best = 0
    for theme, keywords in lexicon.story_theme_keywords.items():
        count = sum(story_lower.count(keyword) for keyword in keywords)
        counts[theme] = count
        if count > best:
            best = count
            primary_theme = theme

    analysis = StoryAnalysis(
        primary_theme=primary_theme,
        age_category=age_category(age),
        theme_counts=counts,
    )
    logger.info(f"Story analysis: theme={analysis.primary_theme}, age_category={analysis.age_category}")
    return analysis


def build_character_prompt(analysis: StoryAnalysis) -> str:
    """Build the reference caricature prompt for a story's hero.

    Paragraphs (separated by blank lines): base caricature instructions, the
    age template, the theme template and the closing paragraph.  A theme
    without a template (possible with a custom lexicon) uses the adventure
    template.
    """
    paragraphs = [
        _CARICATURE_BASE,
        AGE_TEMPLATES.get(analysis.age_category, AGE_TEMPLATES["child"]),
        THEME_TEMPLATES.get(analysis.primary_theme, THEME_TEMPLATES[DEFAULT_STORY_THEME]),
        _CARICATURE_CLOSING,
    ]
    return "\n\n".join(paragraphs)


# ============================================================================
# Chapter-specific character prompts
# ============================================================================

# Body description and outfit rotation per age bracket.  Teens share the
# child bracket.
CHAPTER_BODY_STYLES = {
    "toddler": (
        "The body should have toddler proportions — short legs, chubby cheeks, playful energy.",
        (
            "wearing a colorful adventure outfit with tiny boots",
            "in a magical cape with sparkly details",
            "wearing explorer clothes with a small backpack",
            "in a superhero costume with bright colors",
        ),
    ),
    "young_child": (
        "The body should have young child proportions — longer legs, confident posture, and playful energy.",
        (
            "wearing an adventurer's outfit with sturdy boots",
            "in a flowing magical cloak with mystical patterns",
            "wearing explorer gear with useful pockets",
            "in a heroic costume with a flowing cape",
        ),
    ),
    "child": (
        "The body should have child proportions — mature posture, confident stance, ready for adventure.",
        (
            "wearing a detailed adventure outfit with professional gear",
            "in an elegant magical robe with intricate designs",
            "wearing sophisticated explorer clothing",
            "in a heroic outfit with impressive details",
        ),
    ),
}

CHAPTER_EXPRESSIONS = {
    1: "with excited, wide-open eyes and a big adventurous smile, hair slightly tousled from excitement",
    2: "with curious, bright eyes and a determined expression, hair neatly styled for the journey",
    3: "with focused, confident eyes and a brave smile, hair flowing with adventure",
    4: "with kind, gentle eyes and a warm, caring smile, hair softly framing the face",
    5: "with courageous, steady eyes and a fearless expression, hair dramatically styled",
    6: "with creative, sparkling eyes and an innovative smile, hair styled with artistic flair",
    7: "with triumphant, glowing eyes and a victorious smile, hair perfectly styled for success",
    8: "with peaceful, satisfied smile and relaxed posture, hair perfectly styled for the happy ending",
}
DEFAULT_EXPRESSION = "with adventurous expression and confident smile"

SETTING_DESCRIPTIONS = {
    "forest": "a lush, enchanted forest with towering trees and dappled sunlight",
    "castle": "a majestic castle with tall spires and flowing banners",
    "ocean": "a sparkling ocean with gentle waves and coral reefs",
    "mountain": "dramatic mountains with misty peaks and rocky cliffs",
    "garden": "a beautiful garden filled with colorful flowers and butterflies",
    "city": "a bustling magical city with towers and floating bridges",
    "sky": "a vast sky filled with fluffy clouds and rainbow light",
    "space": "a cosmic space setting with stars and glowing planets",
}

PROP_DESCRIPTIONS = {
    "crystal": "holding a glowing magical crystal that sparkles with inner light",
    "book": "carrying an ancient spellbook with mystical symbols",
    "sword": "wielding a heroic sword that gleams in the light",
    "wand": "holding a magical wand with a glowing tip",
    "crown": "wearing a small crown that catches the light beautifully",
    "door": "standing before an ornate magical door with intricate patterns",
    "bridge": "crossing a magnificent bridge that spans the landscape",
    "flower": "surrounded by magical flowers that glow softly",
}

ACTION_POSES = {
    "exploring": "in an exploring pose, looking ahead with curiosity and wonder",
    "flying": "in a dynamic flying pose with arms outstretched and cape flowing",
    "running": "in an action running pose with energy and determination",
    "climbing": "in a climbing pose showing strength and perseverance",
    "swimming": "in a graceful swimming pose with water effects around",
    "fighting": "in a heroic fighting stance with confident posture",
    "helping": "in a caring helping pose, reaching out with kindness",
}

MOOD_ATMOSPHERES = {
    "magical": "Use magical lighting with sparkles and glowing effects throughout the scene.",
    "happy": "Use bright, cheerful lighting with warm, golden tones.",
    "exciting": "Use dynamic lighting with vibrant colors and energy effects.",
    "peaceful": "Use soft, gentle lighting with calming pastel tones.",
    "brave": "Use heroic lighting with strong contrasts and bold highlights.",
    "mysterious": "Use mystical lighting with deep purples and ethereal glows.",
}

_CHAPTER_CLOSING = (
    "Use a warm, artistic background to keep focus on the character. The overall look should be "
    "colorful, playful, and expressive — like a professional hand-drawn caricature illustration "
    "with unique styling for this chapter."
)

# Shorter per-chapter character brief.
BRIEF_AGE_STYLES = {
    "toddler": "toddler proportions with large head, chubby cheeks, innocent expression",
    "young_child": "young child proportions with bright curious eyes, energetic posture",
    "child": "child proportions with confident expression, adventurous spirit",
    "teen": "teen proportions with mature confident expression, heroic stance",
}

BRIEF_OUTFITS = (
    "wearing casual adventure clothes like a colorful t-shirt and shorts",
    "dressed in explorer outfit with vest and comfortable pants",
    "in magical outfit with cape and adventure gear",
    "wearing nature-themed clothes with earth tones",
    "in heroic outfit with impressive details and bright colors",
)

BRIEF_BACKGROUNDS = {
    "forest": "enchanted forest background with trees and magical light",
    "castle": "majestic castle background with towers and banners",
    "ocean": "ocean background with waves and coral",
    "mountain": "mountain landscape with peaks and valleys",
    "garden": "beautiful garden with flowers and butterflies",
    "city": "magical city background with towers",
    "sky": "sky background with clouds and light",
    "space": "cosmic space background with stars",
}

BRIEF_PROPS = {
    "crystal": "holding a glowing magical crystal",
    "book": "carrying an ancient book",
    "sword": "wielding a heroic sword",
    "wand": "holding a magical wand",
    "crown": "wearing a small crown",
    "flower": "holding beautiful flowers",
}


def _rotate(options: Sequence[str], chapter_number: int) -> str:
    """Pick the outfit for a chapter, cycling through *options*."""
    return options[(chapter_number - 1) % len(options)]


def _first_label(labels: Sequence[str], table: dict[str, str]) -> str | None:
    """Description of the first detected label, or None when it has none."""
    if not labels:
        return None
    return table.get(labels[0])


def build_chapter_character_prompt(
    elements: ChapterElements, identity: CharacterIdentity, chapter_number: int
) -> str:
    """Build the caricature prompt for the hero as they appear in one chapter.

    The chapter's tags pick the scene: the first setting gives the place, the
    first object a prop, the first action a pose and the first mood the
    lighting.  The age bracket gives the body description and a rotating
    outfit, and the chapter number picks the expression.

    Args:
        elements: Tags from :func:`~storyframe.core.elements.analyze_chapter_elements`.
        identity: The child hero.
        chapter_number: 1-based chapter position.

    Returns:
        A single-paragraph prompt.
    """
    name = identity.name
    body, outfits = CHAPTER_BODY_STYLES.get(age_category(identity.age), CHAPTER_BODY_STYLES["child"])
    expression = CHAPTER_EXPRESSIONS.get(chapter_number, DEFAULT_EXPRESSION)

    if elements.settings:
        setting = SETTING_DESCRIPTIONS.get(elements.settings[0], "a magical adventure setting")
    else:
        setting = "a warm, colorful adventure setting"

    styling = _rotate(outfits, chapter_number)
    prop = _first_label(elements.objects, PROP_DESCRIPTIONS)
    if prop:
        styling += f" {prop}"
    if elements.actions:
        pose = ACTION_POSES.get(elements.actions[0], "in a confident, adventurous pose")
        styling += f" Position {name} {pose}."

    parts = [
        f"Create a digital caricature of the person in the uploaded photo as {name} "
        f"({identity.age}-year-old {identity.gender}). Exaggerate the head size and facial features "
        "in a humorous yet flattering style with bold outlines and vibrant shading, while keeping "
        "the recognizable hairstyle.",
        body,
        f"Show {name} {expression}.",
        styling,
        f"Set this in {setting}.",
    ]
    atmosphere = _first_label(elements.moods, MOOD_ATMOSPHERES)
    if atmosphere:
        parts.append(atmosphere)
    parts.append(_CHAPTER_CLOSING)
    return " ".join(parts)


def build_chapter_character_brief(
    elements: ChapterElements, identity: CharacterIdentity, chapter_number: int
) -> str:
    """Build a one-line character description for a chapter.

    The line opens with the first 100 characters of the chapter text, then
    adds an age style, a rotating outfit, an optional prop and a background
    taken from the first detected setting.
    """
    character = f"A {identity.age}-year-old {identity.gender} character"
    if elements.chapter_text:
        character += f" in {elements.chapter_text[:100]}"

    parts = [
        character,
        BRIEF_AGE_STYLES[age_category(identity.age)],
        _rotate(BRIEF_OUTFITS, chapter_number),
    ]
    prop = _first_label(elements.objects, BRIEF_PROPS)
    if prop:
        parts.append(prop)

    background = _first_label(elements.settings, BRIEF_BACKGROUNDS) or "warm colorful background"
    parts.append(f"in {background}")
    parts.append("digital art style, vibrant colors, friendly expression")
    return ", ".join(parts)


# ============================================================================
# Prompt generation
# ============================================================================


def compile_chapter(
    text: str,
    identity: CharacterIdentity,
    chapter_number: int = 1,
    use_scene_composition: bool | None = None,
    lexicon: Lexicon | None = None,
    environment: str | None = None,
) -> ChapterPrompt:
    """Extract features from one chapter and compile its prompt.

    The chapter is also tagged, and its tags drive the chapter-specific
    character prompt returned alongside.  Validator warnings are logged and
    returned with the prompt; they never stop the build.

    Args:
        text: Chapter text.
        identity: The child hero.
        chapter_number: 1-based chapter position.
        use_scene_composition: Template mode; defaults to
            ``config.use_scene_composition``.
        lexicon: Tables to use; defaults to :func:`get_lexicon`.
        environment: Background description to use instead of the one built
            from the chapter's scene nouns.

    Returns:
        ChapterPrompt with the prompt, the features, the composition block
        and the chapter character prompt.
    """
    if use_scene_composition is None:
        use_scene_composition = config.use_scene_composition
    lexicon = lexicon or get_lexicon()

    features = extract_features(text, chapter_number, lexicon)
    params = PromptParams.from_identity(
        identity,
        visual_pose=features.visual_pose,
        emotion=features.emotion,
        scene_context=features.scene_context,
        environment=features.environment if environment is None else environment,
        chapter_number=chapter_number,
        chapter_text=text or "",
        use_scene_composition=use_scene_composition,
    )

    warnings = validate_prompt_params(params)
    for warning in warnings:
        logger.warning(f"Chapter {chapter_number} prompt params: {warning}")

    elements = analyze_chapter_elements(text, lexicon)

    return ChapterPrompt(
        chapter_number=chapter_number,
        prompt=build_storybook_prompt(params),
        features=features,
        composition=build_chapter_composition(features, lexicon),
        warnings=tuple(warnings),
        character_prompt=build_chapter_character_prompt(elements, identity, chapter_number),
    )


def generate_prompt_from_analysis(
    elements: ChapterElements,
    identity: CharacterIdentity,
    chapter_number: int = 1,
    use_scene_composition: bool | None = None,
    lexicon: Lexicon | None = None,
) -> str:
    """Compile the prompt for a chapter that has already been tagged.

    The detected settings, comma-joined, become the background; a chapter
    without settings gets ``"simple colorful storybook setting"``.
    """
    environment = ", ".join(elements.settings) or DEFAULT_TAGGED_ENVIRONMENT
    return compile_chapter(
        elements.chapter_text,
        identity,
        chapter_number=chapter_number,
        use_scene_composition=use_scene_composition,
        lexicon=lexicon,
        environment=environment,
    ).prompt


def compile_chapters(
    chapters: Sequence[Chapter],
    identity: CharacterIdentity,
    use_scene_composition: bool | None = None,
    lexicon: Lexicon | None = None,
    max_chapters: int | None = None,
) -> list[ChapterPrompt]:
    """Compile every chapter of a story, up to ``max_chapters``.

    The full chapter text (heading included) is preferred over the bare
    chapter text because it carries more vocabulary.
    """
    if max_chapters is None:
        max_chapters = config.max_chapters
    lexicon = lexicon or get_lexicon()

    if len(chapters) > max_chapters:
        logger.info(f"Story has {len(chapters)} chapters, illustrating the first {max_chapters}")

    results = []
    for chapter in list(chapters)[:max_chapters]:
        results.append(
            compile_chapter(
                chapter.best_text,
                identity,
                chapter_number=chapter.chapter_number,
                use_scene_composition=use_scene_composition,
                lexicon=lexicon,
            )
        )

    logger.info(f"Generated {len(results)} chapter prompts for {identity.name}")
    return results


def generate_batch_prompts(
    chapters: Sequence[Chapter],
    identity: CharacterIdentity,
    use_scene_composition: bool | None = None,
    lexicon: Lexicon | None = None,
    max_chapters: int | None = None,
) -> list[str]:
    """Return one prompt per chapter (see :func:`compile_chapters`)."""
    compiled = compile_chapters(chapters, identity, use_scene_composition, lexicon, max_chapters)
    return [chapter.prompt for chapter in compiled]


def story_chapters(story_text: str, identity: CharacterIdentity) -> list[Chapter]:
    """Split a story, falling back to the built-in synopses."""
    chapters = split_chapters(story_text)
    if not chapters:
        logger.warning(f"No chapters found in story for {identity.name}, using default chapters")
        chapters = [
            Chapter(chapter_number=number, chapter_text=text)
            for number, text in enumerate(default_chapter_texts(identity.name), start=1)
        ]
    return chapters


def build_story_prompts(
    story_text: str,
    identity: CharacterIdentity,
    use_scene_composition: bool | None = None,
    lexicon: Lexicon | None = None,
) -> list[str]:
    """Split a whole story and return one prompt per chapter."""
    return generate_batch_prompts(story_chapters(story_text, identity), identity, use_scene_composition, lexicon)


def get_prompt_preview(prompt: str, length: int | None = None) -> str:
    """Return the start of a prompt for logs and listings.

    Args:
        prompt: Full prompt text.
        length: Characters to keep; defaults to ``config.preview_length``.
    """
    if length is None:
        length = config.preview_length
    return prompt[:length] + ("..." if len(prompt) > length else "")
