"""Unit tests for chapter splitting, story analysis and batch prompt generation."""

import logging

import pytest

from storyframe.core.elements import analyze_chapter_elements
from storyframe.core.models import Chapter, ChapterElements, ChapterTheme
from storyframe.core.story import (
    AGE_TEMPLATES,
    BRIEF_OUTFITS,
    CHAPTER_BODY_STYLES,
    DEFAULT_EXPRESSION,
    THEME_TEMPLATES,
    age_category,
    analyze_story,
    build_chapter_character_brief,
    build_chapter_character_prompt,
    build_character_prompt,
    build_story_prompts,
    compile_chapter,
    compile_chapters,
    default_chapter_texts,
    generate_batch_prompts,
    generate_prompt_from_analysis,
    get_prompt_preview,
    split_chapters,
)


class TestSplitChapters:
    """Tests for split_chapters."""

    def test_splits_headings(self, sample_story):
        """Each 'Chapter N: Title' heading starts a chapter."""
        chapters = split_chapters(sample_story)
        assert [c.chapter_number for c in chapters] == [1, 2, 3]

    def test_chapter_text_format(self, sample_story):
        """Chapter text is title and body; full text keeps the heading."""
        first = split_chapters(sample_story)[0]
        assert first.chapter_text.startswith("The Glowing Pebble\n\nAnya kneels")
        assert first.full_chapter_text.startswith("Chapter 1: The Glowing Pebble\n\nAnya kneels")

    def test_body_stops_at_next_heading(self, sample_story):
        """A chapter body never includes the next chapter."""
        second = split_chapters(sample_story)[1]
        assert "Chapter 3" not in second.chapter_text
        assert second.chapter_text.endswith("before sunset.")

    def test_case_insensitive(self):
        """Lowercase headings are recognised."""
        chapters = split_chapters("chapter 1: Start\nOnce upon a time.")
        assert len(chapters) == 1

    def test_line_fallback(self, caplog):
        """A heading on the last line is picked up by the line-based fallback."""
        with caplog.at_level(logging.WARNING):
            chapters = split_chapters("Prologue text\nChapter 7: The End")
        assert chapters == [Chapter(7, "The End", "Chapter 7: The End")]
        assert "line by line" in caplog.text

    @pytest.mark.parametrize("text", ["", "Once upon a time there was no heading."])
    def test_no_headings(self, text):
        """Text without headings gives no chapters."""
        assert split_chapters(text) == []


class TestAnalyzeStory:
    """Tests for story-level analysis."""

    @pytest.mark.parametrize(
        "age, expected",
        [(2, "toddler"), (4, "toddler"), (5, "young_child"), (7, "young_child"), (8, "child"), (12, "child"), (13, "teen")],
    )
    def test_age_category(self, age, expected):
        """Ages map to their bracket."""
        assert age_category(age) == expected

    def test_primary_theme_by_count(self):
        """The theme with the most keyword occurrences wins."""
        analysis = analyze_story("The ocean waves. A fish in the sea. Water everywhere.", 6)
        assert analysis.primary_theme == "ocean"
        assert analysis.theme_counts["ocean"] >= 4

    def test_default_theme(self):
        """A story without theme keywords is an adventure."""
        assert analyze_story("Hello.", 6).primary_theme == "adventure"

    def test_tie_keeps_earlier_theme(self):
        """On a tie the earlier theme in the table wins."""
        assert analyze_story("magic ocean", 6).primary_theme == "magic"

    def test_character_prompt_paragraphs(self):
        """The character prompt has four blank-line separated paragraphs."""
        prompt = build_character_prompt(analyze_story("A magical spell.", 3))
        paragraphs = prompt.split("\n\n")
        assert len(paragraphs) == 4
        assert paragraphs[0].startswith("Create a digital caricature")
        assert paragraphs[1] == AGE_TEMPLATES["toddler"]
        assert paragraphs[2] == THEME_TEMPLATES["magic"]


class TestGeneration:
    """Tests for single-chapter and batch prompt generation."""

    def test_compile_chapter(self, anya, kneeling_chapter):
        """compile_chapter returns the prompt with its features and composition."""
        compiled = compile_chapter(kneeling_chapter, anya, chapter_number=1, use_scene_composition=True)
        assert compiled.features.chapter_theme is ChapterTheme.DISCOVERY
        assert compiled.composition.startswith("Scene Composition:")
        assert compiled.warnings == ()

    def test_warnings_logged_not_raised(self, kneeling_chapter, caplog):
        """Invalid identity values are logged and the prompt is still built."""
        from storyframe.core.models import CharacterIdentity

        with caplog.at_level(logging.WARNING):
            compiled = compile_chapter(kneeling_chapter, CharacterIdentity("Anya", 30, "girl"))
        assert compiled.warnings == ("age must be between 2 and 12",)
        assert "age must be between 2 and 12" in caplog.text
        assert compiled.prompt

    def test_generate_prompt_from_analysis(self, anya, kneeling_chapter):
        """Tagged elements keep the pose and emotion extracted from their text."""
        elements = analyze_chapter_elements(kneeling_chapter)
        prompt = generate_prompt_from_analysis(elements, anya)
        compiled = compile_chapter(kneeling_chapter, anya)
        assert compiled.features.visual_pose in prompt
        assert prompt.endswith(f"{compiled.features.emotion}.")

    def test_tagged_settings_become_environment(self, leo):
        """Detected settings, comma-joined, replace the scene-noun background."""
        text = "Leo walked into the castle garden."
        elements = analyze_chapter_elements(text)
        assert elements.settings == ("castle", "garden")
        scene = generate_prompt_from_analysis(elements, leo, chapter_number=2).split("\n")[1]
        assert ". castle, garden. " in scene
        assert "castle, garden" not in compile_chapter(text, leo, chapter_number=2).prompt

    def test_untagged_chapter_gets_simple_setting(self, leo):
        """No detected setting gives the simple storybook background."""
        elements = analyze_chapter_elements("Leo smiled.")
        prompt = generate_prompt_from_analysis(elements, leo, chapter_number=2, use_scene_composition=False)
        assert "simple colorful storybook setting." in prompt.split("\n")

    def test_compile_chapter_character_prompt(self, leo):
        """Each compiled chapter carries its chapter-specific character prompt."""
        compiled = compile_chapter("Leo was climbing the castle tower.", leo, chapter_number=3)
        assert "Position Leo in a climbing pose" in compiled.character_prompt
        assert "Set this in a majestic castle" in compiled.character_prompt

    def test_batch_one_prompt_per_chapter(self, anya, sample_story):
        """Each chapter yields exactly one prompt."""
        prompts = generate_batch_prompts(split_chapters(sample_story), anya)
        assert len(prompts) == 3
        assert all(p.startswith("Create a 3D plus digital sketch") for p in prompts)

    def test_batch_uses_chapter_numbers(self, anya, sample_story):
        """Chapter numbers drive theme detection (chapter 2 here is problem-solving)."""
        compiled = compile_chapters(split_chapters(sample_story), anya)
        assert [c.chapter_number for c in compiled] == [1, 2, 3]
        assert compiled[1].features.chapter_theme is ChapterTheme.PROBLEM_SOLVING

    def test_batch_prefers_full_text(self, anya):
        """The full chapter text is used when present."""
        chapter = Chapter(2, "Quiet.", "Chapter 2: Quiet.\n\nLeo climbed the tree branch.")
        compiled = compile_chapters([chapter], anya)[0]
        assert compiled.features.visual_pose == "climbing onto a low tree branch, one arm stretched upward"

    def test_batch_max_chapters(self, anya):
        """No more than max_chapters prompts are produced."""
        chapters = [Chapter(n, "text") for n in range(1, 11)]
        assert len(generate_batch_prompts(chapters, anya, max_chapters=8)) == 8
        assert len(generate_batch_prompts(chapters, anya, max_chapters=3)) == 3

    def test_story_prompts_default_chapters(self, anya):
        """A story without headings uses the eight built-in chapters."""
        prompts = build_story_prompts("Just a paragraph.", anya)
        assert len(prompts) == 8

    def test_default_chapter_texts_use_name(self):
        """The built-in chapters mention the child by name."""
        texts = default_chapter_texts("Mia")
        assert len(texts) == 8
        assert all("Mia" in text for text in texts)


class TestPromptPreview:
    """Tests for get_prompt_preview."""

    def test_short_prompt_untouched(self):
        """Prompts within the limit are returned as-is."""
        assert get_prompt_preview("short", 200) == "short"

    def test_long_prompt_truncated(self):
        """Longer prompts are cut and marked with an ellipsis."""
        preview = get_prompt_preview("x" * 250, 200)
        assert preview == "x" * 200 + "..."

    def test_default_length(self):
        """The configured preview length (200) is the default."""
        assert len(get_prompt_preview("y" * 500)) == 203


class TestChapterCharacterPrompt:
    """Tests for build_chapter_character_prompt."""

    def test_tags_drive_scene(self, leo):
        """The first setting, object, action and mood each add their description."""
        elements = ChapterElements(
            settings=("castle", "forest"),
            objects=("crystal",),
            actions=("climbing",),
            moods=("brave",),
        )
        prompt = build_chapter_character_prompt(elements, leo, 2)
        assert prompt.startswith(
            "Create a digital caricature of the person in the uploaded photo as Leo (9-year-old boy)."
        )
        assert "Show Leo with curious, bright eyes and a determined expression" in prompt
        assert (
            "in an elegant magical robe with intricate designs holding a glowing magical crystal "
            "that sparkles with inner light Position Leo in a climbing pose showing strength and perseverance."
        ) in prompt
        assert "Set this in a majestic castle with tall spires and flowing banners. " in prompt
        assert "Use heroic lighting with strong contrasts and bold highlights." in prompt
        assert prompt.endswith("with unique styling for this chapter.")

    def test_outfit_rotates_by_chapter(self, anya):
        """Outfits cycle through the age bracket's four options."""
        body, outfits = CHAPTER_BODY_STYLES["young_child"]
        elements = ChapterElements()
        assert body in build_chapter_character_prompt(elements, anya, 1)
        assert outfits[0] in build_chapter_character_prompt(elements, anya, 1)
        assert outfits[1] in build_chapter_character_prompt(elements, anya, 2)
        assert outfits[0] in build_chapter_character_prompt(elements, anya, 5)

    def test_expression_per_chapter(self, anya):
        """Chapters 1-8 have their own expression; later chapters use the default."""
        elements = ChapterElements()
        assert "with excited, wide-open eyes" in build_chapter_character_prompt(elements, anya, 1)
        assert "hair perfectly styled for the happy ending" in build_chapter_character_prompt(elements, anya, 8)
        assert DEFAULT_EXPRESSION in build_chapter_character_prompt(elements, anya, 9)

    def test_untagged_chapter(self, anya):
        """Without tags there is no prop, pose or lighting sentence."""
        prompt = build_chapter_character_prompt(ChapterElements(), anya, 1)
        assert "Set this in a warm, colorful adventure setting." in prompt
        assert "Position" not in prompt
        assert "  " not in prompt

    def test_unknown_setting_label(self, anya):
        """A setting label from a custom lexicon gets the generic setting."""
        prompt = build_chapter_character_prompt(ChapterElements(settings=("moon",)), anya, 1)
        assert "Set this in a magical adventure setting." in prompt

    def test_teen_uses_child_body(self):
        """Teens share the child body description."""
        from storyframe.core.models import CharacterIdentity

        prompt = build_chapter_character_prompt(ChapterElements(), CharacterIdentity("Sam", 14, "boy"), 1)
        assert CHAPTER_BODY_STYLES["child"][0] in prompt


class TestChapterCharacterBrief:
    """Tests for build_chapter_character_brief."""

    def test_full_brief(self, leo):
        """Text, age style, outfit, prop and background are comma-joined."""
        elements = ChapterElements(settings=("castle",), objects=("crown",), chapter_text="the royal hall")
        assert build_chapter_character_brief(elements, leo, 1) == (
            "A 9-year-old boy character in the royal hall, "
            "child proportions with confident expression, adventurous spirit, "
            "wearing casual adventure clothes like a colorful t-shirt and shorts, "
            "wearing a small crown, "
            "in majestic castle background with towers and banners, "
            "digital art style, vibrant colors, friendly expression"
        )

    def test_text_truncated(self, leo):
        """Only the first 100 characters of the chapter text are used."""
        brief = build_chapter_character_brief(ChapterElements(chapter_text="a" * 150), leo, 1)
        assert "a" * 100 + "," in brief
        assert "a" * 101 not in brief

    def test_defaults(self, anya):
        """No text, prop or setting gives the bare brief with the warm background."""
        brief = build_chapter_character_brief(ChapterElements(objects=("door",)), anya, 6)
        assert brief.startswith("A 6-year-old girl character, young child proportions")
        assert BRIEF_OUTFITS[0] in brief
        assert "door" not in brief
        assert "in warm colorful background" in brief
