"""
Unit tests for the heuristic title/chapter/grade extractor.

Pure functions only: no database, no network.
"""

import pytest

from app.services.metadata_extractor import (
    CHAPTER_STRATEGIES,
    TITLE_STRATEGIES,
    ChapterInfo,
    analyze_text,
    best_caps_title,
    chapter_before_subsection,
    chapter_marker_title,
    clean_title,
    connective_caps_title,
    extract_chapter,
    extract_grade,
    extract_title,
    find_title_candidate,
    first_plain_line,
    is_common_word,
    is_generic_subject,
    is_generic_title,
    is_section_heading,
    is_suspicious_title,
    longest_caps_title,
    numbered_title,
    quick_title,
    split_lines,
    strip_chapter_prefix,
    title_before_subsection,
    title_case,
    title_case_title,
)


class TestPredicates:
    """Denylist and placeholder checks."""

    @pytest.mark.parametrize("title", [
        None, "", "   ", "Processing…", "Processing...", "processing",
        "Content", "PDF Document", "Untitled Content", "YouTube Video", "text content",
    ])
    def test_generic_titles(self, title):
        assert is_generic_title(title) is True

    @pytest.mark.parametrize("title", ["Gravitation", "A Square and a Cube", "Introduction"])
    def test_specific_titles_are_not_generic(self, title):
        assert is_generic_title(title) is False

    @pytest.mark.parametrize("text", ["INTRODUCTION", "1. INTRODUCTION", "I. Introduction", "Lockers", "IV"])
    def test_common_words_rejected(self, text):
        assert is_common_word(text) is True

    def test_common_word_none(self):
        assert is_common_word(None) is False
        assert is_common_word("Photosynthesis") is False

    @pytest.mark.parametrize("line", ["II. Methods", "2.1 Background", "3 Results", "Conclusion"])
    def test_section_headings(self, line):
        assert is_section_heading(line) is True

    def test_plain_title_is_not_section_heading(self):
        assert is_section_heading("Work and Energy") is False

    def test_generic_subjects(self):
        assert is_generic_subject("Mathematics") is True
        assert is_generic_subject("social  science") is True
        assert is_generic_subject("Gravitation") is False

    def test_suspicious_titles(self):
        assert is_suspicious_title("Introduction") is True
        assert is_suspicious_title("1. Introduction") is True
        assert is_suspicious_title("Queen") is True
        assert is_suspicious_title("Gravitation") is False
        assert is_suspicious_title(None) is False


class TestNormalizers:

    def test_strip_chapter_prefix(self):
        assert strip_chapter_prefix("Chapter 9 — Gravitation") == "Gravitation"
        assert strip_chapter_prefix("chapter 2: Polynomials") == "Polynomials"
        assert strip_chapter_prefix("Gravitation") == "Gravitation"

    def test_clean_title_keeps_path_tail(self):
        assert clean_title("uploads/2024/chapter1.pdf") == "chapter1"
        assert clean_title("C:\\books\\Light.PDF") == "Light"
        assert clean_title("notes.pmd") == "notes"
        assert clean_title(None) is None
        assert clean_title("dir/") is None

    def test_title_case_keeps_small_words_lowercase(self):
        assert title_case("A SQUARE AND A CUBE") == "A Square and a Cube"
        assert title_case("WORK AND ENERGY") == "Work and Energy"
        assert title_case("the fun they had") == "The Fun They Had"

    def test_split_lines_drops_blank_lines(self):
        assert split_lines("  one \r\n\n two\n   \nthree") == ["one", "two", "three"]


class TestChapterExtraction:

    def test_number_before_title(self):
        chapter = extract_chapter("1 A SQUARE AND A CUBE\nGrade 8 Mathematics")
        assert chapter.number == 1
        assert chapter.label == "A SQUARE AND A CUBE"
        assert chapter.found

    def test_number_after_title(self):
        chapter = extract_chapter("POLYNOMIALS 2\nIn this chapter we study ...")
        assert chapter.number == 2
        assert chapter.label == "POLYNOMIALS"

    def test_chapter_heading_with_separator(self):
        chapter = extract_chapter("Chapter 9 — Gravitation\nWe have learnt about motion.")
        assert chapter.number == 9
        assert chapter.label == "Gravitation"

    def test_title_on_line_after_marker(self):
        chapter = extract_chapter("Chapter 3\nSound Waves Around Us\nSound is a form of energy.")
        assert chapter.number == 3
        assert chapter.label == "Sound Waves Around Us"

    def test_common_word_is_not_a_chapter(self):
        chapter = extract_chapter("1. INTRODUCTION\nThis paper presents ...")
        assert not chapter.found

    def test_empty_text(self):
        assert not extract_chapter("").found

    def test_strategies_are_independent_functions(self):
        lines = split_lines("1 A SQUARE AND A CUBE")
        assert CHAPTER_STRATEGIES[0](lines, "1 A SQUARE AND A CUBE").number == 1


class TestTitleExtraction:

    def test_connective_caps_title(self):
        lines = split_lines("WORK AND ENERGY\nWork is done when a force moves an object.")
        candidate = connective_caps_title(lines, "")
        assert candidate.title == "WORK AND ENERGY"
        assert candidate.strategy == "connective_caps_title"

    def test_numbered_title_records_number(self):
        candidate = numbered_title(split_lines("2 POLYNOMIALS"), "")
        assert candidate.title == "POLYNOMIALS"
        assert candidate.chapter_number == 2

    def test_research_paper_title_before_abstract(self):
        text = (
            "Deep Learning for Image Recognition in Medical Scans\n"
            "Jane Doe, University of Somewhere\n"
            "Abstract\n"
            "We study convolutional networks."
        )
        candidate = find_title_candidate(text)
        assert candidate.title == "Deep Learning for Image Recognition in Medical Scans"
        assert candidate.strategy == "research_paper_title"

    def test_section_heading_is_skipped(self):
        text = "1. INTRODUCTION\nPhotosynthesis In Green Plants\nPlants make food using sunlight."
        assert extract_title(text) == "Photosynthesis In Green Plants"

    def test_no_title_in_empty_text(self):
        assert extract_title("") is None

    def test_heuristics_are_deterministic(self):
        text = "WORK AND ENERGY\nClass 9\nWork is done by a force."
        assert {extract_title(text) for _ in range(5)} == {"WORK AND ENERGY"}

    def test_title_chain_order(self):
        assert TITLE_STRATEGIES[0].__name__ == "research_paper_title"
        assert TITLE_STRATEGIES[-1].__name__ == "first_plain_line"


SUBSECTION_PAGE = "LIGHT REFLECTION\nMirrors form images.\n2.1 Introduction to mirrors"


class TestTitleStrategies:
    """Each fallback in the title chain, called directly."""

    def test_best_caps_title_prefers_longer_line(self):
        lines = ["PLANT CELL STRUCTURE", "LIFE PROCESSES IN PLANTS", "Cells are tiny."]
        candidate = best_caps_title(lines, "")
        assert candidate.title == "LIFE PROCESSES IN PLANTS"
        assert candidate.strategy == "best_caps_title"

    def test_best_caps_title_skips_headings_and_short_lines(self):
        lines = ["MATERIALS AND METHODS", "PLANT CELLS", "Plants grow towards light."]
        assert best_caps_title(lines, "") is None

    def test_title_before_subsection(self):
        candidate = title_before_subsection(split_lines(SUBSECTION_PAGE), SUBSECTION_PAGE)
        assert candidate.title == "LIGHT REFLECTION"
        assert candidate.strategy == "title_before_subsection"

    def test_title_before_subsection_wins_the_chain(self):
        assert find_title_candidate(SUBSECTION_PAGE).strategy == "title_before_subsection"

    @pytest.mark.parametrize("text", [
        "2.1 Introduction to mirrors\nLIGHT REFLECTION",
        "SOCIAL SCIENCE\nRivers shape the land.\n2.1 Introduction to rivers",
        "LIGHT REFLECTION\nMirrors form images.",
    ])
    def test_title_before_subsection_rejects(self, text):
        assert title_before_subsection(split_lines(text), text) is None

    def test_chapter_marker_title(self):
        lines = ["Science for class nine", "Chapter 9: Gravitation"]
        candidate = chapter_marker_title(lines, "")
        assert candidate.title == "Chapter 9: Gravitation"
        assert candidate.strategy == "chapter_marker_title"

    def test_chapter_marker_title_needs_more_than_the_marker(self):
        assert chapter_marker_title(["Chapter 9", "Gravitation"], "") is None

    def test_longest_caps_title(self):
        lines = ["CELL BIOLOGY", "THE FUNDAMENTAL UNIT OF LIFE", "Cells are tiny."]
        candidate = longest_caps_title(lines, "")
        assert candidate.title == "THE FUNDAMENTAL UNIT OF LIFE"
        assert candidate.strategy == "longest_caps_title"

    def test_longest_caps_title_rejects_single_word(self):
        assert longest_caps_title(["PHOTOSYNTHESIS", "Plants make food."], "") is None

    def test_title_case_title(self):
        lines = ["the story so far:", "Sound Waves Around Us"]
        candidate = title_case_title(lines, "")
        assert candidate.title == "Sound Waves Around Us"
        assert candidate.strategy == "title_case_title"

    def test_title_case_title_skips_headings_and_lowercase(self):
        lines = ["Results And Discussion", "plants make food using sunlight"]
        assert title_case_title(lines, "") is None

    def test_first_plain_line(self):
        lines = ["Notes", "plants make food using sunlight"]
        candidate = first_plain_line(lines, "")
        assert candidate.title == "plants make food using sunlight"
        assert candidate.strategy == "first_plain_line"

    def test_first_plain_line_rejects(self):
        assert first_plain_line(["INTRODUCTION", "Page", "x" * 120], "") is None


class TestChapterStrategies:

    def test_chapter_before_subsection(self):
        lines = split_lines(SUBSECTION_PAGE)
        assert chapter_before_subsection(lines, SUBSECTION_PAGE) == ChapterInfo(2, "LIGHT REFLECTION")

    def test_chapter_before_subsection_through_chain(self):
        assert extract_chapter(SUBSECTION_PAGE) == ChapterInfo(2, "LIGHT REFLECTION")

    @pytest.mark.parametrize("text", [
        "1.1 Whole numbers\nNUMBER SYSTEMS",
        "MATHEMATICS\nNumbers are everywhere.\n1.1 Whole numbers",
        "Numbers are everywhere.",
    ])
    def test_chapter_before_subsection_rejects(self, text):
        assert chapter_before_subsection(split_lines(text), text) is None


class TestGrade:

    @pytest.mark.parametrize("text,grade", [
        ("Grade 8 Mathematics", 8),
        ("NCERT Class 10 Science", 10),
        ("no grade here", None),
        ("", None),
    ])
    def test_extract_grade(self, text, grade):
        assert extract_grade(text) == grade


class TestAnalyzeText:
    """Title precedence: chapter > heading > info Title > file name."""

    def test_chapter_label_wins(self):
        result = analyze_text("1 A SQUARE AND A CUBE\nGrade 8 Mathematics")
        assert result.title == "A Square and a Cube"
        assert result.chapter == "A SQUARE AND A CUBE"
        assert result.chapter_number == 1
        assert result.grade == 8

    def test_chapter_heading_title(self):
        result = analyze_text("Chapter 9 — Gravitation\nGrade 9 Science")
        assert result.title == "Gravitation"
        assert result.chapter_number == 9
        assert result.grade == 9

    def test_info_title_used_when_text_has_none(self):
        result = analyze_text("", info_title="Motion and Rest")
        assert result.title == "Motion and Rest"

    def test_common_word_info_title_falls_through_to_filename(self):
        result = analyze_text("", info_title="Introduction", filename="Light Reflection.pdf")
        assert result.title == "Light Reflection"

    def test_generic_info_title_ignored(self):
        assert analyze_text("", info_title="PDF Document", filename="notes.pdf").title == "notes"

    def test_nothing_found(self):
        result = analyze_text("")
        assert result.title is None
        assert result.chapter is None
        assert result.grade is None

    def test_quick_title_matches_analyze(self):
        text = "POLYNOMIALS 2\nClass 10"
        assert quick_title(text) == analyze_text(text).title == "Polynomials"
