"""
Heuristic title / chapter / grade extraction.

Pure, deterministic functions over the first few thousand characters of a
document's text. They run synchronously in the ingestion request (so a
usable title exists the moment a content id is returned) and again in the
background processor once the full text is available.

Both chains are ordered tuples of small strategy functions evaluated
first-match-wins. Later strategies are deliberately weaker fallbacks for
documents with weaker signals, so order matters:

    TITLE_STRATEGIES    research paper → connective caps → numbered →
                        best caps → title before sub-section → chapter marker →
                        longest caps → title case → first plain line
    CHAPTER_STRATEGIES  numbered line → "Chapter N: name" → sub-section
                        look-back → chapter marker look-ahead

Every strategy skips lines on the denylists below (generic subject names,
section markers, story nouns, Roman numerals), with or without a leading
ordinal prefix.

Example:
    >>> extract_chapter("MATHEMATICS\\n1 A SQUARE AND A CUBE\\n")
    ChapterInfo(number=1, label='A SQUARE AND A CUBE')
    >>> is_common_word("1. Introduction")
    True
"""

import re
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from app.core.config import settings


# ========================================
# Denylists
# ========================================

GENERIC_SUBJECTS = frozenset({
    "MATHEMATICS", "MATH", "MATHS", "SCIENCE", "PHYSICS", "CHEMISTRY",
    "BIOLOGY", "ENGLISH", "HINDI", "SOCIAL SCIENCE", "HISTORY", "GEOGRAPHY",
    "ECONOMICS", "POLITICAL SCIENCE", "CIVICS", "COMPUTER SCIENCE",
    "INFORMATION TECHNOLOGY", "NCERT", "CBSE", "ICSE", "TEXTBOOK",
})

COMMON_WORDS = frozenset({
    # Section headings
    "INTRODUCTION", "I. INTRODUCTION", "I INTRODUCTION", "1. INTRODUCTION", "1 INTRODUCTION",
    "ABSTRACT", "METHODOLOGY", "METHODS", "MATERIALS AND METHODS",
    "RESULTS", "DISCUSSION", "RESULTS AND DISCUSSION",
    "CONCLUSION", "CONCLUSIONS", "CONCLUDING REMARKS",
    "REFERENCES", "BIBLIOGRAPHY", "ACKNOWLEDGMENTS", "ACKNOWLEDGEMENTS",
    "APPENDIX", "APPENDICES", "SUPPLEMENTARY", "SUPPLEMENTARY MATERIALS",
    # Chapter/section markers
    "CHAPTER", "SECTION", "UNIT", "PART", "PAGE",
    "CONTENTS", "TABLE OF CONTENTS", "INDEX", "GLOSSARY",
    "EXERCISE", "EXERCISES", "PROBLEMS", "SOLUTIONS", "ANSWERS",
    "NOTES", "SUMMARY", "REVIEW", "TEST", "QUIZ",
    # Story nouns that show up in large type but are not titles
    "LOCKERS", "LOCKER", "PERSON", "PEOPLE", "NUMBER", "NUMBERS",
    "QUEEN", "KING", "MINISTER", "PUZZLE", "PROBLEM", "ANSWER",
    "FORTUNE", "STONE", "STONES", "RELATIVES", "INHERITANCE",
    # Roman numerals
    "I", "II", "III", "IV", "V", "VI", "VII", "VIII", "IX", "X",
})

# Placeholders written when no real title is known yet. A title in this set
# may always be replaced; a title outside it may never be replaced by one.
GENERIC_TITLES = frozenset({
    "CONTENT", "PROCESSING…", "PROCESSING...", "PROCESSING",
    "PDF DOCUMENT", "UNTITLED CONTENT", "YOUTUBE VIDEO", "TEXT CONTENT",
})

# Words that, when they end up as a visible title, mean extraction latched
# onto a heading or story noun; clients keep polling / reclassify on these.
SUSPICIOUS_TITLES = frozenset({
    "INTRODUCTION", "I. INTRODUCTION", "I INTRODUCTION", "1. INTRODUCTION", "1 INTRODUCTION",
    "ABSTRACT", "METHODOLOGY", "METHODS", "RESULTS", "DISCUSSION", "CONCLUSION", "CONCLUSIONS",
    "REFERENCES", "BIBLIOGRAPHY", "ACKNOWLEDGMENTS", "ACKNOWLEDGEMENTS",
    "CHAPTER", "SECTION", "UNIT", "PART",
    "LOCKERS", "LOCKER", "PERSON", "PEOPLE", "NUMBER", "NUMBERS",
    "QUEEN", "KING", "MINISTER", "PUZZLE", "PROBLEM", "ANSWER",
    "EXERCISE", "EXERCISES", "PROBLEMS", "SOLUTIONS", "ANSWERS",
})

PROCESSING_PLACEHOLDER = "Processing…"
TEXT_PLACEHOLDER = "Text Content"
YOUTUBE_PLACEHOLDER = "YouTube Video"
PDF_PLACEHOLDER = "PDF Document"


# ========================================
# Patterns
# ========================================

_ORDINAL_PREFIX_RE = re.compile(r"^(?:I{1,3}|IV|VI{0,3}|IX|X{1,3}|\d+)(?:\.\s*|\s+)", re.IGNORECASE)
_ROMAN_HEADING_RE = re.compile(r"^(?:I{1,3}|IV|VI{0,3}|IX|X{1,3})\.?\s+")
_NUMERIC_HEADING_RE = re.compile(r"^\d+\.?\d*\.?\s+")
_CHAPTER_PREFIX_RE = re.compile(r"^chapter\s+\d+\s*[—–\-:]*\s*", re.IGNORECASE)
_CHAPTER_MARKER_RE = re.compile(r"chapter\s+(\d+)", re.IGNORECASE)
_GRADE_RE = re.compile(r"\b(?:grade|class)\s+(\d{1,2})\b", re.IGNORECASE)
_FILE_EXTENSION_RE = re.compile(r"\.(?:pmd|pdf)$", re.IGNORECASE)

_AFFILIATION_RE = re.compile(r"@|university|institute|department|college", re.IGNORECASE)
_CONNECTIVE_RE = re.compile(r"\b(?:AND|OR|OF|THE|A|AN|FOR|USING|WITH)\b", re.IGNORECASE)
_BETTER_TITLE_CONNECTIVE_RE = re.compile(r"\b(?:AND|OR|OF|THE|A)\b", re.IGNORECASE)
_ABSTRACT_RE = re.compile(r"^abstract", re.IGNORECASE)
_INTRODUCTION_RE = re.compile(r"^(?:I\.?\s+)?INTRODUCTION$", re.IGNORECASE)
_CAPITALIZED_WORD_RE = re.compile(r"^[A-Z]")

_NUMBER_BEFORE_TITLE_RE = re.compile(r"^(\d+)\s+([A-Z][A-Za-z\s]{5,})$")
_NUMBER_AFTER_TITLE_RE = re.compile(r"^([A-Z][A-Za-z\s]{5,})\s+(\d+)$")
_SUBSECTION_TITLE_RE = re.compile(r"(\d+\.\d+)[ \t]+([A-Z][a-z]+(?:[ \t]+[A-Za-z]+)*)")

_CHAPTER_AFTER_NUMBER_RE = re.compile(r"^([A-Z][A-Za-z\s]+?)\s+(\d+)$")
_CHAPTER_BEFORE_NUMBER_RE = re.compile(r"^(\d+)\.?\s+([A-Z][A-Za-z\s]+)$")
_CHAPTER_HEADING_PATTERNS = (
    re.compile(r"chapter\s+(\d+)\s*[—–\-:]\s*([^\n\r]+)", re.IGNORECASE),
    re.compile(r"chapter\s+(\d+)[ \t]+([^\n\r]+)", re.IGNORECASE),
)
_SUBSECTION_NUMBER_RE = re.compile(r"(\d+)\.(\d+)[ \t]+([A-Z][a-z]+)")

_SMALL_WORDS = frozenset({"a", "an", "and", "as", "at", "but", "by", "for", "in", "of", "on", "or", "the", "to", "with"})


# ========================================
# Result Types
# ========================================

@dataclass(frozen=True)
class TitleCandidate:
    """A proposed title and the strategy that produced it."""

    title: str
    strategy: str
    chapter_number: Optional[int] = None


@dataclass(frozen=True)
class ChapterInfo:
    number: Optional[int] = None
    label: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.number is not None and bool(self.label)


@dataclass(frozen=True)
class ExtractedMetadata:
    """Everything the quick pass derives from a block of text."""

    title: Optional[str]
    chapter: Optional[str]
    chapter_number: Optional[int]
    grade: Optional[int]


# ========================================
# Predicates & Normalizers
# ========================================

def _normalize(text: str) -> str:
    return re.sub(r"\s+", " ", text.strip()).upper()


def strip_ordinal_prefix(text: str) -> str:
    """Remove a leading Roman numeral or decimal ordinal ("IV. ", "2 ")."""
    return _ORDINAL_PREFIX_RE.sub("", text.strip(), count=1)


def is_common_word(text: Optional[str]) -> bool:
    """True for denylisted words, with or without an ordinal prefix."""
    if not text:
        return False
    normalized = _normalize(text)
    if normalized in COMMON_WORDS:
        return True
    return _normalize(strip_ordinal_prefix(normalized)) in COMMON_WORDS


def is_generic_subject(text: Optional[str]) -> bool:
    if not text:
        return False
    return _normalize(text) in GENERIC_SUBJECTS


def is_section_heading(text: str) -> bool:
    """
    True for lines shaped like a section heading rather than a title:
    "II. Methods", "2.1 Background", "3 Results", or a bare common word.
    """
    stripped = text.strip()
    if _ROMAN_HEADING_RE.match(stripped):
        return True
    if _NUMERIC_HEADING_RE.match(stripped):
        return True
    return is_common_word(stripped)


def is_generic_title(title: Optional[str]) -> bool:
    """True for missing titles and the known placeholder set."""
    if not title or not title.strip():
        return True
    return _normalize(title) in GENERIC_TITLES


def is_suspicious_title(title: Optional[str]) -> bool:
    """True when a visible title is a heading or story noun, not a real title."""
    if not title or not title.strip():
        return False
    normalized = _normalize(title)
    if normalized in SUSPICIOUS_TITLES:
        return True
    return _normalize(strip_ordinal_prefix(normalized)) in SUSPICIOUS_TITLES


def strip_chapter_prefix(title: str) -> str:
    """ "Chapter 9 — Gravitation" → "Gravitation" """
    return _CHAPTER_PREFIX_RE.sub("", title.strip(), count=1).strip()


def clean_title(candidate: Optional[str]) -> Optional[str]:
    """
    Turn a path-like candidate into a title instead of rejecting it:
    keep the tail after the last separator and drop a .pdf/.pmd extension.
    """
    if candidate is None:
        return None
    tail = re.split(r"[/\\]", candidate.strip())[-1]
    cleaned = _FILE_EXTENSION_RE.sub("", tail).strip()
    return cleaned or None


def title_case(text: str) -> str:
    """
    "A SQUARE AND A CUBE" → "A Square and a Cube"

    Small connective words stay lowercase except in first position.
    """
    words = text.split()
    result = []
    for index, word in enumerate(words):
        lower = word.lower()
        if index > 0 and lower in _SMALL_WORDS:
            result.append(lower)
        else:
            result.append(lower[:1].upper() + lower[1:])
    return " ".join(result)


def uppercase_ratio(text: str) -> float:
    """Share of ASCII letters that are uppercase (0.0 when there are none)."""
    upper = len(re.findall(r"[A-Z]", text))
    letters = len(re.findall(r"[A-Za-z]", text))
    if letters == 0:
        return 0.0
    return upper / letters


def split_lines(text: str) -> list[str]:
    return [line.strip() for line in re.split(r"\r?\n", text) if line.strip()]


def _is_rejected(line: str) -> bool:
    return is_section_heading(line) or is_generic_subject(line) or is_common_word(line)


def _capitalized_words(words: Sequence[str]) -> int:
    return sum(1 for word in words if _CAPITALIZED_WORD_RE.match(word))


def _is_better_title(new_title: str, current: Optional[str]) -> bool:
    if not current:
        return True
    new_words = len(new_title.split())
    if new_words > len(current.split()) and new_words >= 3:
        return True
    return bool(_BETTER_TITLE_CONNECTIVE_RE.search(new_title)) and new_words >= 3


def _first_index(lines: Sequence[str], pattern: re.Pattern) -> Optional[int]:
    for index, line in enumerate(lines):
        if pattern.search(line):
            return index
    return None


# ========================================
# Title Strategies
# ========================================
# Each strategy: (lines, text) -> TitleCandidate | None

def research_paper_title(lines: Sequence[str], text: str) -> Optional[TitleCandidate]:
    """Long Title Case line before the Abstract/Introduction marker."""
    abstract_index = _first_index(lines, _ABSTRACT_RE)
    intro_index = _first_index(lines, _INTRODUCTION_RE)
    search_limit = min(
        abstract_index if abstract_index else 15,
        intro_index if intro_index else 15,
        20,
    )

    best: Optional[str] = None
    for line in lines[:search_limit]:
        if len(line) < 15 or _is_rejected(line):
            continue
        if _AFFILIATION_RE.search(line):
            continue

        words = line.split()
        if len(words) < 3:
            continue

        if len(words) >= 5 and len(line) >= 30:
            if _capitalized_words(words) >= len(words) * 0.5:
                return TitleCandidate(line, "research_paper_title")

        has_upper = re.search(r"[A-Z]", line) is not None
        has_lower = re.search(r"[a-z]", line) is not None
        if len(line) >= 40 and has_upper and has_lower and _is_better_title(line, best):
            best = line

    if best and len(best) >= 30:
        return TitleCandidate(best, "research_paper_title")
    return None


def _caps_title_lines(lines: Sequence[str]) -> list[str]:
    found = []
    for line in lines[:20]:
        if is_section_heading(line):
            continue
        words = line.split()
        if not (3 <= len(words) <= 12 and 10 <= len(line) <= 150):
            continue
        if uppercase_ratio(line) < 0.8:
            continue
        if is_generic_subject(line) or is_common_word(line):
            continue
        found.append(line)
    return found


def connective_caps_title(lines: Sequence[str], text: str) -> Optional[TitleCandidate]:
    """ "A SQUARE AND A CUBE", "WORK AND ENERGY" """
    for line in _caps_title_lines(lines):
        if _CONNECTIVE_RE.search(line):
            return TitleCandidate(line, "connective_caps_title")
    return None


def numbered_title(lines: Sequence[str], text: str) -> Optional[TitleCandidate]:
    """ "2 POLYNOMIALS" or "POLYNOMIALS 2" """
    for line in lines[:15]:
        before = _NUMBER_BEFORE_TITLE_RE.match(line)
        if before:
            number, title = int(before.group(1)), before.group(2).strip()
        else:
            after = _NUMBER_AFTER_TITLE_RE.match(line)
            if not after:
                continue
            title, number = after.group(1).strip(), int(after.group(2))

        if len(title) >= 8 and not _is_rejected(title):
            return TitleCandidate(title, "numbered_title", chapter_number=number)
    return None


def best_caps_title(lines: Sequence[str], text: str) -> Optional[TitleCandidate]:
    best: Optional[str] = None
    for line in _caps_title_lines(lines):
        if _is_better_title(line, best):
            best = line
    if best and len(best.split()) >= 3:
        return TitleCandidate(best, "best_caps_title")
    return None


def title_before_subsection(lines: Sequence[str], text: str) -> Optional[TitleCandidate]:
    """Uppercase line a few lines above the first "2.1 Heading"."""
    match = _SUBSECTION_TITLE_RE.search(text)
    if not match:
        return None

    section_index = next(
        (i for i, line in enumerate(lines) if match.group(0) in line),
        None,
    )
    if not section_index:
        return None

    for i in range(section_index - 1, max(0, section_index - 5) - 1, -1):
        line = lines[i]
        if not 8 <= len(line) <= 80 or is_section_heading(line):
            continue
        if uppercase_ratio(line) >= 0.7 and not is_generic_subject(line) and not is_common_word(line):
            return TitleCandidate(line, "title_before_subsection")
    return None


def chapter_marker_title(lines: Sequence[str], text: str) -> Optional[TitleCandidate]:
    for line in lines:
        if 10 < len(line) < 200 and _CHAPTER_MARKER_RE.search(line) and not is_section_heading(line):
            return TitleCandidate(line, "chapter_marker_title")
    return None


def longest_caps_title(lines: Sequence[str], text: str) -> Optional[TitleCandidate]:
    caps_lines = [
        line for line in lines
        if 6 <= len(line) <= 100
        and not _is_rejected(line)
        and uppercase_ratio(line) >= 0.7
    ]
    if not caps_lines:
        return None
    longest = sorted(caps_lines, key=len, reverse=True)[0]
    if len(longest.split()) >= 2:
        return TitleCandidate(longest, "longest_caps_title")
    return None


def title_case_title(lines: Sequence[str], text: str) -> Optional[TitleCandidate]:
    for line in lines:
        if not 8 <= len(line) <= 100 or _is_rejected(line):
            continue
        words = line.split()
        if not 2 <= len(words) <= 12:
            continue
        capitalized = _capitalized_words(words)
        if capitalized >= 2 and capitalized / len(words) >= 0.5:
            return TitleCandidate(line, "title_case_title")
    return None


def first_plain_line(lines: Sequence[str], text: str) -> Optional[TitleCandidate]:
    for line in lines:
        if 6 < len(line) < 100 and not _is_rejected(line):
            return TitleCandidate(line, "first_plain_line")
    return None


TitleStrategy = Callable[[Sequence[str], str], Optional[TitleCandidate]]

TITLE_STRATEGIES: tuple[TitleStrategy, ...] = (
    research_paper_title,
    connective_caps_title,
    numbered_title,
    best_caps_title,
    title_before_subsection,
    chapter_marker_title,
    longest_caps_title,
    title_case_title,
    first_plain_line,
)


# ========================================
# Chapter Strategies
# ========================================
# Each strategy: (lines, text) -> ChapterInfo | None

def _is_rejected_chapter(label: str) -> bool:
    return is_generic_subject(label) or is_common_word(label)


def numbered_chapter_line(lines: Sequence[str], text: str) -> Optional[ChapterInfo]:
    """ "POLYNOMIALS 2", "2 POLYNOMIALS", "2. POLYNOMIALS" """
    for line in lines:
        after = _CHAPTER_AFTER_NUMBER_RE.match(line)
        if after:
            label = after.group(1).strip()
            if len(label) >= 4 and not _is_rejected_chapter(label):
                return ChapterInfo(int(after.group(2)), label)

        before = _CHAPTER_BEFORE_NUMBER_RE.match(line)
        if before:
            label = before.group(2).strip()
            if len(label) >= 4 and not _is_rejected_chapter(label):
                return ChapterInfo(int(before.group(1)), label)
    return None


def chapter_heading(lines: Sequence[str], text: str) -> Optional[ChapterInfo]:
    """ "Chapter 9 — The Amazing World of Solutes" """
    for pattern in _CHAPTER_HEADING_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        label = re.sub(r"\s+", " ", match.group(2).strip())[:150].strip()
        if len(label) > 3 and not _is_rejected_chapter(label):
            return ChapterInfo(int(match.group(1)), label)
    return None


def chapter_before_subsection(lines: Sequence[str], text: str) -> Optional[ChapterInfo]:
    match = _SUBSECTION_NUMBER_RE.search(text)
    if not match:
        return None

    section_index = next(
        (i for i, line in enumerate(lines) if match.group(0) in line),
        None,
    )
    if not section_index:
        return None

    for i in range(section_index - 1, max(0, section_index - 8) - 1, -1):
        line = lines[i]
        if 4 <= len(line) <= 60 and uppercase_ratio(line) >= 0.7 and not _is_rejected_chapter(line):
            return ChapterInfo(int(match.group(1)), line)
    return None


def chapter_after_marker(lines: Sequence[str], text: str) -> Optional[ChapterInfo]:
    """ "Chapter 3" on its own line, title on one of the next five lines. """
    marker_index = _first_index(lines, _CHAPTER_MARKER_RE)
    if marker_index is None:
        return None
    number = int(_CHAPTER_MARKER_RE.search(lines[marker_index]).group(1))

    for line in lines[marker_index + 1:marker_index + 6]:
        if not 4 <= len(line) <= 100 or _is_rejected_chapter(line):
            continue
        letters = len(re.findall(r"[A-Za-z]", line))
        if letters == 0:
            continue

        words = line.split()
        ratio = uppercase_ratio(line)
        if ratio >= 0.7 and (letters >= 4 if len(words) == 1 else letters >= 5):
            return ChapterInfo(number, line)

        if 2 <= len(words) <= 8:
            capitalized = _capitalized_words(words)
            if capitalized >= 2 and capitalized / len(words) >= 0.5:
                return ChapterInfo(number, line)
    return None


ChapterStrategy = Callable[[Sequence[str], str], Optional[ChapterInfo]]

CHAPTER_STRATEGIES: tuple[ChapterStrategy, ...] = (
    numbered_chapter_line,
    chapter_heading,
    chapter_before_subsection,
    chapter_after_marker,
)


# ========================================
# Public API
# ========================================

def find_title_candidate(text: str) -> Optional[TitleCandidate]:
    """Run the title chain and return the winning candidate, cleaned."""
    if not text:
        return None
    bounded = text[:settings.HEADING_SCAN_CHARS]
    lines = split_lines(bounded)

    for strategy in TITLE_STRATEGIES:
        candidate = strategy(lines, bounded)
        if candidate is None:
            continue
        cleaned = clean_title(candidate.title)
        if cleaned:
            return TitleCandidate(cleaned, candidate.strategy, candidate.chapter_number)
    return None


def extract_title(text: str) -> Optional[str]:
    candidate = find_title_candidate(text)
    return candidate.title if candidate else None


def extract_chapter(text: str) -> ChapterInfo:
    if not text:
        return ChapterInfo()
    bounded = text[:settings.CHAPTER_SCAN_CHARS]
    lines = split_lines(bounded)

    for strategy in CHAPTER_STRATEGIES:
        info = strategy(lines, bounded)
        if info is not None:
            return info
    return ChapterInfo()


def extract_grade(text: str) -> Optional[int]:
    if not text:
        return None
    match = _GRADE_RE.search(text)
    return int(match.group(1)) if match else None


def analyze_text(
    text: str,
    info_title: Optional[str] = None,
    filename: Optional[str] = None,
) -> ExtractedMetadata:
    """
    Quick metadata pass over the head of a document.

    Title precedence:
    1. Title-cased chapter label when a chapter number and label were found
    2. Heading from the title chain (chapter prefix stripped)
    3. Upstream document info Title
    4. File name without extension
    """
    head = (text or "")[:settings.QUICK_EXTRACT_CHARS]
    chapter = extract_chapter(head)
    grade = extract_grade(head)

    title: Optional[str] = None
    if chapter.found:
        title = title_case(strip_chapter_prefix(chapter.label))

    if not title:
        heading = clean_title(extract_title(head))
        if heading and not is_common_word(heading):
            title = strip_chapter_prefix(heading) or None

    if not title and info_title:
        cleaned = clean_title(info_title)
        if cleaned and not is_common_word(cleaned) and not is_generic_title(cleaned):
            title = cleaned

    if not title and filename:
        title = clean_title(re.sub(r"\.[^.\\/]+$", "", filename))

    return ExtractedMetadata(
        title=title,
        chapter=chapter.label,
        chapter_number=chapter.number,
        grade=grade,
    )


def quick_title(
    text: str,
    info_title: Optional[str] = None,
    filename: Optional[str] = None,
) -> Optional[str]:
    return analyze_text(text, info_title=info_title, filename=filename).title
