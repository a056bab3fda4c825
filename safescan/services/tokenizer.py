"""
Ingredient text extraction and tokenization.

Turns raw OCR or pasted label text into an ordered, deduplicated list of
lowercase ingredient tokens. Nothing in this module raises: empty or
non-string input produces an empty result.
"""

import re
from typing import List

START_MARKERS = (
    "ingredients",
    "ingredient:",
    "ingredients:",
    "composition:",
)

STOP_MARKERS = (
    "refrigerate",
    "storage",
    "keep refrigerated",
    "after opening",
    "packed for",
    "distributed by",
    "manufactured",
    "net wt",
    "best by",
    "expiry",
    "exp",
    "warning",
    "caution",
    "directions",
    "how to use",
)

DEFAULT_SECTION_WINDOW = 1200
MIN_TOKEN_LENGTH = 2

# "composition" is a label only with a separator; "fragrance composition" is an ingredient.
_LEADING_LABEL_RE = re.compile(
    r"^\s*(?:ingr[eé]dients?\b\s*[:\-–]?|composition\s*[:\-–])\s*", re.IGNORECASE
)
_EDGE_PUNCT = ".():;\"'"
_BULLETS_RE = re.compile(r"[•·]")


def extract_ingredients_section(text: str, window: int = DEFAULT_SECTION_WINDOW) -> str:
    """Cut the ingredients section out of a full label.

    Returns the input unchanged when no start marker is present. Otherwise the
    section runs from the earliest start marker to the earliest stop marker
    after it, or at most ``window`` characters when no stop marker follows.
    """
    if not text or not isinstance(text, str):
        return ""

    lowered = text.lower()
    start_index = -1
    found_marker = ""
    for marker in START_MARKERS:
        idx = lowered.find(marker)
        if idx != -1 and (start_index == -1 or idx < start_index):
            start_index = idx
            found_marker = marker

    if start_index == -1:
        return text

    search_from = start_index + len(found_marker)
    stop_index = -1
    for marker in STOP_MARKERS:
        idx = lowered.find(marker, search_from)
        if idx != -1 and (stop_index == -1 or idx < stop_index):
            stop_index = idx

    end_index = stop_index if stop_index != -1 else start_index + window
    return text[start_index:end_index].strip()


def parse_ingredient_tokens(text: str) -> List[str]:
    """Split an ingredients section on commas and semicolons.

    Multi-word ingredients ("apple cider vinegar") stay intact.
    """
    if not text or not isinstance(text, str):
        return []

    cleaned = _LEADING_LABEL_RE.sub("", text)
    cleaned = re.sub(r"[\r\n]+", " ", cleaned)
    cleaned = cleaned.strip(".():;")
    cleaned = re.sub(r"\s+", " ", cleaned).strip()

    return _dedupe(_clean_part(part) for part in re.split(r"[,;]+", cleaned))


def normalize_ingredients(text: str) -> List[str]:
    """Looser tokenizer that also splits on pipes, newlines and bullets."""
    if not text or not isinstance(text, str):
        return []

    cleaned = text.replace("\r", "\n").replace("\t", " ")
    cleaned = _LEADING_LABEL_RE.sub("", cleaned).strip()
    parts = re.split(r"[,;|\n]+", cleaned)
    return _dedupe(_clean_part(_BULLETS_RE.sub(" ", part)) for part in parts)


def tokenize(raw_text: str, window: int = DEFAULT_SECTION_WINDOW) -> List[str]:
    return parse_ingredient_tokens(extract_ingredients_section(raw_text, window))


def _clean_part(part: str) -> str:
    part = re.sub(r"\s+", " ", part).strip()
    part = part.strip(_EDGE_PUNCT).strip()
    return part.lower()


def _dedupe(parts) -> List[str]:
    seen: set[str] = set()
    tokens: List[str] = []
    for part in parts:
        if len(part) < MIN_TOKEN_LENGTH or part in seen:
            continue
        seen.add(part)
        tokens.append(part)
    return tokens
