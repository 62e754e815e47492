"""
Rejection reason classification.

Reviewers reject annotations with free-text notes. The learner only counts
categories, so a classifier maps each note to one. Keyword matching is
fuzzy by nature; it sits behind the RejectionClassifier protocol so a
better classifier can replace it without touching the learner.
"""

from __future__ import annotations

import re
from typing import Protocol

OTHER = "other"

# Checked in order; the first category with a matching keyword wins
DEFAULT_KEYWORDS: dict[str, tuple[str, ...]] = {
    "incorrect_species": ("species", "wrong bird"),
    "incorrect_feature": ("feature", "part", "anatomy"),
    "poor_localization": ("position", "localization", "bounding box", "box"),
    "false_positive": ("false", "not found", "doesn't exist", "does not exist"),
    "duplicate": ("duplicate", "already exists"),
    "low_quality": ("quality", "blurry", "unclear"),
}

_EXPLICIT_CATEGORY = re.compile(r"^\s*\[([A-Za-z_]+)\]")


class RejectionClassifier(Protocol):
    """Maps a free-text rejection reason to a category name."""

    def classify(self, reason: str) -> str:
        ...


class KeywordRejectionClassifier:
    """
    Substring-matching classifier.

    An explicit ``[CATEGORY] notes`` prefix always wins over keywords.
    """

    def __init__(self, keywords: dict[str, tuple[str, ...]] | None = None, default: str = OTHER):
        self.keywords = keywords if keywords is not None else DEFAULT_KEYWORDS
        self.default = default

    def classify(self, reason: str) -> str:
        if not reason:
            return self.default

        match = _EXPLICIT_CATEGORY.match(reason)
        if match:
            return match.group(1).lower()

        lowered = reason.lower()
        for category, words in self.keywords.items():
            if any(word in lowered for word in words):
                return category
        return self.default
