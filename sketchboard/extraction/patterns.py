"""
Data-driven rule types for description parsing.

A rule table is an ordered tuple of rules; each rule owns one output field
and an ordered tuple of compiled patterns. Keeping the tables as data lets
tests exercise a single field's priority order in isolation.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from typing import Callable

# Characters that terminate a free-text value in the comma-separated
# descriptions the vision model is asked to produce.
VALUE = r"[^,.;|\n]+"

# Words that never start a descriptive phrase ("with short hair" -> "short hair").
_STOPWORDS = (
    "a", "an", "and", "the", "with", "has", "have", "having", "he", "she", "they",
    "his", "her", "their", "its", "is", "are", "of", "in", "on", "wearing",
)
_STOP = r"(?!(?:" + "|".join(_STOPWORDS) + r")\b)"


def words_before(noun: str, min_words: int = 0, max_words: int = 3) -> str:
    """Pattern capturing up to ``max_words`` descriptive words followed by ``noun``."""
    return rf"\b((?:{_STOP}[a-z][a-z'-]*\s+){{{min_words},{max_words}}}(?:{noun}))\b"


def labelled(label: str, value: str = VALUE) -> str:
    """Pattern for ``label: value`` fragments."""
    return rf"\b(?:{label})\s*:\s*({value})"


def compile_all(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(pattern, re.IGNORECASE) for pattern in patterns)


def clean_value(value: str) -> str:
    return re.sub(r"\s{2,}", " ", value).strip(" \t,.;:|-")


@dataclass(frozen=True)
class FieldRule:
    """Scalar field: the first pattern that yields a usable value wins."""

    field: str
    patterns: tuple[re.Pattern[str], ...]
    transform: Callable[[str], object | None] | None = None

    def apply(self, text: str) -> object | None:
        for pattern in self.patterns:
            match = pattern.search(text)
            if match is None:
                continue
            raw = match.group(1) if match.groups() else match.group(0)
            value = clean_value(raw or "")
            if not value:
                continue
            if self.transform is not None:
                transformed = self.transform(value)
                if transformed is None:
                    continue
                return transformed
            return value
        return None


@dataclass(frozen=True)
class ListRule:
    """Ordered list field: every match of every pattern, in declaration order."""

    field: str
    patterns: tuple[re.Pattern[str], ...]
    splitter: str | None = None

    def apply(self, text: str) -> list[str] | None:
        found: list[str] = []
        for pattern in self.patterns:
            for match in pattern.finditer(text):
                raw = match.group(1) if match.groups() else match.group(0)
                parts = raw.split(self.splitter) if self.splitter else [raw]
                found.extend(value for value in (clean_value(part) for part in parts) if value)
        return found or None


@dataclass(frozen=True)
class KeywordRule:
    """Label chosen by keyword presence; groups are checked in order.

    Hyphenated compounds are one word here: "man-made" does not contain "man".
    """

    field: str
    groups: tuple[tuple[str, tuple[str, ...]], ...]
    _compiled: tuple[tuple[str, re.Pattern[str]], ...] = dataclass_field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        compiled = tuple(
            (
                label,
                re.compile(
                    r"(?<![\w-])(?:" + "|".join(re.escape(k) for k in keywords) + r")(?![\w-])",
                    re.IGNORECASE,
                ),
            )
            for label, keywords in self.groups
        )
        object.__setattr__(self, "_compiled", compiled)

    def apply(self, text: str) -> str | None:
        for label, pattern in self._compiled:
            if pattern.search(text):
                return label
        return None


@dataclass(frozen=True)
class KeywordSetRule:
    """Set field: the canonical keywords present anywhere in the text."""

    field: str
    keywords: tuple[str, ...]

    def apply(self, text: str) -> frozenset[str] | None:
        lowered = text.lower()
        present = {
            keyword
            for keyword in self.keywords
            if re.search(rf"\b{re.escape(keyword)}(?:e?s)?\b", lowered)
        }
        return frozenset(present) or None


def apply_rules(rules, text: str) -> dict[str, object]:
    """Evaluate a rule table, returning only the fields that produced a value."""
    values: dict[str, object] = {}
    for rule in rules:
        value = rule.apply(text)
        if value is not None:
            values[rule.field] = value
    return values
