"""
Prompt assembly: sections -> final prompt string for one grammar.

Assembly is a pure function of its inputs. Steps:

1. Strip deny-listed vocabulary from composed (non-fixed) sections,
   leaving pinned names and place identities alone.
2. Apply each grammar section's clause cap.
3. Render (labeled blocks or a single prose paragraph).
4. While over budget, drop the trailing unpinned clause of the
   lowest-priority section and re-render. Fixed style/constraint literals
   are never touched. If only mandatory content remains and it still does
   not fit, raise CompositionBudgetExceeded.
"""

from __future__ import annotations

import logging
import re
from typing import Sequence

from sketchboard.config.loaders import FIXED_KINDS, GrammarSection, PromptGrammar
from sketchboard.core.exceptions import CompositionBudgetExceeded
from sketchboard.core.metrics import record_budget_trim, record_vocabulary_strips
from sketchboard.records import PromptSection, SectionKind

logger = logging.getLogger(__name__)

# Lowest priority first.
TRIM_ORDER = (
    SectionKind.CONTINUITY,
    SectionKind.ATMOSPHERE,
    SectionKind.CAMERA,
    SectionKind.LOCATION,
    SectionKind.SUBJECT,
    SectionKind.ACTION,
)

_TERMINAL = (".", "!", "?")


def strip_terms(text: str, terms: Sequence[str]) -> tuple[str, list[str]]:
    """Remove whole-word occurrences of ``terms``; return text and the terms removed."""
    if not text:
        return text, []
    cleaned = text
    removed: list[str] = []
    for term in terms:
        pattern = rf"(?i)\b{re.escape(term)}\b"
        if re.search(pattern, cleaned):
            removed.append(term)
            cleaned = re.sub(pattern, "", cleaned)
    if removed:
        cleaned = re.sub(r"[ \t]{2,}", " ", cleaned)
        cleaned = re.sub(r"\s+([,.;:])", r"\1", cleaned)
        cleaned = re.sub(r"([,;:])\s*(?=[,;:.]|$)", "", cleaned)
        cleaned = cleaned.strip(" ,;:")
    return cleaned, removed


def _apply_vocabulary(section: PromptSection, grammar: PromptGrammar) -> tuple[PromptSection, list[str]]:
    """Strip denied terms from one section.

    Pinned subject names and place identities are proper nouns and are never
    rewritten. A pinned action is filtered, but kept verbatim if filtering
    would leave it empty.
    """
    deny = grammar.vocabulary.deny
    if not deny or section.kind in FIXED_KINDS:
        return section, []
    clauses: list[str] = []
    pinned = 0
    removed: list[str] = []
    for index, clause in enumerate(section.clauses):
        is_pinned = index < section.pinned
        if is_pinned and section.kind is not SectionKind.ACTION:
            clauses.append(clause)
            pinned += 1
            continue
        cleaned, hits = strip_terms(clause, deny)
        if is_pinned and not cleaned:
            logger.warning("vocabulary_strip_skipped grammar=%s kind=action reason=would_empty", grammar.id)
            clauses.append(clause)
            pinned += 1
            continue
        removed.extend(hits)
        if not cleaned:
            continue
        clauses.append(cleaned)
        if index < section.pinned:
            pinned += 1
    if not removed:
        return section, []
    return section.model_copy(update={"clauses": tuple(clauses), "pinned": pinned}), removed


def _apply_cap(section: PromptSection, slot: GrammarSection | None) -> PromptSection:
    if slot is None or slot.max_clauses is None:
        return section
    limit = max(slot.max_clauses, section.pinned)
    if len(section.clauses) <= limit:
        return section
    return section.model_copy(update={"clauses": section.clauses[:limit]})


def prepare_sections(sections: Sequence[PromptSection], grammar: PromptGrammar) -> list[PromptSection]:
    """Vocabulary filtering and clause caps; drops kinds the grammar has no slot for."""
    prepared: list[PromptSection] = []
    all_removed: list[str] = []
    for section in sections:
        slot = grammar.section_for(section.kind)
        if slot is None:
            continue
        section, removed = _apply_vocabulary(section, grammar)
        all_removed.extend(removed)
        prepared.append(_apply_cap(section, slot))
    if all_removed:
        logger.warning(
            "vocabulary_stripped grammar=%s terms=%s",
            grammar.id,
            ",".join(sorted(set(all_removed))),
        )
        record_vocabulary_strips(grammar.id, all_removed)
    return prepared


def _join(fragments: Sequence[str], joiner: str) -> str:
    if not fragments:
        return ""
    text = fragments[0]
    for fragment in fragments[1:]:
        if joiner.startswith(".") and text.endswith(_TERMINAL):
            text = f"{text}{joiner[1:]}{fragment}"
        else:
            text = f"{text}{joiner}{fragment}"
    return text


def _sentence(text: str) -> str:
    text = text.strip()
    if not text:
        return text
    text = text[0].upper() + text[1:]
    return text if text.endswith(_TERMINAL) else f"{text}."


def _fragments(slot: GrammarSection, sections: Sequence[PromptSection]) -> list[str]:
    fragments: list[str] = []
    for kind in slot.kinds:
        fragments.extend(section.text for section in sections if section.kind is kind and not section.is_empty)
    return fragments


def _fixed_text(slot: GrammarSection, grammar: PromptGrammar) -> str:
    return " ".join(text for text in (grammar.fixed_text(kind) for kind in slot.kinds) if text)


def render_sections(sections: Sequence[PromptSection], grammar: PromptGrammar) -> str:
    """Lay sections out per the grammar without any budget handling."""
    if grammar.layout == "prose":
        sentences: list[str] = []
        for slot in grammar.sections:
            if slot.is_fixed:
                sentences.append(_sentence(_fixed_text(slot, grammar)))
                continue
            fragments = _fragments(slot, sections)
            if not fragments and slot.default_text:
                fragments = [slot.default_text]
            sentences.extend(_sentence(fragment) for fragment in fragments)
        return " ".join(sentence for sentence in sentences if sentence)

    blocks: list[str] = []
    for slot in grammar.sections:
        if slot.is_fixed:
            body = _fixed_text(slot, grammar)
        else:
            body = _join(_fragments(slot, sections), slot.joiner) or (slot.default_text or "")
        if body:
            blocks.append(f"{slot.label}: {body}")
    return "\n\n".join(blocks)


def _next_trim(sections: Sequence[PromptSection]) -> int | None:
    for kind in TRIM_ORDER:
        for index in range(len(sections) - 1, -1, -1):
            section = sections[index]
            if section.kind is kind and len(section.clauses) > section.pinned:
                return index
    return None


def assemble(sections: Sequence[PromptSection], grammar: PromptGrammar) -> str:
    """Assemble composed sections into the final prompt for ``grammar``.

    Raises:
        CompositionBudgetExceeded: If mandatory content alone exceeds the budget.
    """
    working = prepare_sections(sections, grammar)
    text = render_sections(working, grammar)
    trimmed: list[str] = []
    while grammar.measure(text) > grammar.max_budget:
        index = _next_trim(working)
        if index is None:
            size = grammar.measure(text)
            logger.warning(
                "composition_budget_exceeded grammar=%s size=%s budget=%s unit=%s",
                grammar.id,
                size,
                grammar.max_budget,
                grammar.budget_unit,
            )
            raise CompositionBudgetExceeded(grammar.id, size, grammar.max_budget, grammar.budget_unit)
        section = working[index]
        working[index] = section.model_copy(update={"clauses": section.clauses[:-1]})
        trimmed.append(section.kind.value)
        record_budget_trim(grammar.id, section.kind.value)
        text = render_sections(working, grammar)

    if trimmed:
        logger.warning(
            "budget_trimmed grammar=%s dropped_clauses=%s kinds=%s",
            grammar.id,
            len(trimmed),
            ",".join(sorted(set(trimmed))),
        )
    return text
