"""
Fallback composition used when the primary path fails.

Uses the same clause builders as ``compose`` but keeps only the first few
clauses per subject, the location's name and the literal action. It never
raises and always returns a non-empty prompt.
"""

from __future__ import annotations

import logging
from typing import Sequence

from sketchboard.config.loaders import PromptGrammar
from sketchboard.prompting.assemble import prepare_sections, render_sections
from sketchboard.prompting.builders import camera_clauses
from sketchboard.prompting.compose import build_fixed_sections, build_subject_sections, make_section
from sketchboard.records import CameraSpec, Character, Location, PromptSection, SectionKind

logger = logging.getLogger(__name__)

ELLIPSIS = "..."


def _sections(
    subjects: Sequence[Character],
    location: Location | None,
    action: str,
    camera: CameraSpec | None,
    grammar: PromptGrammar,
    subject_clauses: int,
) -> list[PromptSection]:
    sections = build_subject_sections(subjects, max_clauses=subject_clauses)
    sections.append(make_section(SectionKind.ACTION, [action] if action else [], pinned=1))
    clauses = camera_clauses(camera)
    if clauses:
        sections.append(make_section(SectionKind.CAMERA, clauses))
    if location is not None:
        sections.append(make_section(SectionKind.LOCATION, [location.name.strip()], pinned=1))
    sections.extend(build_fixed_sections(grammar))
    return prepare_sections(sections, grammar)


def _clip_words(text: str, limit: int, unit: str) -> str:
    """Shorten ``text`` at a word boundary so it measures at most ``limit``."""
    words = text.split()
    if unit == "words":
        if len(words) <= limit:
            return text
        return " ".join(words[: max(limit, 1)]) + ELLIPSIS
    if len(text) <= limit:
        return text
    kept: list[str] = []
    size = len(ELLIPSIS)
    for word in words:
        extra = len(word) + (1 if kept else 0)
        if size + extra > limit:
            break
        kept.append(word)
        size += extra
    if not kept:
        return ELLIPSIS
    return " ".join(kept) + ELLIPSIS


def _trim_extras(
    subjects: Sequence[Character],
    location: Location | None,
    grammar: PromptGrammar,
) -> tuple[list[Character], Location | None]:
    """Drop trailing subjects, then the location, until an elided action fits."""
    kept = list(subjects)
    while len(kept) > 1 or location is not None:
        floor = render_sections(_sections(kept, location, ELLIPSIS, None, grammar, 1), grammar)
        if grammar.measure(floor) <= grammar.max_budget:
            break
        if len(kept) > 1:
            kept.pop()
        else:
            location = None
    return kept, location


def compose_fallback(
    subjects: Sequence[Character],
    location: Location | None,
    action: str,
    grammar: PromptGrammar,
    camera: CameraSpec | None = None,
) -> str:
    """Build a minimal prompt for ``grammar``.

    Steps down until the prompt fits: first few clauses per subject, then
    names only, then fewer subjects and no location name, and finally a
    clipped action. The result fits whenever the fixed literals, the first
    subject's name and an elided action do.
    """
    action = (action or "").strip()

    sections = _sections(subjects, location, action, camera, grammar, grammar.fallback_subject_clauses)
    text = render_sections(sections, grammar)
    if grammar.measure(text) <= grammar.max_budget:
        return text

    # Names only, no camera.
    sections = _sections(subjects, location, action, None, grammar, 1)
    text = render_sections(sections, grammar)
    if grammar.measure(text) <= grammar.max_budget or not action:
        return text

    kept, kept_location = _trim_extras(subjects, location, grammar)
    if len(kept) < len(subjects) or (location is not None and kept_location is None):
        logger.warning(
            "fallback_context_dropped grammar=%s subjects_dropped=%s location_dropped=%s",
            grammar.id,
            len(subjects) - len(kept),
            location is not None and kept_location is None,
        )
    sections = _sections(kept, kept_location, action, None, grammar, 1)
    text = render_sections(sections, grammar)
    if grammar.measure(text) <= grammar.max_budget:
        return text

    action = next((section.text for section in sections if section.kind is SectionKind.ACTION), action)
    overhead = grammar.measure(text) - grammar.measure(action)
    room = grammar.max_budget - overhead
    clipped = _clip_words(action, max(room, 1), grammar.budget_unit)
    sections = _sections(kept, kept_location, clipped, None, grammar, 1)
    text = render_sections(sections, grammar)
    logger.warning(
        "fallback_action_clipped grammar=%s original=%s clipped=%s",
        grammar.id,
        grammar.measure(action),
        grammar.measure(clipped),
    )
    return text
