"""
Section composition for one panel.

``compose`` turns records plus scene data into an ordered list of
PromptSection objects. It decides content and clause order only; layout,
vocabulary and budget belong to the assembler.
"""

from __future__ import annotations

from typing import Sequence

from sketchboard.config.loaders import PromptGrammar
from sketchboard.prompting.builders import (
    atmosphere_clauses,
    camera_clauses,
    location_clauses,
    subject_clauses,
)
from sketchboard.prompting.history import HistoryWindow
from sketchboard.records import CameraSpec, Character, Location, PromptSection, SectionKind


def make_section(kind: SectionKind, clauses: Sequence[str], pinned: int = 0) -> PromptSection:
    return PromptSection(kind=kind, clauses=tuple(clauses), pinned=min(pinned, len(clauses)))


def build_subject_sections(subjects: Sequence[Character], max_clauses: int | None = None) -> list[PromptSection]:
    sections = []
    for character in subjects:
        clauses = subject_clauses(character)
        if max_clauses is not None:
            clauses = clauses[:max_clauses]
        sections.append(make_section(SectionKind.SUBJECT, clauses, pinned=1))
    return sections


def build_fixed_sections(grammar: PromptGrammar) -> list[PromptSection]:
    sections = [make_section(SectionKind.STYLE, [grammar.style_literal], pinned=1)]
    if grammar.section_for(SectionKind.CONSTRAINTS) is not None and grammar.constraints_literal:
        sections.append(make_section(SectionKind.CONSTRAINTS, [grammar.constraints_literal], pinned=1))
    return sections


def compose(
    subjects: Sequence[Character],
    location: Location | None,
    action: str,
    camera: CameraSpec | None,
    history: HistoryWindow | None,
    grammar: PromptGrammar,
    *,
    mood: str | None = None,
    lighting: str | None = None,
) -> list[PromptSection]:
    """Compose the ordered sections for one panel under ``grammar``.

    Only section kinds the grammar maps are emitted. The continuity sentence
    names the first subject so the image model keeps that character stable.
    """
    sections: list[PromptSection] = []
    wanted = {kind for section in grammar.sections for kind in section.kinds}

    if SectionKind.SUBJECT in wanted:
        sections.extend(build_subject_sections(subjects))

    action_text = (action or "").strip()
    sections.append(make_section(SectionKind.ACTION, [action_text] if action_text else [], pinned=1))

    if SectionKind.CONTINUITY in wanted and history is not None:
        lead_name = subjects[0].name if subjects else None
        continuity = history.render_context(lead_name)
        if continuity:
            sections.append(make_section(SectionKind.CONTINUITY, [continuity]))

    if SectionKind.CAMERA in wanted:
        clauses = camera_clauses(camera)
        if clauses:
            sections.append(make_section(SectionKind.CAMERA, clauses))

    if SectionKind.LOCATION in wanted and location is not None:
        clauses, pinned = location_clauses(location)
        sections.append(make_section(SectionKind.LOCATION, clauses, pinned=pinned))

    if SectionKind.ATMOSPHERE in wanted:
        clauses = atmosphere_clauses(location, mood=mood, lighting=lighting)
        if clauses:
            sections.append(make_section(SectionKind.ATMOSPHERE, clauses))

    sections.extend(build_fixed_sections(grammar))
    return sections
