"""
Multi-panel prompt generation.

Panels are composed strictly in order: the continuity text for panel n+1 is
rendered from the history entry appended after panel n. Image generation
for the finished prompts may run concurrently afterwards
(see ``sketchboard.services.images``).
"""

from __future__ import annotations

import logging
import uuid
from typing import Iterable

from sketchboard.config.loaders import PromptGrammar, get_grammar
from sketchboard.core.exceptions import CompositionBudgetExceeded, PrimaryComposerUnavailable
from sketchboard.core.metrics import record_composition, record_fallback_use
from sketchboard.core.request_context import log_context
from sketchboard.core.settings import settings
from sketchboard.prompting.assemble import assemble
from sketchboard.prompting.builders import attribute_clauses
from sketchboard.prompting.compose import compose
from sketchboard.prompting.fallback import compose_fallback
from sketchboard.prompting.history import HistoryWindow
from sketchboard.records import Character, HistoryEntry, PanelBeat, PanelPrompt, PromptSection
from sketchboard.services.describers import PromptRefiner

logger = logging.getLogger(__name__)

_SUMMARY_CLAUSES = 2


def summarize_subjects(characters: Iterable[Character]) -> str | None:
    """Short "Name: clause, clause" summary stored with each history entry."""
    parts = []
    for character in characters:
        clauses = attribute_clauses(character.attributes)[:_SUMMARY_CLAUSES]
        parts.append(f"{character.name}: {', '.join(clauses)}" if clauses else character.name)
    return "; ".join(parts) or None


class StoryboardSession:
    """Owns the history window for one multi-panel generation run."""

    def __init__(
        self,
        grammar: PromptGrammar | str | None = None,
        *,
        refiner: PromptRefiner | None = None,
        history: HistoryWindow | None = None,
        session_id: str | None = None,
    ) -> None:
        if grammar is None or isinstance(grammar, str):
            grammar = get_grammar(grammar or settings.default_grammar)
        self.grammar = grammar
        self.refiner = refiner
        self.history = history if history is not None else HistoryWindow()
        self.session_id = session_id or uuid.uuid4().hex
        self.prompts: list[PanelPrompt] = []

    @property
    def last_panel_number(self) -> int:
        return self.prompts[-1].panel_number if self.prompts else 0

    def _refine(self, sections: list[PromptSection], draft: str) -> str | None:
        if self.refiner is None:
            return None
        try:
            refined = self.refiner.refine(sections, draft, self.grammar)
        except PrimaryComposerUnavailable as exc:
            logger.warning("refiner_unavailable grammar=%s error=%s", self.grammar.id, exc)
            return None
        refined = (refined or "").strip()
        if not refined:
            logger.warning("refined_prompt_rejected grammar=%s reason=empty", self.grammar.id)
            return None
        if self.grammar.measure(refined) > self.grammar.max_budget:
            logger.warning(
                "refined_prompt_rejected grammar=%s reason=over_budget size=%s budget=%s",
                self.grammar.id,
                self.grammar.measure(refined),
                self.grammar.max_budget,
            )
            return None
        if self.grammar.style_literal not in refined:
            logger.warning("refined_prompt_rejected grammar=%s reason=style_literal_changed", self.grammar.id)
            return None
        denied = self.grammar.vocabulary.denied_terms_in(refined)
        if denied:
            logger.warning(
                "refined_prompt_rejected grammar=%s reason=denied_terms terms=%s",
                self.grammar.id,
                ",".join(denied),
            )
            return None
        return refined

    def compose_panel(self, beat: PanelBeat) -> PanelPrompt:
        """Compose one panel's prompt and record it in the history window.

        Raises:
            ValueError: If ``beat`` does not come after the last composed panel.
        """
        if beat.panel_number <= self.last_panel_number:
            raise ValueError(
                f"panel {beat.panel_number} composed after panel {self.last_panel_number}; "
                "panels must be composed in order"
            )

        with log_context(session_id=self.session_id, panel_number=beat.panel_number, grammar_id=self.grammar.id):
            sections = compose(
                beat.characters,
                beat.location,
                beat.action,
                beat.camera,
                self.history,
                self.grammar,
                mood=beat.mood,
                lighting=beat.lighting,
            )
            source = "primary"
            try:
                prompt = assemble(sections, self.grammar)
            except CompositionBudgetExceeded as exc:
                logger.warning(
                    "fallback_composer_used reason=budget size=%s budget=%s",
                    exc.size,
                    exc.budget,
                )
                record_fallback_use("budget")
                prompt = compose_fallback(
                    beat.characters,
                    beat.location,
                    beat.action,
                    self.grammar,
                    camera=beat.camera,
                )
                source = "fallback"
            else:
                refined = self._refine(sections, prompt)
                if refined is not None:
                    prompt, source = refined, "refined"

            self.history.append(
                HistoryEntry(
                    panel_number=beat.panel_number,
                    action=beat.action,
                    subject_summary=summarize_subjects(beat.characters),
                )
            )
            record_composition(self.grammar.id, source)
            logger.info("panel_composed source=%s size=%s", source, self.grammar.measure(prompt))

        panel_prompt = PanelPrompt(
            panel_number=beat.panel_number,
            grammar=self.grammar.id,
            prompt=prompt,
            source=source,
        )
        self.prompts.append(panel_prompt)
        return panel_prompt

    def compose_all(self, beats: Iterable[PanelBeat]) -> list[PanelPrompt]:
        """Compose panels one after another, in the order given."""
        return [self.compose_panel(beat) for beat in beats]
