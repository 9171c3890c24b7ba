from __future__ import annotations

from collections import deque

from sketchboard.core.settings import settings
from sketchboard.records import HistoryEntry


class HistoryWindow:
    """Bounded record of composed panels used for continuity text.

    The window keeps up to ``retain`` entries but only the most recent
    ``render_depth`` of them are rendered. Rendered text never exceeds
    ``budget`` characters; overflow is cut from the end and marked.
    """

    def __init__(
        self,
        budget: int | None = None,
        render_depth: int | None = None,
        marker: str | None = None,
        retain: int = 50,
    ) -> None:
        self.budget = settings.history_budget_chars if budget is None else budget
        self.render_depth = settings.history_render_depth if render_depth is None else render_depth
        self.marker = settings.history_truncation_marker if marker is None else marker
        if self.render_depth < 1:
            raise ValueError("render_depth must be at least 1")
        if retain < self.render_depth:
            raise ValueError("retain must be at least render_depth")
        if self.budget <= len(self.marker):
            raise ValueError("budget must be longer than the truncation marker")
        self._entries: deque[HistoryEntry] = deque(maxlen=retain)

    def append(self, entry: HistoryEntry) -> None:
        self._entries.append(entry)

    @property
    def entries(self) -> tuple[HistoryEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def render_context(self, subject_name: str | None = None) -> str:
        """Continuity text for the next panel, or "" when nothing was composed yet."""
        if not self._entries:
            return ""
        recent = list(self._entries)[-self.render_depth :]
        if len(recent) == 1:
            text = _describe(recent[0], "The previous panel showed")
        else:
            text = " ".join(_describe(entry, f"Panel {entry.panel_number} showed") for entry in recent)
        if subject_name:
            text = f"{text} Keep {subject_name.strip()} consistent with that panel."
        return self._truncate(text)

    def _truncate(self, text: str) -> str:
        if len(text) <= self.budget:
            return text
        return text[: self.budget - len(self.marker)] + self.marker


def _describe(entry: HistoryEntry, lead: str) -> str:
    action = entry.action.strip().rstrip(".")
    sentence = f"{lead} {action}."
    if entry.subject_summary and entry.subject_summary.strip():
        summary = entry.subject_summary.strip().rstrip(".")
        sentence = f"{sentence} {summary}."
    return sentence
