import contextvars
from contextlib import contextmanager

session_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("session_id", default=None)
panel_number_var: contextvars.ContextVar[int | None] = contextvars.ContextVar("panel_number", default=None)
grammar_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("grammar_id", default=None)


def get_session_id() -> str | None:
    """Retrieve the current storyboard session ID from the context."""
    return session_id_var.get()


def get_panel_number() -> int | None:
    """Retrieve the panel currently being composed."""
    return panel_number_var.get()


def get_grammar_id() -> str | None:
    return grammar_id_var.get()


@contextmanager
def log_context(
    session_id: str | None = None,
    panel_number: int | None = None,
    grammar_id: str | None = None,
):
    """Temporarily scope session/panel/grammar context for structured logs."""
    tokens: list[tuple[contextvars.ContextVar, contextvars.Token]] = []
    if session_id is not None:
        tokens.append((session_id_var, session_id_var.set(str(session_id))))
    if panel_number is not None:
        tokens.append((panel_number_var, panel_number_var.set(int(panel_number))))
    if grammar_id is not None:
        tokens.append((grammar_id_var, grammar_id_var.set(grammar_id)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)
