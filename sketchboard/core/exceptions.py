"""
Application-level exception types.

Extraction and the fallback composer never raise; everything that can fail
at the edges of the composition core is expressed with these types so
callers can branch on the class rather than on message text.
"""

from __future__ import annotations


class AppError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, *, detail: str | None = None) -> None:
        self.detail = detail or message
        super().__init__(message)


class ConfigurationError(AppError):
    """Raised when required configuration is missing or invalid."""


class CompositionBudgetExceeded(AppError):
    """Raised when mandatory prompt content cannot fit a grammar's budget."""

    def __init__(self, grammar_id: str, size: int, budget: int, unit: str) -> None:
        super().__init__(
            f"Mandatory content for grammar '{grammar_id}' measures {size} {unit}, budget is {budget}",
            detail="Prompt is too long for the selected format",
        )
        self.grammar_id = grammar_id
        self.size = size
        self.budget = budget
        self.unit = unit


class PrimaryComposerUnavailable(AppError):
    """Raised when the externally-assisted composition path cannot be used."""


class UpstreamDescriptionFailed(AppError):
    """Raised when the vision-description collaborator fails before any text exists."""

    retryable: bool = False

    def __init__(self, message: str, *, detail: str | None = None, model: str | None = None) -> None:
        super().__init__(message, detail=detail)
        self.model = model


class ContentPolicyBlocked(UpstreamDescriptionFailed):
    """The description request was refused; ask the user for manual field entry."""

    def __init__(
        self,
        message: str,
        *,
        model: str | None = None,
        blocked_categories: list[str] | None = None,
    ) -> None:
        super().__init__(
            message,
            detail=(
                "Image analysis blocked by content policy. Enter the details manually "
                "or try a different reference image."
            ),
            model=model,
        )
        self.blocked_categories = blocked_categories or []


class TransientDescriptionError(UpstreamDescriptionFailed):
    """Network, timeout or rate-limit failure; the caller may retry with backoff."""

    retryable = True
