from __future__ import annotations

import logging
import re
from typing import Sequence

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from sketchboard.config.loaders import PromptGrammar
from sketchboard.core.exceptions import (
    ContentPolicyBlocked,
    PrimaryComposerUnavailable,
    TransientDescriptionError,
    UpstreamDescriptionFailed,
)
from sketchboard.core.metrics import track_collaborator_call
from sketchboard.prompts.loader import render_prompt
from sketchboard.records import PromptSection
from sketchboard.services.describers import SubjectType

logger = logging.getLogger(__name__)

_PROMPT_BY_SUBJECT = {
    "character": "prompt_describe_character",
    "location": "prompt_describe_location",
}


def classify_error(exc: Exception) -> tuple[str, bool]:
    """Classify error type and determine if retryable.

    Returns:
        Tuple of (error_type, is_retryable)
    """
    if isinstance(exc, (httpx.TimeoutException, TimeoutError)):
        return "timeout", True
    if isinstance(exc, httpx.TransportError):
        return "transport", True
    code = getattr(exc, "code", None) if isinstance(exc, genai_errors.APIError) else None
    error_text = str(exc)
    if code == 429 or "RESOURCE_EXHAUSTED" in error_text or "429" in error_text:
        return "rate_limit", True
    if "SAFETY" in error_text.upper() or "blocked" in error_text.lower():
        return "content_filter", False
    if "timeout" in error_text.lower() or "deadline" in error_text.lower():
        return "timeout", True
    if (code is not None and code >= 500) or "unavailable" in error_text.lower() or "503" in error_text:
        return "model_unavailable", True
    if code == 400 or "invalid" in error_text.lower() or "400" in error_text:
        return "invalid_request", False
    return "unknown", True


def _blocked_categories(candidate: object) -> list[str]:
    blocked = []
    for rating in getattr(candidate, "safety_ratings", None) or []:
        if getattr(rating, "blocked", False):
            blocked.append(str(getattr(rating, "category", "UNKNOWN")))
    return blocked


def check_response_safety(response: types.GenerateContentResponse, model_name: str) -> None:
    """Raise ContentPolicyBlocked if the prompt or the first candidate was blocked."""
    feedback = getattr(response, "prompt_feedback", None)
    block_reason = getattr(feedback, "block_reason", None) if feedback is not None else None
    if block_reason:
        raise ContentPolicyBlocked(f"Prompt blocked: {block_reason}", model=model_name)

    candidate = (response.candidates or [None])[0]
    if candidate is None:
        return
    finish_reason = getattr(candidate, "finish_reason", None)
    if finish_reason and "SAFETY" in str(finish_reason).upper():
        blocked = _blocked_categories(candidate)
        raise ContentPolicyBlocked(
            f"Content blocked by safety filters: {blocked}",
            model=model_name,
            blocked_categories=blocked,
        )


def extract_text(response: types.GenerateContentResponse) -> str:
    candidate = (response.candidates or [None])[0]
    if candidate is None or not candidate.content or not candidate.content.parts:
        return ""
    texts = [part.text for part in candidate.content.parts if part.text]
    return "\n".join(texts).strip()


def _strip_wrapping(text: str) -> str:
    text = re.sub(r"^```[a-z]*\s*|\s*```$", "", text.strip())
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
        text = text[1:-1]
    return text.strip()


class GeminiVisionDescriber:
    """VisionDescriber backed by a google-genai client owned by the caller."""

    def __init__(self, client: genai.Client, model: str, temperature: float = 0.3) -> None:
        self._client = client
        self._model = model
        self._temperature = temperature

    def _classified(self, exc: Exception) -> UpstreamDescriptionFailed:
        error_type, retryable = classify_error(exc)
        logger.warning(
            "gemini.describe failed model=%s type=%s error=%s",
            self._model,
            error_type,
            repr(exc),
        )
        if error_type == "content_filter":
            return ContentPolicyBlocked(str(exc), model=self._model)
        if retryable:
            return TransientDescriptionError(f"{error_type}: {exc}", model=self._model)
        return UpstreamDescriptionFailed(f"{error_type}: {exc}", model=self._model)

    def describe(
        self,
        image: bytes,
        mime_type: str,
        subject: SubjectType,
        hint: str | None = None,
    ) -> str:
        if subject == "character":
            instruction = render_prompt(_PROMPT_BY_SUBJECT[subject], subject_hint=hint)
        else:
            instruction = render_prompt(_PROMPT_BY_SUBJECT[subject], location_hint=hint)
        contents = [types.Part.from_bytes(data=image, mime_type=mime_type), instruction]

        with track_collaborator_call(f"describe_{subject}"):
            try:
                response = self._client.models.generate_content(
                    model=self._model,
                    contents=contents,
                    config=types.GenerateContentConfig(temperature=self._temperature),
                )
            except Exception as exc:  # noqa: BLE001
                raise self._classified(exc) from exc
            check_response_safety(response, self._model)
            text = extract_text(response)
            if not text:
                raise TransientDescriptionError("Gemini returned no textual content", model=self._model)

        logger.info("gemini.describe ok subject=%s model=%s chars=%s", subject, self._model, len(text))
        return text


class GeminiPromptRefiner:
    """PromptRefiner that asks a text model to tighten an assembled draft."""

    def __init__(self, client: genai.Client, model: str, temperature: float = 0.2) -> None:
        self._client = client
        self._model = model
        self._temperature = temperature

    def refine(self, sections: Sequence[PromptSection], draft: str, grammar: PromptGrammar) -> str:
        instruction = render_prompt(
            "prompt_refine_panel",
            grammar_id=grammar.id,
            layout=grammar.layout,
            budget=grammar.max_budget,
            budget_unit=grammar.budget_unit,
            draft=draft,
            style_literal=grammar.style_literal,
            constraints_literal=grammar.constraints_literal,
            deny_terms=grammar.vocabulary.deny,
            allow_terms=grammar.vocabulary.allow,
        )
        with track_collaborator_call("refine_prompt"):
            try:
                response = self._client.models.generate_content(
                    model=self._model,
                    contents=instruction,
                    config=types.GenerateContentConfig(temperature=self._temperature),
                )
                check_response_safety(response, self._model)
            except Exception as exc:  # noqa: BLE001
                error_type, _ = classify_error(exc)
                raise PrimaryComposerUnavailable(
                    f"Prompt refinement failed ({error_type}): {exc}",
                    detail="Using the directly assembled prompt",
                ) from exc
        text = _strip_wrapping(extract_text(response))
        if not text:
            raise PrimaryComposerUnavailable("Prompt refinement returned no text")
        logger.debug("gemini.refine ok model=%s sections=%s", self._model, len(sections))
        return text
