"""
Centralized Gemini client factory.

The composition core never builds clients itself; the surrounding application
calls these builders once and hands the resulting adapters to a session.
"""

from __future__ import annotations

from google import genai
from google.genai import types

from sketchboard.core.exceptions import ConfigurationError
from sketchboard.core.settings import settings
from sketchboard.services.gemini import GeminiPromptRefiner, GeminiVisionDescriber


class GeminiNotConfiguredError(ConfigurationError):
    """Raised when Gemini API credentials are missing."""

    def __init__(self) -> None:
        super().__init__("Gemini is not configured. Set GEMINI_API_KEY or GOOGLE_CLOUD_PROJECT.")


def build_gemini_client() -> genai.Client:
    """Build a google-genai client from application settings.

    Raises:
        GeminiNotConfiguredError: If neither API key nor GCP project is set.
    """
    if not settings.google_cloud_project and not settings.gemini_api_key:
        raise GeminiNotConfiguredError()

    http_options = types.HttpOptions(timeout=int(settings.gemini_timeout_seconds * 1000))
    if settings.google_cloud_project and settings.google_cloud_location:
        return genai.Client(
            vertexai=True,
            project=settings.google_cloud_project,
            location=settings.google_cloud_location,
            http_options=http_options,
        )
    return genai.Client(api_key=settings.gemini_api_key, http_options=http_options)


def build_vision_describer(client: genai.Client | None = None) -> GeminiVisionDescriber:
    return GeminiVisionDescriber(client or build_gemini_client(), model=settings.gemini_vision_model)


def build_prompt_refiner(client: genai.Client | None = None) -> GeminiPromptRefiner:
    return GeminiPromptRefiner(client or build_gemini_client(), model=settings.gemini_text_model)
