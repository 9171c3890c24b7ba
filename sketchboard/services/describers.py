"""
Collaborator contracts and the describe -> extract helpers.

Failures from a vision describer are already classified
(ContentPolicyBlocked / TransientDescriptionError) when they reach these
helpers; extraction only ever sees text.
"""

from __future__ import annotations

import hashlib
import logging
import mimetypes
from collections import OrderedDict
from pathlib import Path
from typing import Literal, Protocol, Sequence

import httpx

from sketchboard.config.loaders import PromptGrammar
from sketchboard.core.exceptions import TransientDescriptionError, UpstreamDescriptionFailed
from sketchboard.core.metrics import record_description_failure
from sketchboard.core.settings import settings
from sketchboard.extraction.character import extract_attributes
from sketchboard.extraction.location import extract_location
from sketchboard.records import AttributeRecord, LocationRecord, PromptSection

logger = logging.getLogger(__name__)

SubjectType = Literal["character", "location"]


class VisionDescriber(Protocol):
    def describe(
        self,
        image: bytes,
        mime_type: str,
        subject: SubjectType,
        hint: str | None = None,
    ) -> str:
        """Return a natural-language description of ``image``.

        Raises:
            ContentPolicyBlocked: The request was refused.
            TransientDescriptionError: Network, timeout or rate-limit failure.
        """
        ...


class PromptRefiner(Protocol):
    def refine(self, sections: Sequence[PromptSection], draft: str, grammar: PromptGrammar) -> str:
        """Return a refined prompt or raise PrimaryComposerUnavailable."""
        ...


class DescriptionCache:
    """Bounded LRU of descriptions keyed by a digest of the image bytes."""

    def __init__(self, max_entries: int | None = None) -> None:
        self.max_entries = settings.description_cache_size if max_entries is None else max_entries
        if self.max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._entries: OrderedDict[str, str] = OrderedDict()

    @staticmethod
    def key_for(image: bytes, subject: SubjectType) -> str:
        return f"{subject}:{hashlib.sha256(image).hexdigest()}"

    def get(self, key: str) -> str | None:
        value = self._entries.get(key)
        if value is not None:
            self._entries.move_to_end(key)
        return value

    def put(self, key: str, description: str) -> None:
        self._entries[key] = description
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def load_reference_image(image_url: str, timeout: float = 30.0) -> tuple[bytes, str]:
    """Load image bytes from an http(s) URL or a local path.

    Raises:
        TransientDescriptionError: If the image cannot be fetched.
        FileNotFoundError: If a local path does not exist.
    """
    if not image_url.startswith(("http://", "https://")):
        path = Path(image_url)
        if not path.exists():
            raise FileNotFoundError(f"Reference image not found: {image_url}")
        mime_type, _ = mimetypes.guess_type(str(path))
        return path.read_bytes(), mime_type or "image/png"

    try:
        with httpx.Client(timeout=timeout) as client:
            resp = client.get(image_url)
            resp.raise_for_status()
            return resp.content, resp.headers.get("content-type", "image/png")
    except httpx.HTTPError as exc:
        logger.warning("reference_image_fetch_failed url=%s error=%s", image_url, repr(exc))
        raise TransientDescriptionError(f"Failed to load reference image: {exc}") from exc


def _describe(
    describer: VisionDescriber,
    image: bytes,
    mime_type: str,
    subject: SubjectType,
    hint: str | None,
    cache: DescriptionCache | None,
) -> str:
    key = DescriptionCache.key_for(image, subject) if cache is not None else None
    if cache is not None and key is not None:
        cached = cache.get(key)
        if cached is not None:
            logger.debug("description_cache_hit subject=%s", subject)
            return cached
    try:
        description = describer.describe(image, mime_type, subject, hint)
    except UpstreamDescriptionFailed as exc:
        kind = "content_policy" if not exc.retryable else "transient"
        record_description_failure(kind)
        logger.warning("description_failed subject=%s kind=%s error=%s", subject, kind, exc)
        raise
    if cache is not None and key is not None and description.strip():
        cache.put(key, description)
    return description


def describe_character(
    describer: VisionDescriber,
    image: bytes,
    mime_type: str = "image/png",
    *,
    hint: str | None = None,
    cache: DescriptionCache | None = None,
) -> tuple[str, AttributeRecord]:
    """Describe a character image and parse the description.

    Returns the raw description (kept on the entity for later re-parsing)
    and the extracted record.
    """
    description = _describe(describer, image, mime_type, "character", hint, cache)
    return description, extract_attributes(description)


def describe_location(
    describer: VisionDescriber,
    image: bytes,
    mime_type: str = "image/png",
    *,
    hint: str | None = None,
    cache: DescriptionCache | None = None,
) -> tuple[str, LocationRecord]:
    description = _describe(describer, image, mime_type, "location", hint, cache)
    return description, extract_location(description)
