from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from sketchboard.core.metrics import track_collaborator_call
from sketchboard.core.settings import settings
from sketchboard.records import ImageRequest, PanelPrompt
from sketchboard.services.describers import load_reference_image

logger = logging.getLogger(__name__)


class ImageGenerator(Protocol):
    def generate(self, request: ImageRequest) -> bytes | str:
        """Return image bytes or a fetchable URL."""
        ...


def build_image_request(
    prompt: PanelPrompt | str,
    *,
    reference_image: bytes | None = None,
    reference_image_url: str | None = None,
    reference_mime_type: str = "image/png",
    strength: float | None = None,
    fetch_reference: bool = False,
) -> ImageRequest:
    """Build the boundary payload for one panel.

    With ``fetch_reference`` a reference URL is resolved to bytes up front so
    generators that only accept inline images can use it.
    """
    text = prompt.prompt if isinstance(prompt, PanelPrompt) else prompt
    if fetch_reference and reference_image is None and reference_image_url:
        reference_image, reference_mime_type = load_reference_image(reference_image_url)
    return ImageRequest(
        prompt=text,
        reference_image=reference_image,
        reference_image_url=reference_image_url,
        reference_mime_type=reference_mime_type,
        strength=settings.default_image_strength if strength is None else strength,
    )


async def generate_panel_images(
    generator: ImageGenerator,
    requests: dict[int, ImageRequest],
    concurrency: int = 4,
) -> dict[int, bytes | str | Exception]:
    """Run image generation for several panels concurrently.

    Panel prompts are final before this runs, so cancelling the batch
    leaves composition state untouched. Per-panel failures are returned
    in place of the result rather than aborting the batch.
    """
    semaphore = asyncio.Semaphore(max(concurrency, 1))

    async def _one(panel_number: int, request: ImageRequest) -> tuple[int, bytes | str | Exception]:
        async with semaphore:
            try:
                with track_collaborator_call("generate_image"):
                    result = await asyncio.to_thread(generator.generate, request)
            except Exception as exc:  # noqa: BLE001
                logger.warning("image_generation_failed panel=%s error=%s", panel_number, repr(exc))
                return panel_number, exc
            return panel_number, result

    results = await asyncio.gather(*(_one(number, request) for number, request in requests.items()))
    return dict(results)
