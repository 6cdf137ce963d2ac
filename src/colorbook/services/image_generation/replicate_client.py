"""Replicate API client implementing the generation call used by the executor."""

import asyncio
import base64
from typing import Any, Optional

import httpx
import replicate
from replicate.exceptions import ReplicateException

from colorbook.models.job import GenerationOutcome, GenerationRequest, PrintSize, Resolution
from colorbook.services.image_generation.prompt_builder import build_prompt

ASPECT_RATIOS: dict[PrintSize, str] = {
    PrintSize.SQUARE_8X8: "1:1",
    PrintSize.LETTER: "3:4",
    PrintSize.PORTRAIT_8X10: "4:5",
    PrintSize.PORTRAIT_6X9: "9:16",
}

HIRES_SIZES: dict[Resolution, str] = {
    Resolution.R2K: "2K",
    Resolution.R4K: "4K",
}


class ImageGenerationError(Exception):
    """A generation call failed.

    The message keeps the original error text (status codes included) because
    the retry policy classifies failures by message content.
    """


def _first_output_url(output: Any) -> Optional[str]:
    """Pull the first image location out of a model output (format varies by model)."""
    if isinstance(output, (list, tuple)):
        if not output:
            return None
        output = output[0]
    if output is None:
        return None
    url = getattr(output, "url", output)
    return str(url) if url else None


class ReplicateImageGenerator:
    """Generation call backed by Replicate.

    1k jobs go to the base model with at most one reference image; 2k/4k jobs
    go to the high-resolution model, which takes every reference image.
    """

    def __init__(
        self,
        api_token: str,
        model_version: str,
        hires_model_version: str,
        download_timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the generator.

        Args:
            api_token: Replicate API token (REPLICATE_API_TOKEN)
            model_version: Model used for 1k output
            hires_model_version: Model used for 2k/4k output
            download_timeout: Timeout for fetching the produced image
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.api_token = api_token
        self.model_version = model_version
        self.hires_model_version = hires_model_version
        self.download_timeout = download_timeout
        self.transport = transport

    def select_model(self, resolution: Resolution) -> str:
        if resolution in HIRES_SIZES:
            return self.hires_model_version
        return self.model_version

    def build_input(self, request: GenerationRequest) -> dict[str, Any]:
        """Build the model input payload for one request."""
        descriptor = request.descriptor
        references = [ref for ref in descriptor.reference_images if ref]

        prompt = build_prompt(
            descriptor.prompt,
            has_reference=bool(references),
            print_size=descriptor.print_size,
            color_mode=descriptor.color_mode,
            style_instruction=request.style_instruction,
            style_negatives=request.style_negatives,
            use_frame=descriptor.use_frame,
            frame_style=descriptor.frame_style,
            palette_colors=request.palette_colors,
            transform_type=descriptor.transform_type,
        )

        payload: dict[str, Any] = {
            "prompt": prompt,
            "seed": descriptor.seed,
            "aspect_ratio": ASPECT_RATIOS.get(descriptor.print_size, "1:1"),
            "output_format": "png",
        }

        if descriptor.resolution in HIRES_SIZES:
            payload["resolution"] = HIRES_SIZES[descriptor.resolution]
            if references:
                payload["image_input"] = references
        elif references:
            payload["input_image"] = references[0]

        return payload

    def _run_model(self, model: str, payload: dict[str, Any]) -> Any:
        client = replicate.Client(api_token=self.api_token)
        return client.run(model, input=payload)

    async def _download_as_data_uri(self, image_url: str) -> str:
        if image_url.startswith("data:"):
            return image_url

        async with httpx.AsyncClient(
            timeout=self.download_timeout, transport=self.transport
        ) as client:
            response = await client.get(image_url)
            response.raise_for_status()

        mime_type = response.headers.get("content-type", "image/png").split(";")[0].strip()
        encoded = base64.b64encode(response.content).decode("ascii")
        return f"data:{mime_type or 'image/png'};base64,{encoded}"

    async def __call__(self, request: GenerationRequest) -> Optional[GenerationOutcome]:
        """Generate one image.

        Returns:
            GenerationOutcome with a base64 data URI, or None if the model returned no image

        Raises:
            ImageGenerationError: Missing token, API error, network error or failed download
        """
        if not self.api_token:
            raise ImageGenerationError("API key not valid: REPLICATE_API_TOKEN not configured")

        model = self.select_model(request.descriptor.resolution)
        payload = self.build_input(request)

        try:
            # SDK is synchronous
            output = await asyncio.to_thread(self._run_model, model, payload)
        except ReplicateException as e:
            raise ImageGenerationError(str(e)) from e
        except (ConnectionError, OSError, TimeoutError) as e:
            raise ImageGenerationError(f"Connection error: {e}") from e

        image_url = _first_output_url(output)
        if image_url is None:
            return None

        try:
            content = await self._download_as_data_uri(image_url)
        except httpx.HTTPStatusError as e:
            # Reason phrase only: a CDN status code must not read as an API auth failure
            raise ImageGenerationError(
                f"Image download failed ({e.response.reason_phrase}): {image_url}"
            ) from e
        except httpx.HTTPError as e:
            raise ImageGenerationError(f"Image download failed: {e}") from e

        return GenerationOutcome(content=content, used_model=model)
