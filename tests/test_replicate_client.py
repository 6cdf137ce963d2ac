"""Replicate client tests.

The SDK call is patched at `_run_model` and downloads go through
`httpx.MockTransport`, so no network access is needed.
"""

import base64

import httpx
import pytest
from conftest import make_descriptor
from replicate.exceptions import ReplicateException

from colorbook.models.job import GenerationRequest, PrintSize, Resolution
from colorbook.services.image_generation.classification import ErrorKind, classify_error
from colorbook.services.image_generation.replicate_client import (
    ImageGenerationError,
    ReplicateImageGenerator,
)

IMAGE_URL = "https://replicate.delivery/pbxt/output.png"


def make_generator(handler=None, api_token: str = "r8_test_token") -> ReplicateImageGenerator:
    transport = httpx.MockTransport(handler) if handler else None
    return ReplicateImageGenerator(
        api_token=api_token,
        model_version="base/model",
        hires_model_version="hires/model",
        transport=transport,
    )


def png_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, content=b"png-bytes", headers={"content-type": "image/png"})


def test_select_model_by_resolution():
    generator = make_generator()

    assert generator.select_model(Resolution.R1K) == "base/model"
    assert generator.select_model(Resolution.R2K) == "hires/model"
    assert generator.select_model(Resolution.R4K) == "hires/model"


def test_base_input_uses_first_reference_only():
    generator = make_generator()
    descriptor = make_descriptor(
        seed=99,
        print_size=PrintSize.PORTRAIT_6X9,
        reference_images=("data:one", "data:two"),
    )

    payload = generator.build_input(GenerationRequest(descriptor=descriptor))

    assert payload["seed"] == 99
    assert payload["aspect_ratio"] == "9:16"
    assert payload["input_image"] == "data:one"
    assert "image_input" not in payload
    assert "resolution" not in payload
    assert payload["prompt"].startswith("TASK: GENERATE A NEW IMAGE")


def test_hires_input_sends_every_reference():
    generator = make_generator()
    descriptor = make_descriptor(
        resolution=Resolution.R4K,
        print_size=PrintSize.LETTER,
        reference_images=("data:one", "data:two"),
    )

    payload = generator.build_input(GenerationRequest(descriptor=descriptor))

    assert payload["resolution"] == "4K"
    assert payload["aspect_ratio"] == "3:4"
    assert payload["image_input"] == ["data:one", "data:two"]
    assert "input_image" not in payload


@pytest.mark.asyncio
async def test_generate_downloads_output_as_data_uri(monkeypatch):
    generator = make_generator(png_handler)
    calls = []

    def fake_run(model, payload):
        calls.append((model, payload))
        return [IMAGE_URL]

    monkeypatch.setattr(generator, "_run_model", fake_run)

    outcome = await generator(GenerationRequest(descriptor=make_descriptor()))

    assert outcome is not None
    assert outcome.used_model == "base/model"
    assert outcome.content == "data:image/png;base64," + base64.b64encode(b"png-bytes").decode()
    assert calls[0][0] == "base/model"


@pytest.mark.asyncio
async def test_empty_output_returns_none(monkeypatch):
    generator = make_generator(png_handler)
    monkeypatch.setattr(generator, "_run_model", lambda model, payload: [])

    assert await generator(GenerationRequest(descriptor=make_descriptor())) is None


@pytest.mark.asyncio
async def test_missing_token_is_a_permission_failure():
    generator = make_generator(api_token="")

    with pytest.raises(ImageGenerationError) as exc_info:
        await generator(GenerationRequest(descriptor=make_descriptor()))

    assert classify_error(exc_info.value) == ErrorKind.PERMISSION_DENIED


@pytest.mark.asyncio
async def test_sdk_error_message_is_preserved(monkeypatch):
    generator = make_generator(png_handler)

    def rate_limited(model, payload):
        raise ReplicateException("Request failed with status 429: Too many requests")

    monkeypatch.setattr(generator, "_run_model", rate_limited)

    with pytest.raises(ImageGenerationError, match="429") as exc_info:
        await generator(GenerationRequest(descriptor=make_descriptor()))

    assert classify_error(exc_info.value) == ErrorKind.RATE_LIMITED


@pytest.mark.asyncio
async def test_connection_error_is_wrapped(monkeypatch):
    generator = make_generator(png_handler)

    def unreachable(model, payload):
        raise ConnectionError("network unreachable")

    monkeypatch.setattr(generator, "_run_model", unreachable)

    with pytest.raises(ImageGenerationError, match="Connection error"):
        await generator(GenerationRequest(descriptor=make_descriptor()))


@pytest.mark.asyncio
async def test_download_status_error_is_not_classified_as_permission(monkeypatch):
    def forbidden(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, content=b"denied")

    generator = make_generator(forbidden)
    monkeypatch.setattr(generator, "_run_model", lambda model, payload: IMAGE_URL)

    with pytest.raises(ImageGenerationError, match="Image download failed") as exc_info:
        await generator(GenerationRequest(descriptor=make_descriptor()))

    assert classify_error(exc_info.value) == ErrorKind.OTHER
