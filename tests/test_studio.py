"""Studio end-to-end tests against a real SQLite database.

Scenarios:
- New generation and batch edit through the runner
- Batch colorize/decolorize/upscale of the selection
- Retry-one and retry-all against the durable retry queue
- Banner errors for missing prompt, missing selection and missing key
"""

import zipfile

import pytest
from conftest import PNG_BYTES, PNG_DATA_URI, StubGenerator, make_descriptor

from colorbook.models.failed_job import FailedJob
from colorbook.models.image import GeneratedImage
from colorbook.models.job import ColorMode, PrintSize, Resolution, TransformType
from colorbook.studio import MISSING_KEY_BANNER, Studio
from colorbook.workers.session import LogLevel


async def seed_history(studio: Studio, *prompts: str) -> list[GeneratedImage]:
    images = []
    for prompt in prompts:
        images.append(
            await studio.history.add(
                GeneratedImage(
                    url=PNG_DATA_URI,
                    prompt=prompt,
                    resolution=Resolution.R1K,
                    print_size=PrintSize.LETTER,
                )
            )
        )
    return images


@pytest.mark.asyncio
async def test_generate_new_batch(studio, generator, store):
    await studio.preferences.update_config(prompt="a fox in the snow", batch_count=2)

    images = await studio.generate()

    assert len(images) == 2
    assert len(generator.requests) == 2
    assert len(await store.get_all_images()) == 2
    assert [image.prompt for image in studio.history.images] == ["a fox in the snow"] * 2

    messages = studio.session.log.messages()
    assert "Queueing 2 tasks (2 threads)..." in messages
    assert messages[-1] == "Finished."
    assert studio.session.is_generating is False
    assert studio.session.banner_error is None


@pytest.mark.asyncio
async def test_generate_uses_batch_prompts_and_references(studio, generator):
    await studio.preferences.update_config(prompt="ignored", batch_count=1)
    studio.set_batch_prompts("a fox\n\nan owl\n")
    studio.set_reference_images(["data:image/png;base64,AAAA"])

    images = await studio.generate()

    assert sorted(image.prompt for image in images) == ["a fox", "an owl"]
    assert all(
        request.descriptor.reference_images == ("data:image/png;base64,AAAA",)
        for request in generator.requests
    )


@pytest.mark.asyncio
async def test_generate_without_prompt_sets_banner(studio, generator):
    images = await studio.generate()

    assert images == []
    assert generator.requests == []
    assert studio.session.banner_error == "Please enter a prompt."
    assert studio.session.log.entries[-1].level == LogLevel.ERROR


@pytest.mark.asyncio
async def test_generate_without_api_key_does_nothing(settings, uow_factory, sleep_recorder):
    settings = settings.model_copy(update={"replicate_api_token": ""})
    generator = StubGenerator()
    studio = Studio(settings, uow_factory, generator, sleep=sleep_recorder)
    await studio.load()
    await studio.preferences.update_config(prompt="a fox")

    assert await studio.generate() == []
    assert generator.requests == []
    assert studio.session.banner_error == MISSING_KEY_BANNER


@pytest.mark.asyncio
async def test_generate_with_selection_batch_edits(studio, generator):
    targets = await seed_history(studio, "a fox", "an owl")
    await studio.preferences.update_config(prompt="add a scarf")
    studio.session.selected_ids = {image.id for image in targets}

    images = await studio.generate()

    assert len(images) == 2
    assert all(image.prompt == "add a scarf" for image in images)
    assert all(request.descriptor.is_editing for request in generator.requests)
    assert studio.session.selected_ids == set()
    assert "Batch Edit Finished." in studio.session.log.messages()


@pytest.mark.asyncio
async def test_edit_single_image(studio, generator):
    [target] = await seed_history(studio, "a fox")

    image = await studio.edit_image(target.id, "make it night")

    assert image is not None
    assert image.prompt == "make it night"
    assert generator.requests[0].descriptor.reference_images == (target.url,)
    assert image.print_size == target.print_size == PrintSize.LETTER
    assert studio.preferences.config.print_size == PrintSize.SQUARE_8X8
    assert len(studio.history.images) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "operation, prefix, color_mode, transform",
    [
        ("batch_colorize", "Colorized: ", ColorMode.COLOR, TransformType.COLORIZE),
        ("batch_decolorize", "Line Art: ", ColorMode.BW, TransformType.DECOLORIZE),
    ],
)
async def test_colorize_and_decolorize_selection(
    studio, generator, store, operation, prefix, color_mode, transform
):
    """M selected entries yield M new prefixed entries with the forced color mode."""
    targets = await seed_history(studio, "a fox", "an owl", "a bear")
    studio.session.selected_ids = {image.id for image in targets}

    images = await getattr(studio, operation)()

    assert len(images) == 3
    assert sorted(image.prompt for image in images) == sorted(
        f"{prefix}{target.prompt}" for target in targets
    )
    assert all(image.color_mode == color_mode for image in images)
    assert all(request.descriptor.color_mode == color_mode for request in generator.requests)
    assert all(request.descriptor.transform_type == transform for request in generator.requests)
    assert len(await store.get_all_images()) == 6
    assert studio.session.selected_ids == set()
    assert studio.session.log.entries[-1].level == LogLevel.SUCCESS


@pytest.mark.asyncio
async def test_batch_upscale_selection(studio, generator):
    targets = await seed_history(studio, "a fox")
    studio.session.selected_ids = {targets[0].id}

    [image] = await studio.batch_upscale(Resolution.R4K)

    assert image.resolution == Resolution.R4K
    assert image.prompt == "a fox"
    assert image.print_size == PrintSize.LETTER
    assert "Batch Upscale Finished." in studio.session.log.messages()


@pytest.mark.asyncio
async def test_batch_operation_without_selection_sets_banner(studio, generator):
    assert await studio.batch_colorize() == []
    assert studio.session.banner_error == "Select at least one image first."
    assert generator.requests == []


@pytest.mark.asyncio
async def test_retry_one_success_removes_job_and_keeps_seed(studio, store):
    """Retry-one success: the failed job is gone and one entry with the original seed exists."""
    job = await studio.failed_jobs.record(make_descriptor(seed=987654), "429 Too many requests")

    image = await studio.retry_job(job.id)

    assert image is not None
    assert image.seed == 987654
    assert studio.failed_jobs.jobs == []
    assert await store.get_all_failed_jobs() == []
    assert [entry.seed for entry in await store.get_all_images()] == [987654]
    assert "Retry successful. Job removed from queue." in studio.session.log.messages()


@pytest.mark.asyncio
async def test_retry_one_failure_keeps_original_and_adds_new_record(studio, generator, store):
    job = FailedJob(
        id="fail-1700000000000-1",
        error="first failure",
        job_config=make_descriptor().model_dump(mode="json"),
    )
    await store.put_failed_job(job)
    await studio.failed_jobs.refresh()
    generator.script(RuntimeError("second failure"))

    assert await studio.retry_job(job.id) is None

    stored = await store.get_all_failed_jobs()
    assert len(stored) == 2
    assert {record.error for record in stored} == {"first failure", "second failure"}
    assert len(studio.failed_jobs.jobs) == 2


@pytest.mark.asyncio
async def test_retry_all_replays_queue_and_reloads(studio, store):
    for index in range(3):
        await store.put_failed_job(
            FailedJob(
                id=f"fail-1700000000000-{index}",
                error="429 Too many requests",
                job_config=make_descriptor(seed=index + 1).model_dump(mode="json"),
            )
        )
    await studio.failed_jobs.refresh()

    images = await studio.retry_all_failed()

    assert sorted(image.seed for image in images) == [1, 2, 3]
    assert studio.failed_jobs.jobs == []
    assert await store.get_all_failed_jobs() == []
    assert len(studio.history.images) == 3


@pytest.mark.asyncio
async def test_retry_all_with_empty_queue_is_a_no_op(studio, generator):
    assert await studio.retry_all_failed() == []
    assert generator.requests == []


@pytest.mark.asyncio
async def test_clear_failed_jobs_twice_is_safe(studio, store):
    await studio.failed_jobs.record(make_descriptor(), "boom")

    await studio.clear_failed_jobs()
    await studio.clear_failed_jobs()

    assert studio.failed_jobs.jobs == []
    assert await store.get_all_failed_jobs() == []
    assert studio.session.log.messages()[-1] == "Cleared all failed jobs."


@pytest.mark.asyncio
async def test_dismiss_failed_job(studio, store):
    job = await studio.failed_jobs.record(make_descriptor(), "boom")

    await studio.dismiss_failed_job(job.id)

    assert studio.failed_jobs.jobs == []
    assert await store.get_all_failed_jobs() == []


@pytest.mark.asyncio
async def test_permission_failure_during_generation(studio, generator, store):
    await studio.preferences.update_config(prompt="a fox", batch_count=2)
    generator.script(RuntimeError("403 Forbidden"))

    images = await studio.generate()

    assert len(images) == 1
    assert len(await store.get_all_failed_jobs()) == 1
    assert studio.session.api_key_present is False
    assert studio.session.banner_error is not None


@pytest.mark.asyncio
async def test_stop_before_generation_starts_nothing(studio, generator, sleep_recorder):
    await studio.preferences.update_config(prompt="a fox", batch_count=3)

    async def stopping_sleep(seconds: float) -> None:
        studio.stop()

    studio.sleep = stopping_sleep

    assert await studio.generate() == []
    assert generator.requests == []
    assert "Stopping generation sequence..." in studio.session.log.messages()
    assert studio.session.stop_requested is False


@pytest.mark.asyncio
async def test_delete_selected_and_clear_history(studio, store):
    targets = await seed_history(studio, "a fox", "an owl", "a bear")
    studio.session.selected_ids = {targets[0].id, targets[1].id}

    assert await studio.delete_selected() == 2
    assert [image.prompt for image in studio.history.images] == ["a bear"]

    await studio.clear_history()
    assert studio.history.images == []
    assert await store.get_all_images() == []


@pytest.mark.asyncio
async def test_export_zip(studio, tmp_path):
    await seed_history(studio, "a fox", "an owl")

    path = studio.export_zip(tmp_path / "out" / "pages.zip")

    assert path is not None
    with zipfile.ZipFile(path) as archive:
        assert sorted(archive.namelist()) == [
            "coloring-book-pages/coloring-page-0.png",
            "coloring-book-pages/coloring-page-1.png",
        ]
        assert archive.read("coloring-book-pages/coloring-page-0.png") == PNG_BYTES


@pytest.mark.asyncio
async def test_state_survives_reload(studio, settings, uow_factory, generator, sleep_recorder):
    await seed_history(studio, "a fox")
    await studio.failed_jobs.record(make_descriptor(), "boom")
    await studio.preferences.update_config(prompt="persisted prompt")

    reloaded = Studio(settings, uow_factory, generator, sleep=sleep_recorder)
    await reloaded.load()

    assert [image.prompt for image in reloaded.history.images] == ["a fox"]
    assert len(reloaded.failed_jobs.jobs) == 1
    assert reloaded.preferences.config.prompt == "persisted prompt"
