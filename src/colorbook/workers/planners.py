"""Job batch planners.

Each ``plan_*`` function is a pure mapping from user intent plus current state
to a list of PlannedJob: one frozen descriptor and the metadata used to build
the history entry on success. ``build_tasks`` turns a plan into the
zero-argument thunks consumed by the runner.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

from colorbook.models.failed_job import FailedJob
from colorbook.models.image import GeneratedImage
from colorbook.models.job import (
    ColorMode,
    JobDescriptor,
    PrintSize,
    Resolution,
    TransformType,
    random_seed,
)
from colorbook.models.preferences import GenerationConfig
from colorbook.services.history_store import FailedJobQueue, ImageHistory
from colorbook.services.image_generation.prompt_validator import validate_prompt
from colorbook.workers.executor import JobExecutor

COLORIZED_PREFIX = "Colorized: "
LINE_ART_PREFIX = "Line Art: "
UPSCALE_RESOLUTIONS = (Resolution.R2K, Resolution.R4K)


class PlanningError(ValueError):
    """The user intent cannot be turned into jobs (no prompt, no selection, ...)."""


@dataclass(frozen=True)
class PlannedJob:
    descriptor: JobDescriptor
    result_prompt: str
    result_resolution: Resolution
    result_print_size: PrintSize
    failed_job_id: Optional[str] = None


def _require_prompt(prompt: str) -> str:
    try:
        return validate_prompt(prompt)
    except ValueError as e:
        raise PlanningError(str(e)) from e


def _require_targets(targets: Sequence[GeneratedImage]) -> None:
    if not targets:
        raise PlanningError("Select at least one image first.")


def plan_new_generation(
    config: GenerationConfig,
    prompts: Sequence[str],
    reference_images: Sequence[str] = (),
) -> list[PlannedJob]:
    """Prompts x batch_count jobs, each with a fresh seed and the shared uploads.

    Raises:
        PlanningError: If there is no non-blank prompt
    """
    prompts = [prompt.strip() for prompt in prompts if prompt and prompt.strip()]
    if not prompts:
        raise PlanningError("Please enter a prompt.")
    prompts = [_require_prompt(prompt) for prompt in prompts]

    references = tuple(reference_images)
    return [
        PlannedJob(
            descriptor=JobDescriptor(
                prompt=prompt,
                print_size=config.print_size,
                seed=random_seed(),
                style=config.style,
                color_mode=config.color_mode,
                resolution=config.resolution,
                use_frame=config.use_frame,
                frame_style=config.frame_style,
                reference_images=references,
                is_editing=False,
                selected_palette_id=config.selected_palette_id,
            ),
            result_prompt=prompt,
            result_resolution=config.resolution,
            result_print_size=config.print_size,
        )
        for prompt in prompts
        for _ in range(config.batch_count)
    ]


def _plan_from_targets(
    config: GenerationConfig,
    targets: Sequence[GeneratedImage],
    *,
    prompt_for: Callable[[GeneratedImage], str],
    result_prompt_for: Callable[[GeneratedImage], str],
    resolution_for: Callable[[GeneratedImage], Resolution],
    print_size_for: Callable[[GeneratedImage], PrintSize],
    color_mode: Optional[ColorMode] = None,
    transform_type: Optional[TransformType] = None,
) -> list[PlannedJob]:
    _require_targets(targets)
    return [
        PlannedJob(
            descriptor=JobDescriptor(
                prompt=prompt_for(target),
                print_size=config.print_size,
                seed=random_seed(),
                style=config.style,
                color_mode=color_mode or config.color_mode,
                resolution=resolution_for(target),
                use_frame=config.use_frame,
                frame_style=config.frame_style,
                reference_images=(target.url,),
                is_editing=True,
                transform_type=transform_type,
                selected_palette_id=config.selected_palette_id,
            ),
            result_prompt=result_prompt_for(target),
            result_resolution=resolution_for(target),
            result_print_size=print_size_for(target),
        )
        for target in targets
    ]


def plan_batch_edit(
    config: GenerationConfig, targets: Sequence[GeneratedImage], prompt: str
) -> list[PlannedJob]:
    """One edit per target; the target image is the only reference.

    Resolution comes from each target, not from the config.
    """
    _require_targets(targets)
    edit_prompt = _require_prompt(prompt)
    return _plan_from_targets(
        config,
        targets,
        prompt_for=lambda _: edit_prompt,
        result_prompt_for=lambda _: edit_prompt,
        resolution_for=lambda target: target.resolution,
        print_size_for=lambda _: config.print_size,
    )


def plan_edit(config: GenerationConfig, target: GeneratedImage, prompt: str) -> list[PlannedJob]:
    """Edit a single image; unlike a batch edit the result keeps the target's print size."""
    edit_prompt = _require_prompt(prompt)
    return _plan_from_targets(
        config,
        [target],
        prompt_for=lambda _: edit_prompt,
        result_prompt_for=lambda _: edit_prompt,
        resolution_for=lambda target: target.resolution,
        print_size_for=lambda target: target.print_size,
    )


def plan_batch_upscale(
    config: GenerationConfig,
    targets: Sequence[GeneratedImage],
    target_resolution: Resolution,
) -> list[PlannedJob]:
    """Re-render each target at 2k or 4k, keeping its prompt and print size."""
    _require_targets(targets)
    target_resolution = Resolution(target_resolution)
    if target_resolution not in UPSCALE_RESOLUTIONS:
        raise PlanningError(f"Upscale target must be 2k or 4k, got {target_resolution.value}")

    return _plan_from_targets(
        config,
        targets,
        prompt_for=lambda target: target.prompt,
        result_prompt_for=lambda target: target.prompt,
        resolution_for=lambda _: target_resolution,
        print_size_for=lambda target: target.print_size,
    )


def plan_batch_colorize(
    config: GenerationConfig, targets: Sequence[GeneratedImage]
) -> list[PlannedJob]:
    """Fill each target's line art with color; results are prefixed "Colorized: "."""
    return _plan_from_targets(
        config,
        targets,
        prompt_for=lambda target: target.prompt,
        result_prompt_for=lambda target: f"{COLORIZED_PREFIX}{target.prompt}",
        resolution_for=lambda target: target.resolution,
        print_size_for=lambda target: target.print_size,
        color_mode=ColorMode.COLOR,
        transform_type=TransformType.COLORIZE,
    )


def plan_batch_decolorize(
    config: GenerationConfig, targets: Sequence[GeneratedImage]
) -> list[PlannedJob]:
    """Turn each target into black-and-white line art; results are prefixed "Line Art: "."""
    return _plan_from_targets(
        config,
        targets,
        prompt_for=lambda target: target.prompt,
        result_prompt_for=lambda target: f"{LINE_ART_PREFIX}{target.prompt}",
        resolution_for=lambda target: target.resolution,
        print_size_for=lambda target: target.print_size,
        color_mode=ColorMode.BW,
        transform_type=TransformType.DECOLORIZE,
    )


def plan_retry(jobs: Sequence[FailedJob]) -> list[PlannedJob]:
    """Replay failed jobs verbatim, original seed included."""
    if not jobs:
        raise PlanningError("There are no failed jobs to retry.")

    plan = []
    for job in jobs:
        descriptor = job.to_descriptor()
        plan.append(
            PlannedJob(
                descriptor=descriptor,
                result_prompt=descriptor.prompt,
                result_resolution=descriptor.resolution,
                result_print_size=descriptor.print_size,
                failed_job_id=job.id,
            )
        )
    return plan


def build_tasks(
    plan: Sequence[PlannedJob],
    executor: JobExecutor,
    history: ImageHistory,
    failed_jobs: FailedJobQueue,
    *,
    sync_failed_cache: bool = True,
) -> list[Callable[[], Awaitable[Optional[GeneratedImage]]]]:
    """Wrap each planned job in a thunk that executes it and stores the result.

    On success a GeneratedImage is persisted. For replayed failed jobs the
    record is deleted from storage, and from the in-memory queue too unless
    ``sync_failed_cache`` is False (retry-all reloads the queue afterwards).
    """

    def make_task(job: PlannedJob) -> Callable[[], Awaitable[Optional[GeneratedImage]]]:
        async def run() -> Optional[GeneratedImage]:
            outcome = await executor.execute(job.descriptor)
            if outcome is None:
                return None

            image = await history.add(
                GeneratedImage(
                    url=outcome.content,
                    prompt=job.result_prompt,
                    resolution=job.result_resolution,
                    print_size=job.result_print_size,
                    seed=job.descriptor.seed,
                    color_mode=job.descriptor.color_mode,
                )
            )

            if job.failed_job_id is not None:
                if sync_failed_cache:
                    await failed_jobs.remove(job.failed_job_id)
                else:
                    await failed_jobs.store.delete_failed_job(job.failed_job_id)
            return image

        return run

    return [make_task(job) for job in plan]
