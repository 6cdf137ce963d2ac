"""Command-line interface for the coloring-book studio.

Usage:
    python -m colorbook.cli <command> [OPTIONS]

Examples:
    # Generate two pages per prompt, one prompt per line of a file
    colorbook generate --prompts-file prompts.txt --count 2

    # Generate from a reference photo at 2k
    colorbook generate --prompt "a cat in a teacup" --reference cat.jpg --resolution 2k

    # Upscale history entries to 4k
    colorbook upscale 3f2a... 9b1c... --to 4k

    # Replay the whole retry queue
    colorbook retry --all

    # Export the history as a zip archive
    colorbook export pages.zip
"""

import asyncio
import base64
import mimetypes
import signal
import sys
from argparse import ArgumentParser, Namespace
from pathlib import Path
from typing import Optional

import structlog

from colorbook.core.config import Settings, configure_logging
from colorbook.models.job import ColorMode, FrameStyle, PrintSize, Resolution
from colorbook.studio import Studio
from colorbook.workers.session import LogLevel

logger = structlog.get_logger()


def parse_args(argv: Optional[list[str]] = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(
        description="Generate printable coloring-book pages",
        epilog="Failed jobs are kept in a retry queue; see `colorbook failed`",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    generate = commands.add_parser("generate", help="Generate new pages")
    generate.add_argument("--prompt", help="Prompt text (default: last used prompt)")
    generate.add_argument(
        "--prompts-file", type=Path, help="File with one prompt per line (batch mode)"
    )
    generate.add_argument(
        "--reference",
        type=Path,
        action="append",
        default=[],
        help="Reference image file (repeatable)",
    )
    generate.add_argument("--count", type=int, help="Images per prompt")
    generate.add_argument("--style", help="Style id")
    generate.add_argument("--resolution", choices=[r.value for r in Resolution])
    generate.add_argument("--print-size", choices=[p.value for p in PrintSize])
    generate.add_argument("--color-mode", choices=[c.value for c in ColorMode])
    generate.add_argument(
        "--frame",
        choices=[f.value for f in FrameStyle],
        help="Draw a frame in this style",
    )
    generate.add_argument("--no-frame", action="store_true", help="Full-bleed layout")
    generate.add_argument("--palette", help="Palette id (color mode only)")

    edit = commands.add_parser("edit", help="Edit one history entry")
    edit.add_argument("image_id")
    edit.add_argument("prompt")

    upscale = commands.add_parser("upscale", help="Re-render history entries at 2k or 4k")
    upscale.add_argument("image_ids", nargs="+")
    upscale.add_argument("--to", dest="resolution", choices=["2k", "4k"], default="2k")

    colorize = commands.add_parser("colorize", help="Fill line art with color")
    colorize.add_argument("image_ids", nargs="+")

    decolorize = commands.add_parser("decolorize", help="Turn color pages into line art")
    decolorize.add_argument("image_ids", nargs="+")

    commands.add_parser("history", help="List history entries")
    commands.add_parser("failed", help="List the retry queue")

    retry = commands.add_parser("retry", help="Replay failed jobs")
    target = retry.add_mutually_exclusive_group(required=True)
    target.add_argument("job_id", nargs="?")
    target.add_argument("--all", action="store_true", help="Replay every failed job")

    dismiss = commands.add_parser("dismiss", help="Drop one failed job")
    dismiss.add_argument("job_id")

    commands.add_parser("clear-failed", help="Empty the retry queue")

    delete = commands.add_parser("delete", help="Delete history entries")
    delete.add_argument("image_ids", nargs="+")

    commands.add_parser("clear-history", help="Delete every history entry")

    export = commands.add_parser("export", help="Write the history into a zip archive")
    export.add_argument("destination", type=Path)

    return parser.parse_args(argv)


def read_data_uri(path: Path) -> str:
    """Read an image file into a base64 data URI."""
    mime_type, _ = mimetypes.guess_type(path.name)
    encoded = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:{mime_type or 'image/png'};base64,{encoded}"


def print_history(studio: Studio) -> None:
    images = studio.history.images
    print(f"{len(images)} images")
    for image in images:
        print(
            f"  {image.id}  {image.timestamp:%Y-%m-%d %H:%M}  "
            f"{image.resolution.value:>2}  {image.print_size.value:<10}  {image.prompt[:60]}"
        )


def print_failed_jobs(studio: Studio) -> None:
    jobs = studio.failed_jobs.jobs
    print(f"{len(jobs)} failed jobs")
    for job in jobs:
        descriptor = job.to_descriptor()
        print(f"  {job.id}  {job.timestamp:%Y-%m-%d %H:%M}  {descriptor.prompt[:40]}")
        print(f"      error: {job.error[:100]}")


async def apply_generate_options(studio: Studio, args: Namespace) -> None:
    changes = {
        "prompt": args.prompt,
        "batch_count": args.count,
        "style": args.style,
        "resolution": args.resolution,
        "print_size": args.print_size,
        "color_mode": args.color_mode,
        "selected_palette_id": args.palette,
    }
    if args.frame:
        changes.update(use_frame=True, frame_style=args.frame)
    elif args.no_frame:
        changes["use_frame"] = False

    changes = {key: value for key, value in changes.items() if value is not None}
    if changes:
        await studio.preferences.update_config(**changes)

    if args.prompts_file:
        studio.set_batch_prompts(args.prompts_file.read_text(encoding="utf-8"))
    studio.set_reference_images([read_data_uri(path) for path in args.reference])


async def run_command(studio: Studio, args: Namespace) -> None:
    """Dispatch one parsed command to the studio."""
    command = args.command

    if command in ("upscale", "colorize", "decolorize", "delete"):
        studio.session.selected_ids = set(args.image_ids)

    if command == "generate":
        await apply_generate_options(studio, args)
        await studio.generate()
    elif command == "edit":
        await studio.edit_image(args.image_id, args.prompt)
    elif command == "upscale":
        await studio.batch_upscale(Resolution(args.resolution))
    elif command == "colorize":
        await studio.batch_colorize()
    elif command == "decolorize":
        await studio.batch_decolorize()
    elif command == "history":
        print_history(studio)
    elif command == "failed":
        print_failed_jobs(studio)
    elif command == "retry":
        if args.all:
            await studio.retry_all_failed()
        else:
            await studio.retry_job(args.job_id)
    elif command == "dismiss":
        await studio.dismiss_failed_job(args.job_id)
    elif command == "clear-failed":
        await studio.clear_failed_jobs()
    elif command == "delete":
        await studio.delete_selected()
    elif command == "clear-history":
        await studio.clear_history()
    elif command == "export":
        studio.export_zip(args.destination)


def print_summary(studio: Studio) -> None:
    entries = studio.session.log.entries
    if not entries:
        return

    print("\n" + "=" * 60)
    for entry in entries:
        marker = {LogLevel.ERROR: "!", LogLevel.WARNING: "~", LogLevel.SUCCESS: "+"}.get(
            entry.level, " "
        )
        print(f"{entry.timestamp:%H:%M:%S} {marker} {entry.message}")
    print("=" * 60)
    print(f"History: {len(studio.history.images)} images")
    print(f"Retry queue: {len(studio.failed_jobs.jobs)} failed jobs")
    print("=" * 60 + "\n")


async def async_main(argv: Optional[list[str]] = None) -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (success), 1 (error), 130 (interrupted)
    """
    args = parse_args(argv)

    settings = Settings()  # type: ignore[call-arg]
    if args.verbose:
        settings.log_level = "DEBUG"
    configure_logging(settings)

    logger.info("cli.started", command=args.command, database_url=settings.database_url)

    studio = await Studio.create(settings)

    # First Ctrl+C stops starting new jobs; in-flight jobs still finish
    interrupted = asyncio.Event()

    def on_interrupt() -> None:
        interrupted.set()
        studio.stop()

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, on_interrupt)
    except NotImplementedError:
        pass

    try:
        await run_command(studio, args)
        print_summary(studio)

        if interrupted.is_set():
            logger.info("cli.interrupted")
            return 130

        if studio.session.banner_error:
            print(f"Error: {studio.session.banner_error}", file=sys.stderr)
            return 1
        return 0

    except (OSError, ValueError) as e:
        logger.error("cli.command_failed", error=str(e), error_type=type(e).__name__)
        print(f"\nError: {e}", file=sys.stderr)
        return 1

    except Exception as e:
        logger.error("cli.unexpected_error", error=str(e), error_type=type(e).__name__)
        print(f"\nUnexpected error: {e}", file=sys.stderr)
        return 1

    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except NotImplementedError:
            pass
        await studio.close()


def main() -> None:
    """Synchronous entry point for CLI."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
