"""
Main entry point for the Workflow Auto-Tagger.
"""

import asyncio
import signal
import sys
import argparse
from typing import List
from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table
from .config import settings, normalize_chunk_size
from .graph_parser import ParseError
from .item_store import EagleLibrary
from .logging import setup_logging, get_logger
from .models import BatchMode, RunState, TagToggles
from .processor import WorkflowTagger
from .scheduler import BatchScheduler


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Workflow Auto-Tagger - tag library items from embedded generation workflows"
    )

    parser.add_argument(
        "--mode",
        choices=["tag", "untag", "inspect"],
        default="tag",
        help="tag adds derived tags, untag removes them, inspect prints them for files (default: tag)"
    )

    parser.add_argument(
        "--library",
        default=settings.library_path,
        help="Path to the Eagle library (default: LIBRARY_PATH)"
    )

    parser.add_argument(
        "--item",
        action="append",
        dest="item_ids",
        metavar="ITEM_ID",
        help="Process only this item id (repeatable)"
    )

    parser.add_argument(
        "--filter-tag",
        help="Process only items already carrying this tag"
    )

    parser.add_argument(
        "--chunk-size",
        help="Override chunk size from configuration"
    )

    parser.add_argument("--no-checkpoint", action="store_true", help="Skip checkpoint tags")
    parser.add_argument("--no-lora", action="store_true", help="Skip LoRA tags")
    parser.add_argument("--no-positive", action="store_true", help="Skip positive prompt tags")
    parser.add_argument("--no-negative", action="store_true", help="Skip negative prompt tags")

    parser.add_argument(
        "--yes", "-y",
        action="store_true",
        help="Do not ask for confirmation before removing tags"
    )

    parser.add_argument(
        "files",
        nargs="*",
        help="Image files to inspect (inspect mode only)"
    )

    return parser.parse_args(argv)


def build_toggles(args) -> TagToggles:
    """Settings toggles with command line overrides applied."""
    toggles = TagToggles.from_settings(settings)
    return toggles.model_copy(update={
        "checkpoint": toggles.checkpoint and not args.no_checkpoint,
        "lora": toggles.lora and not args.no_lora,
        "positive_prompt": toggles.positive_prompt and not args.no_positive,
        "negative_prompt": toggles.negative_prompt and not args.no_negative,
    })


async def run_inspect(processor: WorkflowTagger, files: List[str]) -> int:
    """Print the tags each file would receive."""
    logger = get_logger("main")
    console = Console()
    table = Table(title="Derived tags")
    table.add_column("File")
    table.add_column("Origin")
    table.add_column("Tag")

    status = 0
    for file_path in files:
        try:
            candidates = await processor.inspect_file(file_path)
        except ParseError as e:
            logger.error(f"❌ {file_path}: {e}")
            status = 1
            continue
        except Exception as e:
            logger.error(f"❌ Failed to read {file_path}: {e}")
            status = 1
            continue
        if not candidates:
            table.add_row(file_path, "-", "(none)")
        for candidate in candidates:
            table.add_row(file_path, candidate.origin.value, candidate.value)

    console.print(table)
    return status


def cancel_once_handler(loop, scheduler: BatchScheduler):
    """SIGINT handler that requests a cancel, then restores the default handler.

    A second Ctrl+C therefore raises KeyboardInterrupt.
    """
    def handler():
        loop.remove_signal_handler(signal.SIGINT)
        scheduler.cancel()
    return handler


async def run_batch(scheduler: BatchScheduler, mode: BatchMode) -> RunState:
    """Run a batch, turning the first Ctrl+C into a cooperative cancel."""
    loop = asyncio.get_running_loop()
    if sys.platform != "win32":
        loop.add_signal_handler(signal.SIGINT, cancel_once_handler(loop, scheduler))
    try:
        if mode is BatchMode.TAG:
            result = await scheduler.start_tagging()
        else:
            result = await scheduler.start_untagging()
    finally:
        if sys.platform != "win32":
            loop.remove_signal_handler(signal.SIGINT)
    return result.state


def main(argv=None):
    """Main entry point."""
    # Setup logging
    setup_logging()
    logger = get_logger("main")

    # Parse arguments
    args = parse_arguments(argv)
    processor = WorkflowTagger(toggles=build_toggles(args))

    if args.mode == "inspect":
        if not args.files:
            logger.error("❌ inspect mode needs at least one file")
            return 1
        return asyncio.run(run_inspect(processor, args.files))

    if not args.library:
        logger.error("❌ No library given (use --library or LIBRARY_PATH)")
        return 1

    chunk_size = normalize_chunk_size(args.chunk_size if args.chunk_size is not None else settings.chunk_size)
    library = EagleLibrary(args.library)
    scheduler = BatchScheduler(
        selection_provider=lambda: library.select_items(args.item_ids, tag=args.filter_tag),
        processor=processor,
        chunk_size=chunk_size,
    )

    mode = BatchMode.TAG if args.mode == "tag" else BatchMode.UNTAG
    if mode is BatchMode.UNTAG and not args.yes:
        if not Confirm.ask("Remove workflow-derived tags from the selected items?"):
            logger.info("Tag removal cancelled")
            return 0

    logger.info(f"📦 Library: {args.library} | Chunk size: {chunk_size}")

    try:
        state = asyncio.run(run_batch(scheduler, mode))
    except KeyboardInterrupt:
        logger.info("⏹️  Interrupted by user")
        return 130

    return 1 if state is RunState.ABORTED else 0


if __name__ == "__main__":
    sys.exit(main())
