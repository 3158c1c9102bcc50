"""
Chunked, cancellable batch scheduler for tagging and untagging runs.
"""

import asyncio
import inspect
import time
from typing import AsyncIterator, Callable, List, Optional
from .config import settings, normalize_chunk_size
from .context import RunContext
from .logging import get_logger
from .models import BatchMode, BatchResult, ChunkResult, ItemOutcome, ItemResult, RunState
from .processor import WorkflowTagger


SEPARATOR = "------------------------------------"


class InitializationError(Exception):
    """The batch could not be set up (e.g. item selection failed)."""
    pass


class SchedulerBusyError(RuntimeError):
    """A run is already active on this scheduler."""
    pass


class BatchScheduler:
    """Drives the per-item pipelines over a selection, one chunk at a time.

    Items inside a chunk run concurrently; chunk N always resolves before
    chunk N+1 starts. Cancellation is only observed between chunks, so an
    in-flight chunk always drains.
    """

    def __init__(
        self,
        selection_provider: Callable,
        processor: Optional[WorkflowTagger] = None,
        chunk_size=None,
        chunk_delay: Optional[float] = None,
        log_capacity: Optional[int] = None,
        on_progress: Optional[Callable[[int, int], None]] = None,
    ):
        self.logger = get_logger("scheduler")
        self.selection_provider = selection_provider
        self.processor = processor or WorkflowTagger()
        self.chunk_size = normalize_chunk_size(chunk_size if chunk_size is not None else settings.chunk_size)
        self.chunk_delay = settings.chunk_delay if chunk_delay is None else chunk_delay
        self.log_capacity = log_capacity
        self.on_progress = on_progress
        self.context: Optional[RunContext] = None

    @property
    def state(self) -> RunState:
        return self.context.state if self.context else RunState.IDLE

    @property
    def is_running(self) -> bool:
        return self.state is RunState.RUNNING

    async def start_tagging(self) -> BatchResult:
        """Add derived tags to every selected item."""
        return await self.run(BatchMode.TAG)

    async def start_untagging(self) -> BatchResult:
        """Remove derived tags from every selected item."""
        return await self.run(BatchMode.UNTAG)

    def cancel(self) -> bool:
        """Request cancellation at the next chunk boundary.

        Returns False when nothing is running or cancellation is already pending.
        """
        if not self.is_running:
            return False
        if not self.context.request_cancel():
            return False
        self.context.log.warning("⏹️  Cancellation requested, finishing current chunk...")
        return True

    async def _select_items(self) -> List:
        try:
            items = self.selection_provider()
            if inspect.isawaitable(items):
                items = await items
            return list(items or [])
        except Exception as e:
            raise InitializationError(str(e) or type(e).__name__) from e

    async def _run_chunk(self, chunk: List, mode: BatchMode) -> List[ItemResult]:
        if mode is BatchMode.TAG:
            pipeline = self.processor.process_item
        else:
            pipeline = self.processor.process_item_for_removal

        outcomes = await asyncio.gather(*(pipeline(item) for item in chunk), return_exceptions=True)

        results = []
        for item, outcome in zip(chunk, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                outcome = ItemResult(
                    item_name=str(getattr(item, "name", item)),
                    outcome=ItemOutcome.UNEXPECTED_FAILURE,
                    error=str(outcome) or type(outcome).__name__,
                )
            results.append(outcome)
        return results

    async def iter_chunks(self, items: List, mode: BatchMode,
                          context: RunContext) -> AsyncIterator[ChunkResult]:
        """Yield one resolved chunk at a time until done or cancelled."""
        total = len(items)
        for index, start in enumerate(range(0, total, self.chunk_size)):
            if index:
                await asyncio.sleep(self.chunk_delay)
            if context.cancel_requested:
                return

            chunk = items[start:start + self.chunk_size]
            chunk_start = time.time()
            results = await self._run_chunk(chunk, mode)
            yield ChunkResult(
                index=index,
                processed=min(start + len(chunk), total),
                total=total,
                results=results,
                processing_time=time.time() - chunk_start,
            )

    async def run(self, mode: BatchMode) -> BatchResult:
        """Run a full batch and return its aggregate result."""
        if self.is_running:
            raise SchedulerBusyError(f"A {self.context.mode.value} run is already in progress")

        context = RunContext(mode, self.log_capacity)
        context.state = RunState.RUNNING
        self.context = context
        log = context.log

        log.info("🚀 Starting tagging..." if mode is BatchMode.TAG else "🧹 Starting tag removal...")

        try:
            items = await self._select_items()
        except InitializationError as e:
            context.error = str(e)
            context.state = RunState.ABORTED
            log.error(f"❌ Initialization failed: {e}")
            return context.to_result()

        context.total = len(items)
        if not items:
            log.info("No items selected")
            context.state = RunState.COMPLETED
            return context.to_result()

        log.info(f"🎯 Processing {len(items)} items in chunks of {self.chunk_size}")

        try:
            async for chunk in self.iter_chunks(items, mode, context):
                for result in chunk.results:
                    context.record(result)
                    log_item_result(context, result)
                log.info(f"📊 Progress: {chunk.processed}/{chunk.total}")
                if self.on_progress:
                    self.on_progress(chunk.processed, chunk.total)
        except BaseException:
            context.state = RunState.ABORTED
            raise

        if context.cancel_requested:
            context.state = RunState.CANCELLED
        else:
            context.state = RunState.COMPLETED

        log.info(SEPARATOR)
        log.info(summary_line(context))
        self.logger.debug(f"Run finished in {context.elapsed:.2f}s: {dict(context.outcomes)}")
        return context.to_result()


def summary_line(context: RunContext) -> str:
    """Terminal line for a finished or cancelled run."""
    cancelled = context.state is RunState.CANCELLED
    if context.mode is BatchMode.TAG:
        counts = f"{context.success} tagged, {context.skipped} skipped, {context.errors} errors"
        return f"⏹️  Cancelled: {counts}" if cancelled else f"🏁 Completed: {counts}"
    counts = f"{context.removed} updated, {context.skipped} skipped"
    return f"⏹️  Removal cancelled: {counts}" if cancelled else f"🏁 Removal completed: {counts}"


def log_item_result(context: RunContext, result: ItemResult) -> None:
    """Write the log lines for one item outcome."""
    log = context.log
    name = result.item_name
    outcome = result.outcome

    if outcome is ItemOutcome.TAGGED:
        log.info(f"🏷️  Tags added ({len(result.changed)}): {', '.join(result.changed)}")
        log.info(f"✅ Tagged {name}")
    elif outcome is ItemOutcome.REMOVED:
        log.info(f"🧹 Removing {len(result.changed)} tags from {name}")
        log.info(f"   Tags removed: {', '.join(result.changed)}")
    elif outcome is ItemOutcome.NO_CHANGE:
        if context.mode is BatchMode.TAG:
            log.info(f"⏭️  Skipped {name}: all tags already present")
        else:
            log.info(f"⏭️  No matching tags on {name}")
    elif outcome is ItemOutcome.NO_CANDIDATES:
        log.info(f"ℹ️  No candidate tags in {name}")
    elif outcome is ItemOutcome.EMPTY_GRAPH:
        log.info(f"ℹ️  No nodes in workflow of {name}")
    elif outcome is ItemOutcome.MISSING_METADATA:
        log.warning(f"⚠️  No workflow metadata in {name}")
    elif outcome is ItemOutcome.MALFORMED_GRAPH:
        log.warning(f"⚠️  Invalid workflow JSON in {name}")
    elif outcome is ItemOutcome.PERSISTENCE_FAILURE:
        log.error(f"❌ Failed to save {name}: {result.error}")
    else:
        log.error(f"❌ Error processing {name}: {result.error}")
