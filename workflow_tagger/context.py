"""
Per-run state shared by the batch scheduler and the cancel control.
"""

import time
from collections import Counter
from typing import Optional
from .logging import RunLog
from .models import BatchMode, BatchResult, ItemOutcome, ItemResult, RunState


class RunContext:
    """Cancellation flag, counters and bounded log of one batch run."""

    def __init__(self, mode: BatchMode, log_capacity: Optional[int] = None):
        self.mode = mode
        self.state = RunState.IDLE
        self.cancel_requested = False
        self.log = RunLog(log_capacity)
        self.outcomes: Counter = Counter()
        self.total = 0
        self.processed = 0
        self.success = 0
        self.removed = 0
        self.skipped = 0
        self.errors = 0
        self.started_at = time.time()
        self.error: Optional[str] = None

    def request_cancel(self) -> bool:
        """Flag the run for cancellation; False if already flagged."""
        if self.cancel_requested:
            return False
        self.cancel_requested = True
        return True

    def record(self, result: ItemResult) -> None:
        """Fold one resolved item result into the counters."""
        outcome = result.outcome
        self.outcomes[outcome] += 1
        self.processed += 1

        if self.mode is BatchMode.UNTAG:
            if outcome is ItemOutcome.REMOVED:
                self.removed += 1
            else:
                self.skipped += 1
            return

        if outcome is ItemOutcome.TAGGED:
            self.success += 1
        elif outcome is ItemOutcome.NO_CHANGE:
            self.skipped += 1
        elif outcome.is_failure:
            self.errors += 1

    @property
    def elapsed(self) -> float:
        return time.time() - self.started_at

    def to_result(self) -> BatchResult:
        return BatchResult(
            mode=self.mode,
            state=self.state,
            total=self.total,
            processed=self.processed,
            success=self.success,
            removed=self.removed,
            skipped=self.skipped,
            errors=self.errors,
            processing_time=self.elapsed,
            error=self.error,
            log=self.log.lines(),
        )
