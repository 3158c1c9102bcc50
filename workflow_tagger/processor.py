"""
Per-item pipelines: metadata lookup, graph parsing, tag derivation and
reconciliation, then persistence.
"""

import time
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Union
from .graph_parser import ParseError, parse_graph
from .metadata_locator import locate_workflow_text
from .metadata_reader import MetadataFields, load_metadata_fields
from .models import ItemOutcome, ItemResult, ReconcileMode, TagCandidate, TagToggles
from .reconciler import reconcile
from .tag_deriver import derive_tags
from .config import settings
from .logging import get_logger


MetadataLoader = Callable[[Union[str, Path]], Awaitable[MetadataFields]]


class WorkflowTagger:
    """Runs the tag/untag pipeline for single items.

    Pipelines never raise: every failure is reported as an
    :class:`ItemResult` outcome so one bad item cannot stop a batch.
    """

    def __init__(self, toggles: Optional[TagToggles] = None,
                 metadata_loader: Optional[MetadataLoader] = None):
        self.logger = get_logger("processor")
        self.toggles = toggles or TagToggles.from_settings(settings)
        self.metadata_loader = metadata_loader or load_metadata_fields

    async def _candidates(self, item, result: ItemResult) -> Optional[List[TagCandidate]]:
        """Derive candidates for an item, or set ``result.outcome`` and return None."""
        fields = await self.metadata_loader(item.file_path)
        text = locate_workflow_text(fields)
        if not text:
            result.outcome = ItemOutcome.MISSING_METADATA
            return None

        try:
            graph = parse_graph(text)
        except ParseError as e:
            result.outcome = ItemOutcome.MALFORMED_GRAPH
            result.error = str(e)
            return None

        if graph.is_empty:
            result.outcome = ItemOutcome.EMPTY_GRAPH
            return None

        candidates = derive_tags(graph, self.toggles)
        if not candidates:
            result.outcome = ItemOutcome.NO_CANDIDATES
            return None
        return candidates

    async def _process(self, item, mode: ReconcileMode) -> ItemResult:
        start_time = time.time()
        result = ItemResult(item_name=item.name, outcome=ItemOutcome.UNEXPECTED_FAILURE)

        try:
            candidates = await self._candidates(item, result)
            if candidates is not None:
                reconciled = reconcile(item.tags, candidates, mode)
                if not reconciled.has_changes:
                    result.outcome = ItemOutcome.NO_CHANGE
                else:
                    previous_tags = item.tags
                    item.tags = reconciled.result_tags
                    result.changed = reconciled.changed
                    try:
                        await item.save()
                    except Exception as e:
                        item.tags = previous_tags
                        result.outcome = ItemOutcome.PERSISTENCE_FAILURE
                        result.error = str(e)
                    else:
                        result.outcome = ItemOutcome.TAGGED if mode is ReconcileMode.ADD else ItemOutcome.REMOVED
        except Exception as e:
            result.outcome = ItemOutcome.UNEXPECTED_FAILURE
            result.error = str(e) or type(e).__name__
            self.logger.debug(f"Pipeline failed for {item.name}", exc_info=True)

        result.processing_time = time.time() - start_time
        return result

    async def process_item(self, item) -> ItemResult:
        """Add derived tags to an item."""
        return await self._process(item, ReconcileMode.ADD)

    async def process_item_for_removal(self, item) -> ItemResult:
        """Remove derived tags from an item."""
        return await self._process(item, ReconcileMode.REMOVE)

    async def inspect_file(self, file_path: Union[str, Path]) -> List[TagCandidate]:
        """Derive candidates for a file without touching any item.

        Raises:
            ParseError: the embedded workflow is not valid JSON.
        """
        fields = await self.metadata_loader(file_path)
        text = locate_workflow_text(fields)
        if not text:
            return []
        return derive_tags(parse_graph(text), self.toggles)
