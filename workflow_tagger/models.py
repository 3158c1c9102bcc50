"""
Data models for the Workflow Auto-Tagger.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field


NodeId = Union[str, int]


def node_key(node_id: Any) -> str:
    """String form used to match node ids; integral floats match their int (3.0 -> "3")."""
    if isinstance(node_id, float) and node_id.is_integer():
        node_id = int(node_id)
    return str(node_id)


class GraphEncoding(str, Enum):
    """Shape of the workflow JSON the graph was built from."""
    ARRAY = "array"              # {"nodes": [{"id": 1, ...}, ...]}
    MAP = "map"                  # {"1": {...}, "2": {...}}
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class NodeRef:
    """Reference to another node's output slot."""
    node_id: NodeId
    slot: Any = 0


@dataclass
class Node:
    """Workflow graph vertex."""
    id: Optional[NodeId]
    kind: str
    inputs: Dict[str, Any] = field(default_factory=dict)

    def input(self, name: str) -> Any:
        return self.inputs.get(name)

    def ref(self, name: str) -> Optional[NodeRef]:
        """Resolve an input as a ``[node_id, slot]`` reference pair."""
        value = self.inputs.get(name)
        if isinstance(value, (list, tuple)) and len(value) >= 1 and isinstance(value[0], (str, int, float)):
            return NodeRef(node_id=value[0], slot=value[1] if len(value) > 1 else 0)
        return None


@dataclass
class Graph:
    """Uniform node graph, independent of the source encoding."""
    nodes: List[Node] = field(default_factory=list)
    encoding: GraphEncoding = GraphEncoding.UNRECOGNIZED
    by_id: Dict[str, Node] = field(default_factory=dict)

    def __post_init__(self):
        if not self.by_id:
            self.by_id = {node_key(node.id): node for node in self.nodes if node.id is not None}

    def get(self, node_id: Optional[NodeId]) -> Optional[Node]:
        """Look up a node; ids compare by their string form, so 3 and "3" match."""
        if node_id is None:
            return None
        return self.by_id.get(node_key(node_id))

    def resolve(self, ref: Optional[NodeRef]) -> Optional[Node]:
        return self.get(ref.node_id) if ref else None

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    def __len__(self) -> int:
        return len(self.nodes)


class TagOrigin(str, Enum):
    """Where a candidate tag came from."""
    LOADER = "loader"
    POSITIVE_PROMPT = "positivePrompt"
    NEGATIVE_PROMPT = "negativePrompt"


class TagCandidate(BaseModel):
    """Normalized tag derived from a workflow graph."""
    value: str
    origin: TagOrigin

    model_config = {"frozen": True}


class TagToggles(BaseModel):
    """Which tag groups to derive."""
    checkpoint: bool = True
    lora: bool = True
    positive_prompt: bool = True
    negative_prompt: bool = True

    @classmethod
    def from_settings(cls, settings) -> "TagToggles":
        return cls(
            checkpoint=settings.include_checkpoint,
            lora=settings.include_lora,
            positive_prompt=settings.include_positive_prompt,
            negative_prompt=settings.include_negative_prompt,
        )

    @property
    def loaders(self) -> bool:
        return self.checkpoint or self.lora

    @property
    def prompts(self) -> bool:
        return self.positive_prompt or self.negative_prompt


class ReconcileMode(str, Enum):
    ADD = "add"
    REMOVE = "remove"


class ReconcileResult(BaseModel):
    """New tag list plus the tags that were added or removed."""
    result_tags: List[str] = []
    changed: List[str] = []

    @property
    def has_changes(self) -> bool:
        return bool(self.changed)


class ItemOutcome(str, Enum):
    """Terminal outcome of one item's pipeline."""
    TAGGED = "tagged"
    REMOVED = "removed"
    NO_CHANGE = "no_change"
    NO_CANDIDATES = "no_candidates"
    EMPTY_GRAPH = "empty_graph"
    MISSING_METADATA = "missing_metadata"
    MALFORMED_GRAPH = "malformed_graph"
    PERSISTENCE_FAILURE = "persistence_failure"
    UNEXPECTED_FAILURE = "unexpected_failure"

    @property
    def is_failure(self) -> bool:
        return self in (
            ItemOutcome.MISSING_METADATA,
            ItemOutcome.MALFORMED_GRAPH,
            ItemOutcome.PERSISTENCE_FAILURE,
            ItemOutcome.UNEXPECTED_FAILURE,
        )


class BatchMode(str, Enum):
    TAG = "tag"
    UNTAG = "untag"


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ABORTED = "aborted"


class ItemResult(BaseModel):
    """Result of processing a single item."""
    item_name: str
    outcome: ItemOutcome
    changed: List[str] = []
    error: Optional[str] = None
    processing_time: float = 0.0


class ChunkResult(BaseModel):
    """Result of one scheduled chunk."""
    index: int
    processed: int
    total: int
    results: List[ItemResult]
    processing_time: float = 0.0


class BatchResult(BaseModel):
    """Aggregate result of a tagging or untagging run."""
    mode: BatchMode
    state: RunState
    total: int = 0
    processed: int = 0
    success: int = 0
    removed: int = 0
    skipped: int = 0
    errors: int = 0
    processing_time: float = 0.0
    error: Optional[str] = None
    log: List[str] = Field(default_factory=list)
