"""
Normalizes workflow JSON into a uniform node graph.

Two encodings are in the wild:

1. Editor workflow: ``{"nodes": [{"id": 3, "type": "KSampler", ...}, ...]}``
2. API prompt graph: ``{"3": {"class_type": "KSampler", "inputs": {...}}, ...}``

Both resolve to a single :class:`Graph`; anything else parses to an empty graph.
"""

import json
from typing import Any, Mapping
from .models import Graph, GraphEncoding, Node
from .logging import get_logger


logger = get_logger("graph_parser")


class ParseError(ValueError):
    """Workflow text is not valid JSON."""
    pass


def detect_encoding(data: Any) -> GraphEncoding:
    """Classify the decoded JSON value."""
    if isinstance(data, Mapping):
        if isinstance(data.get("nodes"), list):
            return GraphEncoding.ARRAY
        return GraphEncoding.MAP
    return GraphEncoding.UNRECOGNIZED


def _node_kind(body: Mapping) -> str:
    kind = body.get("class_type") or body.get("type") or ""
    return kind if isinstance(kind, str) else str(kind)


def _node_inputs(body: Mapping) -> dict:
    # Editor nodes carry a list of input sockets instead of a value mapping
    inputs = body.get("inputs")
    return dict(inputs) if isinstance(inputs, Mapping) else {}


def _build_node(node_id: Any, body: Mapping) -> Node:
    return Node(id=node_id, kind=_node_kind(body), inputs=_node_inputs(body))


def build_graph(data: Any) -> Graph:
    """Build a graph from an already decoded JSON value."""
    encoding = detect_encoding(data)

    if encoding is GraphEncoding.ARRAY:
        nodes = [
            _build_node(body.get("id"), body)
            for body in data["nodes"]
            if isinstance(body, Mapping)
        ]
    elif encoding is GraphEncoding.MAP:
        nodes = [
            _build_node(key, body)
            for key, body in data.items()
            if isinstance(body, Mapping)
        ]
    else:
        nodes = []

    graph = Graph(nodes=nodes, encoding=encoding)
    logger.debug(f"Parsed {len(graph)} nodes ({encoding.value} encoding)")
    return graph


def parse_graph(text: str) -> Graph:
    """Parse raw workflow text.

    Raises:
        ParseError: only when the text is not valid JSON. Unexpected
            shapes produce an empty graph instead.
    """
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as e:
        raise ParseError(f"Invalid workflow JSON: {e}") from e
    return build_graph(data)
