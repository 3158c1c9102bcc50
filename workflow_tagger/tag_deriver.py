"""
Tag derivation from a normalized workflow graph.
"""

import ntpath
import os
from typing import Iterable, List, Optional
from .models import Graph, Node, TagCandidate, TagOrigin, TagToggles


CHECKPOINT_LOADER_KINDS = frozenset({"CheckpointLoaderSimple", "CheckpointLoader"})
LORA_LOADER_KINDS = frozenset({"LoraLoader"})
SAMPLER_KINDS = frozenset({"KSampler"})

NEGATIVE_PREFIX = "neg:"


def loader_tag(filename) -> Optional[str]:
    """Model file name without directories or extension, lower-cased.

    >>> loader_tag("SDXL\\\\sd_xl_base_1.0.safetensors")
    'sd_xl_base_1.0'
    """
    if not isinstance(filename, str):
        return None
    # ntpath splits on both "/" and "\\"
    stem, _ = os.path.splitext(ntpath.basename(filename.strip()))
    stem = stem.strip().lower()
    return stem or None


def split_prompt(text, prefix: str = "") -> List[str]:
    """Split prompt text on commas and newlines into lower-cased tags."""
    if not text or not isinstance(text, str):
        return []
    tags = []
    for segment in text.replace("\n", ",").split(","):
        tag = (prefix + segment.strip()).lower()
        if len(tag) > len(prefix):
            tags.append(tag)
    return tags


def _loader_names(nodes: Iterable[Node], kinds: frozenset, input_name: str) -> List[str]:
    names = []
    for node in nodes:
        if node.kind in kinds:
            tag = loader_tag(node.input(input_name))
            if tag:
                names.append(tag)
    return names


def loader_candidates(graph: Graph, toggles: TagToggles) -> List[TagCandidate]:
    """Checkpoint tags first, then LoRA tags, each in node order."""
    names = []
    if toggles.checkpoint:
        names.extend(_loader_names(graph.nodes, CHECKPOINT_LOADER_KINDS, "ckpt_name"))
    if toggles.lora:
        names.extend(_loader_names(graph.nodes, LORA_LOADER_KINDS, "lora_name"))
    return [TagCandidate(value=name, origin=TagOrigin.LOADER) for name in names]


def find_sampler(graph: Graph) -> Optional[Node]:
    """The last sampler in node order is the authoritative one."""
    samplers = [node for node in graph.nodes if node.kind in SAMPLER_KINDS]
    return samplers[-1] if samplers else None


def _prompt_text(graph: Graph, sampler: Node, input_name: str):
    target = graph.resolve(sampler.ref(input_name))
    return target.input("text") if target else None


def prompt_candidates(graph: Graph, toggles: TagToggles) -> List[TagCandidate]:
    """Positive then negative prompt tags of the authoritative sampler."""
    if not toggles.prompts:
        return []
    sampler = find_sampler(graph)
    if sampler is None:
        return []

    candidates = []
    if toggles.positive_prompt:
        candidates.extend(
            TagCandidate(value=tag, origin=TagOrigin.POSITIVE_PROMPT)
            for tag in split_prompt(_prompt_text(graph, sampler, "positive"))
        )
    if toggles.negative_prompt:
        candidates.extend(
            TagCandidate(value=tag, origin=TagOrigin.NEGATIVE_PROMPT)
            for tag in split_prompt(_prompt_text(graph, sampler, "negative"), NEGATIVE_PREFIX)
        )
    return candidates


def derive_tags(graph: Graph, toggles: TagToggles) -> List[TagCandidate]:
    """Ordered candidates: checkpoint, LoRA, positive prompt, negative prompt."""
    candidates = []
    if toggles.loaders:
        candidates.extend(loader_candidates(graph, toggles))
    candidates.extend(prompt_candidates(graph, toggles))
    return candidates
