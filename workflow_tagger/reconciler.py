"""
Add/remove reconciliation of derived tags against an item's tag list.
"""

from typing import Iterable, Iterator, List, Sequence, Union
from .models import ReconcileMode, ReconcileResult, TagCandidate


def _tag_value(tag: Union[str, TagCandidate]) -> str:
    return tag.value if isinstance(tag, TagCandidate) else tag


class CaseInsensitiveTagSet:
    """Set of tags compared by their lower-cased form."""

    def __init__(self, tags: Iterable[Union[str, TagCandidate]] = ()):
        self._keys = set()
        for tag in tags:
            self.add(tag)

    @staticmethod
    def key(tag: Union[str, TagCandidate]) -> str:
        return _tag_value(tag).lower()

    def add(self, tag: Union[str, TagCandidate]) -> bool:
        """Add a tag; returns False if an equal tag (ignoring case) was present."""
        key = self.key(tag)
        if key in self._keys:
            return False
        self._keys.add(key)
        return True

    def __contains__(self, tag) -> bool:
        return self.key(tag) in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self) -> Iterator[str]:
        return iter(self._keys)


def add_tags(existing: Sequence[str], candidates: Iterable[Union[str, TagCandidate]]) -> ReconcileResult:
    """Append candidates missing from ``existing``, keeping existing order."""
    result_tags = list(existing)
    members = CaseInsensitiveTagSet(result_tags)
    changed = []
    for candidate in candidates:
        value = _tag_value(candidate)
        if members.add(value):
            result_tags.append(value)
            changed.append(value)
    return ReconcileResult(result_tags=result_tags, changed=changed)


def remove_tags(existing: Sequence[str], candidates: Iterable[Union[str, TagCandidate]]) -> ReconcileResult:
    """Drop every existing tag matching a candidate, keeping survivors in order."""
    targets = CaseInsensitiveTagSet(candidates)
    result_tags: List[str] = []
    changed: List[str] = []
    for tag in existing:
        if tag in targets:
            changed.append(tag)
        else:
            result_tags.append(tag)
    return ReconcileResult(result_tags=result_tags, changed=changed)


def reconcile(existing: Sequence[str], candidates: Iterable[Union[str, TagCandidate]],
              mode: ReconcileMode) -> ReconcileResult:
    """Apply candidates to an existing tag list in add or remove mode."""
    if mode is ReconcileMode.ADD:
        return add_tags(existing or [], candidates)
    if mode is ReconcileMode.REMOVE:
        return remove_tags(existing or [], candidates)
    raise ValueError(f"Unknown reconcile mode: {mode}")
