"""
Eagle library item store.

An Eagle library keeps every asset in ``images/<id>.info/`` next to a
``metadata.json`` holding its name, extension and tag list.
"""

import asyncio
import json
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union
from .logging import get_logger


METADATA_FILE = "metadata.json"


class LibraryError(Exception):
    """Custom exception for library access errors."""
    pass


class LibraryItem:
    """A single library asset with a mutable tag list."""

    def __init__(self, info_dir: Path, metadata: Dict[str, Any]):
        self.info_dir = Path(info_dir)
        self.metadata = metadata
        self.tags: List[str] = list(metadata.get("tags") or [])

    @property
    def id(self) -> str:
        return str(self.metadata.get("id") or self.info_dir.name.split(".")[0])

    @property
    def name(self) -> str:
        return str(self.metadata.get("name") or self.id)

    @property
    def file_path(self) -> Path:
        ext = self.metadata.get("ext")
        filename = f"{self.name}.{ext}" if ext else self.name
        return self.info_dir / filename

    @property
    def metadata_path(self) -> Path:
        return self.info_dir / METADATA_FILE

    @classmethod
    def load(cls, info_dir: Union[str, Path]) -> "LibraryItem":
        """Load an item from its ``<id>.info`` directory."""
        info_dir = Path(info_dir)
        try:
            with open(info_dir / METADATA_FILE, "r", encoding="utf-8") as f:
                metadata = json.load(f)
        except (OSError, ValueError) as e:
            raise LibraryError(f"Cannot read item metadata in {info_dir}: {e}") from e
        if not isinstance(metadata, dict):
            raise LibraryError(f"Item metadata in {info_dir} is not an object")
        return cls(info_dir, metadata)

    def _write_metadata(self) -> None:
        data = dict(self.metadata)
        data["tags"] = list(self.tags)
        data["modificationTime"] = int(time.time() * 1000)

        fd, tmp_path = tempfile.mkstemp(dir=self.info_dir, prefix=".metadata-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
            os.replace(tmp_path, self.metadata_path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        self.metadata = data

    async def save(self) -> None:
        """Persist the current tag list to ``metadata.json``."""
        await asyncio.to_thread(self._write_metadata)

    def __repr__(self) -> str:
        return f"LibraryItem(id={self.id!r}, name={self.name!r})"


class EagleLibrary:
    """Selection provider backed by an Eagle ``.library`` folder."""

    def __init__(self, library_path: Union[str, Path]):
        self.library_path = Path(library_path)
        self.images_dir = self.library_path / "images"
        self.logger = get_logger("item_store")

    def _info_dirs(self) -> List[Path]:
        if not self.images_dir.is_dir():
            raise LibraryError(f"Not an Eagle library (missing images/): {self.library_path}")
        return sorted(p for p in self.images_dir.iterdir() if p.is_dir() and p.name.endswith(".info"))

    def _load_items(self, item_ids: Optional[Iterable[str]] = None) -> List[LibraryItem]:
        if item_ids is None:
            items = []
            for info_dir in self._info_dirs():
                if not (info_dir / METADATA_FILE).exists():
                    continue
                item = LibraryItem.load(info_dir)
                if not item.metadata.get("isDeleted"):
                    items.append(item)
            return items

        if not self.images_dir.is_dir():
            raise LibraryError(f"Not an Eagle library (missing images/): {self.library_path}")
        items = []
        for item_id in item_ids:
            info_dir = self.images_dir / f"{item_id}.info"
            if not info_dir.is_dir():
                raise LibraryError(f"Item not found: {item_id}")
            items.append(LibraryItem.load(info_dir))
        return items

    async def select_items(self, item_ids: Optional[Iterable[str]] = None,
                           tag: Optional[str] = None) -> List[LibraryItem]:
        """Return the requested items, optionally only those carrying ``tag``."""
        ids = list(item_ids) if item_ids else None
        items = await asyncio.to_thread(self._load_items, ids)
        if tag:
            wanted = tag.lower()
            items = [item for item in items if any(t.lower() == wanted for t in item.tags)]
        self.logger.debug(f"Selected {len(items)} items from {self.library_path}")
        return items
