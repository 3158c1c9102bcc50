"""
File reading and metadata field extraction for image containers.
"""

import asyncio
import io
from pathlib import Path
from typing import Any, Dict, Union
from PIL import Image, UnidentifiedImageError
from PIL.ExifTags import IFD, TAGS
from .logging import get_logger


logger = get_logger("metadata_reader")

MetadataFields = Dict[str, Dict[str, str]]


class MetadataReadError(Exception):
    """Image bytes could not be opened or their metadata decoded."""
    pass


async def read_file(file_path: Union[str, Path]) -> bytes:
    """Read a file's bytes without blocking the event loop."""
    return await asyncio.to_thread(Path(file_path).read_bytes)


def _decode_exif_value(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        # Pillow decodes EXIF ASCII as latin-1; recover UTF-8 payloads
        try:
            return value.encode("latin-1").decode("utf-8")
        except UnicodeError:
            return value
    return value


def _add_field(fields: MetadataFields, name: str, value: Any) -> None:
    if isinstance(value, str) and name not in fields:
        fields[name] = {"description": value}


def read_metadata_fields(data: bytes) -> MetadataFields:
    """Collect EXIF tags and text chunks as ``{name: {"description": str}}``.

    Raises:
        MetadataReadError: the bytes are not a readable image.
    """
    fields: MetadataFields = {}
    try:
        with Image.open(io.BytesIO(data)) as img:
            exif = img.getexif()
            for tag_id, value in exif.items():
                _add_field(fields, TAGS.get(tag_id, f"Tag_{tag_id}"), _decode_exif_value(value))
            for tag_id, value in exif.get_ifd(IFD.Exif).items():
                _add_field(fields, TAGS.get(tag_id, f"Tag_{tag_id}"), _decode_exif_value(value))

            # PNG tEXt/iTXt chunks and other container-level text, already decoded by Pillow
            info = getattr(img, "info", {}) or {}
            for key, value in info.items():
                if isinstance(key, str) and isinstance(value, str):
                    _add_field(fields, key, value)
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise MetadataReadError(f"Unreadable image: {e}") from e

    logger.debug(f"Read {len(fields)} metadata fields")
    return fields


async def load_metadata_fields(file_path: Union[str, Path]) -> MetadataFields:
    """Read a file and extract its metadata fields."""
    data = await read_file(file_path)
    return await asyncio.to_thread(read_metadata_fields, data)
