"""Capture metadata for raw containers Pillow cannot open, read through exiftool."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import ToolError
from .imaging import ImageMetadata, parse_exif_datetime
from .tools import is_converter_available, run_tool

logger = logging.getLogger(__name__)

EXIFTOOL_FIELDS = ("-DateTimeOriginal", "-CreateDate", "-ImageWidth", "-ImageHeight")
DATE_FIELDS = ("DateTimeOriginal", "CreateDate")


def read_raw_metadata(path: Path, *, binary: str, timeout: float) -> ImageMetadata:
    """Dimensions and capture date of ``path``; empty fields when exiftool is missing or fails."""
    empty = ImageMetadata(width=None, height=None, captured_at=None)
    if not is_converter_available(binary):
        logger.debug("%s unavailable, no raw metadata for %s", binary, path.name)
        return empty
    try:
        result = run_tool([binary, "-j", "-n", *EXIFTOOL_FIELDS, str(path)], timeout=timeout)
    except ToolError as exc:
        logger.info("Could not read metadata from %s: %s", path.name, exc)
        return empty
    record = _first_record(result.stdout)
    if record is None:
        logger.info("exiftool returned no metadata for %s", path.name)
        return empty
    captured_at = None
    for field in DATE_FIELDS:
        captured_at = parse_exif_datetime(record.get(field))
        if captured_at:
            break
    return ImageMetadata(
        width=_positive_int(record.get("ImageWidth")),
        height=_positive_int(record.get("ImageHeight")),
        captured_at=captured_at,
    )


def _first_record(stdout: Optional[bytes]) -> Optional[Dict[str, Any]]:
    try:
        payload = json.loads((stdout or b"").decode("utf-8", errors="replace"))
    except ValueError:
        return None
    if isinstance(payload, list) and payload and isinstance(payload[0], dict):
        return payload[0]
    return None


def _positive_int(value: Any) -> Optional[int]:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None
