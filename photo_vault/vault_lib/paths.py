"""Path helpers: raw format classification, upload acceptance, storage layout."""
from __future__ import annotations

import re
from pathlib import Path, PurePath
from typing import Optional, Union

from .errors import UnsupportedUpload

PathLike = Union[str, PurePath]

RAW_EXTENSIONS = frozenset(
    {
        ".cr2", ".cr3", ".crw", ".nef", ".nrw", ".arw", ".srf", ".sr2",
        ".dng", ".raw", ".rwl", ".rw2", ".orf", ".raf", ".pef", ".ptx",
        ".srw", ".dcr", ".k25", ".kdc", ".mrw", ".x3f", ".3fr", ".ari",
        ".bay", ".cap", ".iiq", ".eip", ".dcs", ".drf", ".erf",
        ".fff", ".mef", ".mos", ".pxn", ".r3d", ".rwz",
    }
)

GENERIC_MIME = "application/octet-stream"

ALLOWED_MIME_TYPES = frozenset(
    {
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/gif",
        "image/webp",
        "image/tiff",
        "image/bmp",
        GENERIC_MIME,
        # Browsers that recognise raw files report vendor types.
        "image/x-canon-cr2",
        "image/x-canon-crw",
        "image/x-nikon-nef",
        "image/x-sony-arw",
        "image/x-adobe-dng",
        "image/x-panasonic-raw",
        "image/x-olympus-orf",
        "image/x-fuji-raf",
        "image/x-pentax-pef",
        "image/x-samsung-srw",
        "image/x-kodak-dcr",
        "image/x-kodak-k25",
        "image/x-kodak-kdc",
        "image/x-minolta-mrw",
        "image/x-sigma-x3f",
    }
)

MAX_FOLDER_NAME = 100
_INVALID_FOLDER_CHARS = re.compile(r'[<>:"/\\|?*]')
_WHITESPACE = re.compile(r"\s+")


def extension_of(filename: PathLike) -> str:
    return PurePath(str(filename)).suffix.lower()


def is_raw_file(filename: PathLike) -> bool:
    return extension_of(filename) in RAW_EXTENSIONS


def accept_upload(filename: PathLike, mime_type: Optional[str]) -> bool:
    """Return True when the upload boundary should take this file.

    A generic ``application/octet-stream`` upload is only accepted when the
    extension names a raw camera format.
    """
    mime = (mime_type or "").strip().lower()
    if mime not in ALLOWED_MIME_TYPES:
        return False
    if mime == GENERIC_MIME:
        return is_raw_file(filename)
    return True


def validate_upload(filename: PathLike, mime_type: Optional[str]) -> None:
    if not accept_upload(filename, mime_type):
        raise UnsupportedUpload(
            f"Invalid file type for {PurePath(str(filename)).name} ({mime_type or 'unknown'}). "
            "Only image and raw files are allowed."
        )


def sanitize_folder_name(name: str) -> str:
    cleaned = _INVALID_FOLDER_CHARS.sub("", name)
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()
    return cleaned[:MAX_FOLDER_NAME]


def thumbnail_relpath(filename: str, event_name: Optional[str] = None) -> str:
    """Deterministic storage path of the preview for ``filename``."""
    name = f"thumb_{PurePath(filename).name}"
    if event_name:
        return f"events/{sanitize_folder_name(event_name)}/thumbnails/{name}"
    return f"thumbnails/{name}"


def avatar_relpath(person_id: str) -> str:
    return f"avatars/avatar_{person_id}.jpg"


def resolve_storage_path(storage_root: Path, relpath: str) -> Path:
    """Absolute location of a stored relpath; relpaths may not leave the root."""
    rel = PurePath(relpath)
    if rel.is_absolute() or ".." in rel.parts:
        raise ValueError(f"Stored path {relpath!r} escapes the storage root")
    return storage_root / rel
