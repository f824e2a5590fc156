"""Person avatars cropped from assigned faces."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from PIL import Image, ImageOps

from .imaging import crop_box, save_jpeg
from .models import FaceRecord
from .orientation import ensure_display_orientation
from .paths import avatar_relpath, resolve_storage_path

AVATAR_SIZE = 200
AVATAR_QUALITY = 85
AVATAR_PADDING = 0.3

logger = logging.getLogger(__name__)


def generate_avatar(
    photo_path: Path,
    face: FaceRecord,
    person_id: str,
    storage_root: Path,
) -> str:
    """Crop ``face`` out of ``photo_path`` and store it as the person's avatar.

    The bounding box is padded by 30% of its larger side on every edge and
    clamped to the image before the 200x200 cover resize.
    """
    relpath = avatar_relpath(person_id)
    target = resolve_storage_path(storage_root, relpath)
    with Image.open(photo_path) as img:
        img.load()
        oriented = ensure_display_orientation(img)
        box = crop_box(face.bbox.as_tuple(), oriented.size, AVATAR_PADDING)
        crop = oriented.crop(box)
        avatar = ImageOps.fit(
            crop,
            (AVATAR_SIZE, AVATAR_SIZE),
            method=Image.Resampling.LANCZOS,
            centering=(0.5, 0.5),
        )
        if avatar.mode != "RGB":
            avatar = avatar.convert("RGB")
        save_jpeg(avatar, target, quality=AVATAR_QUALITY)
    return relpath


def select_avatar(
    photo_path: Path,
    face: FaceRecord,
    person_id: str,
    existing_avatar: Optional[str],
    storage_root: Path,
) -> Optional[str]:
    """Return the avatar path a person should carry after ``face`` is assigned.

    The first avatar ever generated is kept; there is no quality comparison
    between faces yet.
    """
    if existing_avatar:
        return existing_avatar
    return generate_avatar(photo_path, face, person_id, storage_root)


def delete_avatar(relpath: Optional[str], storage_root: Path) -> None:
    if not relpath:
        return
    path = resolve_storage_path(storage_root, relpath)
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Could not delete avatar file %s: %s", path, exc)
