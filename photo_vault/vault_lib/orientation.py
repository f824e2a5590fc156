"""Helpers for applying EXIF orientation and LibRaw flip hints."""
from __future__ import annotations

from typing import Any, Optional

from PIL import Image, ImageOps

EXIF_ORIENTATION_TAG = 0x0112

_ORIENTATION_TRANSFORMS = {
    2: (Image.Transpose.FLIP_LEFT_RIGHT,),
    3: (Image.Transpose.ROTATE_180,),
    4: (Image.Transpose.FLIP_TOP_BOTTOM,),
    5: (Image.Transpose.TRANSPOSE,),
    6: (Image.Transpose.ROTATE_270,),
    7: (Image.Transpose.TRANSVERSE,),
    8: (Image.Transpose.ROTATE_90,),
}

# LibRaw reports rotation as a "flip" code rather than an EXIF orientation.
_LIBRAW_FLIP_TO_EXIF = {
    0: 1,
    3: 3,
    5: 8,
    6: 6,
}


def ensure_display_orientation(
    image: Image.Image,
    fallback: Optional[int] = None,
) -> Image.Image:
    """Return ``image`` rotated for display.

    The image's own EXIF orientation wins. ``fallback`` is applied only when
    the image carries no orientation tag, which is typical for previews
    pulled out of raw containers.
    """

    if image is None:
        raise ValueError("image is required")
    if read_exif_orientation(image):
        return ImageOps.exif_transpose(image)
    target = normalize_orientation(fallback)
    if not target or target == 1:
        return image
    return apply_orientation(image, target)


def read_exif_orientation(image: Image.Image) -> Optional[int]:
    try:
        exif = image.getexif()
    except Exception:  # pragma: no cover - some decoders lack EXIF
        return None
    if not exif:
        return None
    return normalize_orientation(exif.get(EXIF_ORIENTATION_TAG))


def apply_orientation(image: Image.Image, orientation: int) -> Image.Image:
    ops = _ORIENTATION_TRANSFORMS.get(orientation)
    if not ops:
        return image
    for op in ops:
        image = image.transpose(op)
    return image


def orientation_from_libraw_flip(flip: Any) -> Optional[int]:
    try:
        return _LIBRAW_FLIP_TO_EXIF.get(int(flip))
    except (TypeError, ValueError):
        return None


def normalize_orientation(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        orientation = int(value)
    except (TypeError, ValueError):
        return None
    if 1 <= orientation <= 8:
        return orientation
    return None
