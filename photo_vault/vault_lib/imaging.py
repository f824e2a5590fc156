"""Image helpers using Pillow: preview normalization, placeholders, metadata."""
from __future__ import annotations

import io
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from dateutil import parser as dateparser
from PIL import Image, ImageDraw, ImageFont, ImageOps

from .orientation import ensure_display_orientation
from .paths import extension_of

THUMB_SIZE = 300
THUMB_QUALITY = 80

PLACEHOLDER_BACKGROUND = (102, 102, 102)
PLACEHOLDER_TEXT = (255, 255, 255)
PLACEHOLDER_CAPTION = (204, 204, 204)
PLACEHOLDER_CAPTION_TEXT = "No preview available"

ImageSource = Union[bytes, Path]


@dataclass
class ImageMetadata:
    width: Optional[int]
    height: Optional[int]
    captured_at: Optional[datetime]


# DateTimeOriginal and DateTimeDigitized live in the Exif IFD, DateTime in IFD0.
EXIF_IFD_POINTER = 0x8769
EXIF_DATETIME_TAGS = (36867, 36868)
IFD0_DATETIME_TAG = 306


def normalize_thumbnail(
    source: ImageSource,
    target: Path,
    *,
    orientation: Optional[int] = None,
    size: int = THUMB_SIZE,
    quality: int = THUMB_QUALITY,
) -> None:
    """Write a ``size`` x ``size`` JPEG preview of ``source`` to ``target``.

    Orientation is corrected before the cover-fit center crop. Raises
    ``OSError`` (or ``SyntaxError`` for broken PNGs) when the source cannot
    be decoded.
    """
    with _open(source) as img:
        img.load()
        oriented = ensure_display_orientation(img, orientation)
        fitted = ImageOps.fit(
            oriented,
            (size, size),
            method=Image.Resampling.LANCZOS,
            centering=(0.5, 0.5),
        )
        if fitted.mode != "RGB":
            fitted = fitted.convert("RGB")
        save_jpeg(fitted, target, quality=quality)


def save_jpeg(image: Image.Image, target: Path, *, quality: int) -> None:
    """Save through a sibling temp file so readers never see a partial JPEG."""
    target.parent.mkdir(parents=True, exist_ok=True)
    temp_path = target.with_name(target.name + ".tmp")
    try:
        image.save(temp_path, format="JPEG", quality=quality)
        temp_path.replace(target)
    finally:
        temp_path.unlink(missing_ok=True)


def placeholder_lines(filename: str) -> Tuple[str, str, str]:
    label = extension_of(filename).lstrip(".").upper() or "?"
    return ("RAW", label, PLACEHOLDER_CAPTION_TEXT)


def render_placeholder(filename: str, *, size: int = THUMB_SIZE) -> Image.Image:
    """Flat grey stand-in captioned with the file's extension."""
    image = Image.new("RGB", (size, size), PLACEHOLDER_BACKGROUND)
    draw = ImageDraw.Draw(image)
    title, label, caption = placeholder_lines(filename)
    rows = (
        (title, _font(24), PLACEHOLDER_TEXT, 0.43),
        (label, _font(16), PLACEHOLDER_TEXT, 0.53),
        (caption, _font(12), PLACEHOLDER_CAPTION, 0.63),
    )
    for text, font, fill, y_ratio in rows:
        left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
        x = (size - (right - left)) / 2 - left
        y = size * y_ratio - (bottom - top) / 2 - top
        draw.text((x, y), text, font=font, fill=fill)
    return image


def encode_jpeg(image: Image.Image, *, quality: int = THUMB_QUALITY) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


def encode_png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def probe_image(path: Path) -> ImageMetadata:
    width = height = None
    captured_at = None
    try:
        with Image.open(path) as img:
            width, height = ensure_display_orientation(img).size
            captured_at = _exif_datetime(img.getexif())
    except (OSError, SyntaxError, ValueError):
        # Undecodable and truncated files leave the metadata empty.
        pass
    return ImageMetadata(width=width, height=height, captured_at=captured_at)


def _exif_datetime(exif) -> Optional[datetime]:
    if not exif:
        return None
    candidates: List[object] = []
    try:
        sub_ifd = exif.get_ifd(EXIF_IFD_POINTER)
    except (KeyError, ValueError, OSError):
        sub_ifd = {}
    candidates.extend(sub_ifd.get(tag) for tag in EXIF_DATETIME_TAGS)
    candidates.append(exif.get(IFD0_DATETIME_TAG))
    for value in candidates:
        parsed = parse_exif_datetime(value)
        if parsed:
            return parsed
    return None


def parse_exif_datetime(value: object) -> Optional[datetime]:
    """EXIF writes ``YYYY:MM:DD HH:MM:SS``; dateutil needs dashes in the date part."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip().replace("\x00", "")
    if len(text) >= 10 and text[4] == ":" and text[7] == ":":
        text = f"{text[:4]}-{text[5:7]}-{text[8:]}"
    try:
        return dateparser.parse(text)
    except (ValueError, TypeError, OverflowError):
        return None


def _open(source: ImageSource) -> Image.Image:
    if isinstance(source, (bytes, bytearray)):
        return Image.open(io.BytesIO(source))
    return Image.open(source)


def _font(size: int) -> ImageFont.ImageFont:
    return ImageFont.load_default(size=size)


def crop_box(
    bbox: Sequence[float],
    image_size: Tuple[int, int],
    padding_ratio: float,
) -> Tuple[int, int, int, int]:
    """Pad ``bbox`` (x, y, w, h) by ``padding_ratio`` of its larger side, clamped."""
    x, y, width, height = (float(value) for value in bbox)
    max_width, max_height = image_size
    padding = max(width, height) * padding_ratio
    left = max(0, int(round(x - padding)))
    top = max(0, int(round(y - padding)))
    right = min(max_width, int(round(x + width + padding)))
    bottom = min(max_height, int(round(y + height + padding)))
    if right <= left or bottom <= top:
        raise ValueError(f"Bounding box {tuple(bbox)} lies outside a {max_width}x{max_height} image")
    return left, top, right, bottom
