"""Thumbnail generation with an ordered fallback chain for raw camera files."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import List, NamedTuple, Optional, Sequence

import numpy as np
import rawpy
from PIL import Image

from .config import AppConfig, load_config
from .errors import ThumbnailError, ToolError
from .imaging import encode_jpeg, encode_png, normalize_thumbnail, render_placeholder
from .orientation import orientation_from_libraw_flip
from .paths import is_raw_file, resolve_storage_path, thumbnail_relpath
from .tools import is_converter_available, run_tool, scratch_files

# LibRaw keeps internal state that is not safe to share between threads.
_rawpy_lock = threading.Lock()

# dcraw: -h half size, -q 0 bilinear, -H 1 unclip highlights, -w camera white balance.
DCRAW_FAST_DECODE = ("-h", "-q", "0", "-H", "1", "-w")


class Extracted(NamedTuple):
    data: bytes
    orientation: Optional[int] = None


@dataclass(frozen=True)
class ThumbnailResult:
    relpath: str
    strategy: str


class ThumbnailStrategy:
    """One way of turning a source file into encoded preview bytes."""

    name = "strategy"

    def available(self) -> bool:
        return True

    def extract(self, source: Path) -> Optional[Extracted]:
        raise NotImplementedError


class DirectStrategy(ThumbnailStrategy):
    """Hand the original file straight to Pillow."""

    name = "direct"

    def extract(self, source: Path) -> Optional[Extracted]:
        return Extracted(source.read_bytes())


class EmbeddedPreviewStrategy(ThumbnailStrategy):
    """Ask the raw container for the preview the camera stored in it."""

    name = "embedded"

    def __init__(self, logger: logging.Logger) -> None:
        self.logger = logger

    def extract(self, source: Path) -> Optional[Extracted]:
        try:
            with _rawpy_lock:
                with rawpy.imread(str(source)) as raw:
                    flip = raw.sizes.flip
                    thumb = raw.extract_thumb()
        except (rawpy.LibRawError, OSError, ValueError) as exc:
            self.logger.info("No embedded preview in %s: %s", source.name, exc)
            return None
        orientation = orientation_from_libraw_flip(flip)
        if thumb.format == rawpy.ThumbFormat.JPEG:
            data = bytes(thumb.data)
        elif thumb.format == rawpy.ThumbFormat.BITMAP:
            data = encode_png(Image.fromarray(np.asarray(thumb.data)))
        else:  # pragma: no cover - rawpy only reports the two formats above
            return None
        self.logger.info("Found embedded preview in %s (%d bytes)", source.name, len(data))
        return Extracted(data, orientation)


class _ConverterStrategy(ThumbnailStrategy):
    def __init__(self, cfg: AppConfig, logger: logging.Logger) -> None:
        self.cfg = cfg
        self.logger = logger

    def available(self) -> bool:
        return is_converter_available(self.cfg.converter)

    def _run(self, args: Sequence[str], stdout_path: Path) -> None:
        run_tool(args, stdout_path=stdout_path, timeout=self.cfg.tool_timeout)

    @staticmethod
    def _read(path: Path) -> Optional[bytes]:
        if not path.exists() or path.stat().st_size == 0:
            return None
        return path.read_bytes()


class ConverterPreviewStrategy(_ConverterStrategy):
    """dcraw -e: dump the embedded preview through the external converter."""

    name = "converter-preview"

    def extract(self, source: Path) -> Optional[Extracted]:
        temp_path = _sibling(source, ".thumb.jpg")
        with scratch_files(temp_path):
            try:
                self._run([self.cfg.converter, "-e", "-c", str(source)], temp_path)
            except ToolError as exc:
                self.logger.info("Converter preview extraction failed for %s: %s", source.name, exc)
                return None
            data = self._read(temp_path)
        if data is None:
            self.logger.info("Converter found no embedded preview in %s", source.name)
            return None
        return Extracted(data)


class ConverterDecodeStrategy(_ConverterStrategy):
    """Full raw decode to TIFF through the external converter."""

    name = "converter-decode"

    def extract(self, source: Path) -> Optional[Extracted]:
        temp_path = _sibling(source, ".temp.tiff")
        with scratch_files(temp_path):
            try:
                self._run([self.cfg.converter, "-c", "-T", *DCRAW_FAST_DECODE, str(source)], temp_path)
            except ToolError as exc:
                self.logger.info("Converter TIFF decode failed for %s: %s", source.name, exc)
                return None
            data = self._read(temp_path)
        return Extracted(data) if data else None


class TranscodeFallbackStrategy(_ConverterStrategy):
    """Decode to PPM, then let a second tool transcode it to TIFF."""

    name = "converter-transcode"

    def extract(self, source: Path) -> Optional[Extracted]:
        ppm_path = _sibling(source, ".temp.ppm")
        tiff_path = _sibling(source, ".magick.tiff")
        with scratch_files(ppm_path, tiff_path):
            try:
                self._run([self.cfg.converter, "-c", *DCRAW_FAST_DECODE, str(source)], ppm_path)
                run_tool(
                    [self.cfg.transcoder, str(ppm_path), str(tiff_path)],
                    timeout=self.cfg.tool_timeout,
                )
            except ToolError as exc:
                self.logger.info("PPM transcode fallback failed for %s: %s", source.name, exc)
                return None
            data = self._read(tiff_path)
        return Extracted(data) if data else None


class PlaceholderStrategy(ThumbnailStrategy):
    """Synthetic preview; the chain's terminal guarantee."""

    name = "placeholder"

    def __init__(self, display_name: str) -> None:
        self.display_name = display_name

    def extract(self, source: Path) -> Optional[Extracted]:
        return Extracted(encode_jpeg(render_placeholder(self.display_name)))


class Thumbnailer:
    def __init__(self, cfg: AppConfig, *, logger: logging.Logger) -> None:
        self.cfg = cfg
        self.logger = logger
        self.raw_strategies: List[ThumbnailStrategy] = [
            EmbeddedPreviewStrategy(logger),
            ConverterPreviewStrategy(cfg, logger),
            ConverterDecodeStrategy(cfg, logger),
            TranscodeFallbackStrategy(cfg, logger),
        ]

    def strategies_for(self, display_name: str) -> List[ThumbnailStrategy]:
        """Non-raw files try Pillow first and fall back to the raw chain."""
        chain: List[ThumbnailStrategy] = []
        if not is_raw_file(display_name):
            chain.append(DirectStrategy())
        chain.extend(self.raw_strategies)
        chain.append(PlaceholderStrategy(display_name))
        return chain

    def generate(
        self,
        source: Path,
        display_name: str,
        *,
        event_name: Optional[str] = None,
    ) -> ThumbnailResult:
        relpath = thumbnail_relpath(display_name, event_name)
        target = resolve_storage_path(self.cfg.storage_root, relpath)
        for strategy in self.strategies_for(display_name):
            if not strategy.available():
                self.logger.debug("Skipping %s for %s: tool unavailable", strategy.name, display_name)
                continue
            try:
                extracted = strategy.extract(source)
            except Exception as exc:
                self.logger.warning("%s could not read %s: %s", strategy.name, source, exc)
                continue
            if extracted is None:
                continue
            try:
                normalize_thumbnail(extracted.data, target, orientation=extracted.orientation)
            except Exception as exc:
                self.logger.info("%s output for %s could not be normalized: %s", strategy.name, display_name, exc)
                continue
            if strategy.name == "placeholder":
                self.logger.warning("No preview could be extracted for %s, wrote placeholder", display_name)
            else:
                self.logger.debug("Created thumbnail for %s via %s", display_name, strategy.name)
            return ThumbnailResult(relpath=relpath, strategy=strategy.name)
        raise ThumbnailError(f"Failed to generate thumbnail for {display_name}")


def generate_thumbnail(
    source_path: Path,
    display_name: str,
    storage_root: Path,
    *,
    event_name: Optional[str] = None,
    logger: Optional[logging.Logger] = None,
) -> str:
    """Produce the preview for ``source_path`` and return its relative path."""
    cfg = load_config(storage_root)
    thumbnailer = Thumbnailer(cfg, logger=logger or logging.getLogger(__name__))
    return thumbnailer.generate(Path(source_path), display_name, event_name=event_name).relpath


def _sibling(source: Path, suffix: str) -> Path:
    return source.with_name(source.name + suffix)
