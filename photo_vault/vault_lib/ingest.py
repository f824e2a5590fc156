"""Register uploaded files as Photo records with a stored preview."""
from __future__ import annotations

import logging
import shutil
import uuid
from pathlib import Path
from typing import Optional

from .config import AppConfig
from .exif import read_raw_metadata
from .imaging import ImageMetadata, probe_image
from .models import Photo
from .paths import (
    extension_of,
    is_raw_file,
    resolve_storage_path,
    sanitize_folder_name,
    thumbnail_relpath,
    validate_upload,
)
from .stores import LibraryStore
from .thumbs import Thumbnailer, ThumbnailResult


def stored_relpath(filename: str, event_name: Optional[str] = None) -> str:
    if event_name:
        return f"events/{sanitize_folder_name(event_name)}/{filename}"
    return f"originals/{filename}"


class Ingestor:
    def __init__(
        self,
        store: LibraryStore,
        cfg: AppConfig,
        *,
        logger: logging.Logger,
        thumbnailer: Optional[Thumbnailer] = None,
    ) -> None:
        self.store = store
        self.cfg = cfg
        self.logger = logger
        self.thumbnailer = thumbnailer or Thumbnailer(cfg, logger=logger)

    def register_upload(
        self,
        source: Path,
        original_name: str,
        mime_type: str,
        *,
        event_name: Optional[str] = None,
    ) -> Photo:
        """Copy ``source`` into storage, build its thumbnail, and record it.

        The upload is rejected with UnsupportedUpload before anything is
        written. The stored file gets a fresh uuid name keeping the original
        extension. If the thumbnail or the store write fails, the copied file
        and any thumbnail are removed before the error propagates.
        """
        validate_upload(original_name, mime_type)
        source = Path(source)
        photo_id = uuid.uuid4().hex
        filename = f"{photo_id}{extension_of(original_name)}"
        relpath = stored_relpath(filename, event_name)
        target = resolve_storage_path(self.cfg.storage_root, relpath)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, target)

        try:
            meta = self._metadata(target)
            result = self.thumbnailer.generate(target, filename, event_name=event_name)
            photo = Photo(
                id=photo_id,
                filename=filename,
                original_name=original_name,
                original_path=relpath,
                thumbnail_path=result.relpath,
                mime_type=mime_type,
                size=target.stat().st_size,
                width=meta.width,
                height=meta.height,
                captured_at=meta.captured_at,
                event_name=event_name,
            )
            self.store.put_photo(photo)
        except Exception:
            self.logger.error("Ingest of %s failed, removing %s", original_name, relpath)
            target.unlink(missing_ok=True)
            thumb = resolve_storage_path(self.cfg.storage_root, thumbnail_relpath(filename, event_name))
            thumb.unlink(missing_ok=True)
            raise
        self.logger.info(
            "Ingested %s as %s (thumbnail via %s)",
            original_name,
            photo_id,
            result.strategy,
        )
        return photo

    def _metadata(self, path: Path) -> ImageMetadata:
        meta = probe_image(path)
        if not is_raw_file(path) or meta.captured_at is not None:
            return meta
        # Pillow reads few raw containers; exiftool fills what it could not.
        raw_meta = read_raw_metadata(path, binary=self.cfg.exif_reader, timeout=self.cfg.tool_timeout)
        return ImageMetadata(
            width=meta.width or raw_meta.width,
            height=meta.height or raw_meta.height,
            captured_at=raw_meta.captured_at,
        )

    def refresh_thumbnail(self, photo_id: str) -> ThumbnailResult:
        """Rebuild the preview of an existing photo at its deterministic path."""
        photo = self.store.require_photo(photo_id)
        source = resolve_storage_path(self.cfg.storage_root, photo.original_path)
        result = self.thumbnailer.generate(source, photo.filename, event_name=photo.event_name)
        if result.relpath != photo.thumbnail_path:
            with self.store.transaction():
                photo.thumbnail_path = result.relpath
                self.store.put_photo(photo)
        return result
