"""Tests for registering uploads."""
from __future__ import annotations

import json
import logging
import subprocess
from datetime import datetime

import pytest
from PIL import Image

from vault_lib import exif as exif_mod
from vault_lib import thumbs as thumbs_mod
from vault_lib.config import load_config
from vault_lib.errors import ThumbnailError, UnsupportedUpload
from vault_lib.imaging import IFD0_DATETIME_TAG, parse_exif_datetime, probe_image
from vault_lib.ingest import Ingestor
from vault_lib.stores import LibraryStore

LOGGER = logging.getLogger("tests.ingest")


@pytest.fixture(autouse=True)
def no_converter(monkeypatch):
    monkeypatch.setattr(thumbs_mod, "is_converter_available", lambda binary="dcraw": False)
    monkeypatch.setattr(exif_mod, "is_converter_available", lambda binary="exiftool": False)


@pytest.fixture
def cfg(tmp_path):
    return load_config(tmp_path / "vault", env={})


@pytest.fixture
def ingestor(cfg):
    return Ingestor(LibraryStore(cfg.library_path), cfg, logger=LOGGER)


def _dated_jpeg(path, size=(320, 240)):
    img = Image.new("RGB", size, (10, 100, 200))
    exif = img.getexif()
    exif[IFD0_DATETIME_TAG] = "2004:07:16 09:30:00"
    img.save(path, format="JPEG", exif=exif.tobytes())


def test_register_upload_records_photo(cfg, ingestor, tmp_path):
    source = tmp_path / "IMG_0001.JPG"
    _dated_jpeg(source)
    photo = ingestor.register_upload(source, "IMG_0001.JPG", "image/jpeg")

    assert photo.filename == f"{photo.id}.jpg"
    assert photo.original_path == f"originals/{photo.id}.jpg"
    assert photo.thumbnail_path == f"thumbnails/thumb_{photo.id}.jpg"
    assert (photo.width, photo.height) == (320, 240)
    assert photo.captured_at == datetime(2004, 7, 16, 9, 30)
    assert photo.size == source.stat().st_size
    assert (cfg.storage_root / photo.thumbnail_path).exists()
    assert ingestor.store.require_photo(photo.id).original_name == "IMG_0001.JPG"


def test_raw_upload_gets_placeholder_thumbnail(cfg, ingestor, tmp_path):
    source = tmp_path / "DSC_1.NEF"
    source.write_bytes(b"raw sensor data")
    photo = ingestor.register_upload(source, "DSC_1.NEF", "application/octet-stream", event_name="Lake: 1998")

    assert photo.original_path == f"events/Lake 1998/{photo.id}.nef"
    assert photo.thumbnail_path == f"events/Lake 1998/thumbnails/thumb_{photo.id}.nef"
    assert photo.width is None and photo.captured_at is None
    with Image.open(cfg.storage_root / photo.thumbnail_path) as img:
        assert img.size == (300, 300)


def test_rejected_upload_writes_nothing(cfg, ingestor, tmp_path):
    source = tmp_path / "notes.txt"
    source.write_text("hello")
    with pytest.raises(UnsupportedUpload):
        ingestor.register_upload(source, "notes.txt", "application/octet-stream")
    assert ingestor.store.photo_ids() == []
    assert not (cfg.storage_root / "originals").exists()


def test_refresh_thumbnail_rewrites_same_path(cfg, ingestor, tmp_path):
    source = tmp_path / "a.png"
    Image.new("RGB", (64, 32), (0, 0, 0)).save(source)
    photo = ingestor.register_upload(source, "a.png", "image/png")
    (cfg.storage_root / photo.thumbnail_path).unlink()
    result = ingestor.refresh_thumbnail(photo.id)
    assert result.relpath == photo.thumbnail_path
    assert (cfg.storage_root / result.relpath).exists()


def test_parse_exif_datetime():
    assert parse_exif_datetime("2010:01:02 03:04:05") == datetime(2010, 1, 2, 3, 4, 5)
    assert parse_exif_datetime("0000:00:00 00:00:00") is None
    assert parse_exif_datetime(None) is None


def test_probe_image_on_unreadable_file(tmp_path):
    path = tmp_path / "x.jpg"
    path.write_bytes(b"nope")
    meta = probe_image(path)
    assert meta.width is None and meta.captured_at is None


def _fake_exiftool(monkeypatch, records, commands=None):
    monkeypatch.setattr(exif_mod, "is_converter_available", lambda binary="exiftool": True)

    def fake_run_tool(args, *, stdout_path=None, timeout=None):
        if commands is not None:
            commands.append(list(args))
        return subprocess.CompletedProcess(args, 0, stdout=json.dumps(records).encode(), stderr=b"")

    monkeypatch.setattr(exif_mod, "run_tool", fake_run_tool)


def test_raw_upload_reads_capture_date_with_exiftool(cfg, ingestor, tmp_path, monkeypatch):
    commands = []
    _fake_exiftool(
        monkeypatch,
        [{"SourceFile": "x", "DateTimeOriginal": "2021:06:01 10:00:00", "ImageWidth": 6000, "ImageHeight": 4000}],
        commands,
    )
    source = tmp_path / "DSC_2.NEF"
    source.write_bytes(b"raw sensor data")
    photo = ingestor.register_upload(source, "DSC_2.NEF", "image/x-nikon-nef")

    assert photo.captured_at == datetime(2021, 6, 1, 10, 0)
    assert (photo.width, photo.height) == (6000, 4000)
    stored = cfg.storage_root / photo.original_path
    assert commands[0][0] == "exiftool"
    assert commands[0][-1] == str(stored)
    assert ingestor.store.require_photo(photo.id).captured_at == datetime(2021, 6, 1, 10, 0)


def test_raw_upload_falls_back_to_create_date(ingestor, tmp_path, monkeypatch):
    _fake_exiftool(monkeypatch, [{"DateTimeOriginal": "0000:00:00 00:00:00", "CreateDate": "2019:12:24 18:05:00"}])
    source = tmp_path / "a.cr2"
    source.write_bytes(b"raw")
    photo = ingestor.register_upload(source, "a.cr2", "application/octet-stream")
    assert photo.captured_at == datetime(2019, 12, 24, 18, 5)
    assert photo.width is None


def test_unreadable_exiftool_output_leaves_date_empty(ingestor, tmp_path, monkeypatch):
    monkeypatch.setattr(exif_mod, "is_converter_available", lambda binary="exiftool": True)
    monkeypatch.setattr(
        exif_mod,
        "run_tool",
        lambda args, *, stdout_path=None, timeout=None: subprocess.CompletedProcess(args, 0, stdout=b"nope", stderr=b""),
    )
    source = tmp_path / "b.arw"
    source.write_bytes(b"raw")
    photo = ingestor.register_upload(source, "b.arw", "application/octet-stream")
    assert photo.captured_at is None


def test_exiftool_not_used_for_regular_images(ingestor, tmp_path, monkeypatch):
    commands = []
    _fake_exiftool(monkeypatch, [{"DateTimeOriginal": "2021:06:01 10:00:00"}], commands)
    source = tmp_path / "c.jpg"
    _dated_jpeg(source)
    photo = ingestor.register_upload(source, "c.jpg", "image/jpeg")
    assert commands == []
    assert photo.captured_at == datetime(2004, 7, 16, 9, 30)


def test_failed_store_write_removes_copied_files(cfg, ingestor, tmp_path, monkeypatch):
    def failing_put(photo):
        raise OSError("disk full")

    monkeypatch.setattr(ingestor.store, "put_photo", failing_put)
    source = tmp_path / "d.jpg"
    _dated_jpeg(source)
    with pytest.raises(OSError):
        ingestor.register_upload(source, "d.jpg", "image/jpeg")
    assert list((cfg.storage_root / "originals").iterdir()) == []
    assert list((cfg.storage_root / "thumbnails").iterdir()) == []


def test_failed_thumbnail_removes_copied_original(cfg, ingestor, tmp_path, monkeypatch):
    def failing_generate(source, display_name, *, event_name=None):
        raise ThumbnailError(f"Failed to generate thumbnail for {display_name}")

    monkeypatch.setattr(ingestor.thumbnailer, "generate", failing_generate)
    source = tmp_path / "e.png"
    Image.new("RGB", (8, 8)).save(source)
    with pytest.raises(ThumbnailError):
        ingestor.register_upload(source, "e.png", "image/png", event_name="Trip")
    assert list((cfg.storage_root / "events" / "Trip").iterdir()) == []
    assert ingestor.store.photo_ids() == []
