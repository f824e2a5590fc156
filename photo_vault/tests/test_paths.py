"""Tests for raw classification, upload acceptance and storage layout."""
from __future__ import annotations

from pathlib import Path

import pytest

from vault_lib.errors import UnsupportedUpload
from vault_lib.paths import (
    RAW_EXTENSIONS,
    accept_upload,
    avatar_relpath,
    is_raw_file,
    resolve_storage_path,
    sanitize_folder_name,
    thumbnail_relpath,
    validate_upload,
)


@pytest.mark.parametrize("name", ["IMG_1.CR2", "dsc.nef", "x.Dng", "a.b.ARW", "shot.rw2"])
def test_is_raw_file_matches_known_extensions(name):
    assert is_raw_file(name)


@pytest.mark.parametrize("name", ["photo.jpg", "scan.TIFF", "noext", "", ".nef.txt"])
def test_is_raw_file_rejects_other_names(name):
    assert not is_raw_file(name)


def test_raw_extension_set_is_lowercase_and_dotted():
    assert len(RAW_EXTENSIONS) == 37
    assert all(ext.startswith(".") and ext == ext.lower() for ext in RAW_EXTENSIONS)


def test_accept_upload_allows_standard_images():
    assert accept_upload("a.jpg", "image/jpeg")
    assert accept_upload("a.png", "IMAGE/PNG")
    assert accept_upload("a.nef", "image/x-nikon-nef")


def test_octet_stream_only_accepted_for_raw_extensions():
    assert accept_upload("DSC_0001.NEF", "application/octet-stream")
    assert not accept_upload("notes.txt", "application/octet-stream")


def test_validate_upload_raises_for_unknown_types():
    with pytest.raises(UnsupportedUpload):
        validate_upload("clip.mp4", "video/mp4")
    with pytest.raises(UnsupportedUpload):
        validate_upload("photo.jpg", None)


def test_sanitize_folder_name_strips_and_truncates():
    assert sanitize_folder_name('  Summer:  "Trip" / 2019?  ') == "Summer Trip 2019"
    assert len(sanitize_folder_name("x" * 250)) == 100


def test_thumbnail_relpath_layouts():
    assert thumbnail_relpath("abc.nef") == "thumbnails/thumb_abc.nef"
    assert (
        thumbnail_relpath("abc.jpg", "Grandma's 90th: Party")
        == "events/Grandma's 90th Party/thumbnails/thumb_abc.jpg"
    )


def test_avatar_relpath():
    assert avatar_relpath("p1") == "avatars/avatar_p1.jpg"


def test_resolve_storage_path_joins_relpaths(tmp_path):
    assert resolve_storage_path(tmp_path, "events/Lake 1998/a.nef") == tmp_path / "events" / "Lake 1998" / "a.nef"
    assert resolve_storage_path(Path("/vault"), thumbnail_relpath("x.jpg")) == Path("/vault/thumbnails/thumb_x.jpg")


@pytest.mark.parametrize("relpath", ["../outside.jpg", "originals/../../etc/passwd", "/etc/passwd"])
def test_resolve_storage_path_rejects_escaping_relpaths(tmp_path, relpath):
    with pytest.raises(ValueError):
        resolve_storage_path(tmp_path, relpath)
