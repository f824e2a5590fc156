import pytest

from vault_lib.config import DEFAULT_BATCH_PAUSE, DEFAULT_TOOL_TIMEOUT, load_config
from vault_lib.log import parse_level


def test_storage_root_from_environment(tmp_path):
    cfg = load_config(env={"PHOTO_VAULT_ROOT": str(tmp_path / "a"), "UPLOAD_PATH": str(tmp_path / "b")})
    assert cfg.storage_root == tmp_path / "a"
    assert cfg.thumbnails_dir.is_dir()
    assert cfg.avatars_dir.is_dir()
    assert cfg.library_path == tmp_path / "a" / "library.json"


def test_upload_path_fallback(tmp_path):
    cfg = load_config(env={"UPLOAD_PATH": str(tmp_path / "uploads")})
    assert cfg.storage_root == tmp_path / "uploads"


def test_tool_settings(tmp_path):
    cfg = load_config(tmp_path, env={})
    assert cfg.converter == "dcraw"
    assert cfg.exif_reader == "exiftool"
    assert cfg.tool_timeout == DEFAULT_TOOL_TIMEOUT
    assert cfg.batch_pause == DEFAULT_BATCH_PAUSE
    tuned = load_config(
        tmp_path,
        env={
            "PHOTO_VAULT_DCRAW": "/opt/dcraw",
            "PHOTO_VAULT_EXIFTOOL": "/opt/exiftool",
            "PHOTO_VAULT_TOOL_TIMEOUT": "2.5",
            "PHOTO_VAULT_BATCH_PAUSE": "0",
        },
    )
    assert (tuned.converter, tuned.tool_timeout, tuned.batch_pause) == ("/opt/dcraw", 2.5, 0.0)
    assert tuned.exif_reader == "/opt/exiftool"


def test_invalid_numbers_are_rejected(tmp_path):
    with pytest.raises(ValueError):
        load_config(tmp_path, env={"PHOTO_VAULT_TOOL_TIMEOUT": "soon"})
    with pytest.raises(ValueError):
        load_config(tmp_path, env={"PHOTO_VAULT_BATCH_PAUSE": "-1"})


def test_parse_level():
    assert parse_level("debug") == 10
    with pytest.raises(ValueError):
        parse_level("chatty")
