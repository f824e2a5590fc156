"""Configuration helpers for locating storage and external tools."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

DEFAULT_CONVERTER = "dcraw"
DEFAULT_TRANSCODER = "convert"
DEFAULT_EXIF_READER = "exiftool"
DEFAULT_TOOL_TIMEOUT = 8.0
DEFAULT_BATCH_PAUSE = 0.1


@dataclass(frozen=True)
class AppConfig:
    repo_root: Path
    storage_root: Path
    thumbnails_dir: Path
    avatars_dir: Path
    library_path: Path
    converter: str = DEFAULT_CONVERTER
    transcoder: str = DEFAULT_TRANSCODER
    exif_reader: str = DEFAULT_EXIF_READER
    tool_timeout: float = DEFAULT_TOOL_TIMEOUT
    batch_pause: float = DEFAULT_BATCH_PAUSE


def detect_repo_root() -> Path:
    """Return the root of the photo_vault project directory."""
    return Path(__file__).resolve().parents[1]


def detect_storage_root(repo_root: Path, env: Mapping[str, str]) -> Path:
    """Uploads live under PHOTO_VAULT_ROOT, then UPLOAD_PATH, then <repo>/uploads."""
    for key in ("PHOTO_VAULT_ROOT", "UPLOAD_PATH"):
        value = env.get(key)
        if value:
            return Path(value).expanduser()
    return repo_root / "uploads"


def default_library_path(storage_root: Path) -> Path:
    return storage_root / "library.json"


def default_thumbnails_dir(storage_root: Path) -> Path:
    path = storage_root / "thumbnails"
    path.mkdir(parents=True, exist_ok=True)
    return path


def default_avatars_dir(storage_root: Path) -> Path:
    path = storage_root / "avatars"
    path.mkdir(parents=True, exist_ok=True)
    return path


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be a number, got {raw!r}") from exc
    if value < 0:
        raise ValueError(f"{key} must not be negative")
    return value


def load_config(
    storage_root: Optional[Path] = None,
    *,
    env: Optional[Mapping[str, str]] = None,
) -> AppConfig:
    env = os.environ if env is None else env
    repo_root = detect_repo_root()
    root = Path(storage_root) if storage_root else detect_storage_root(repo_root, env)
    root.mkdir(parents=True, exist_ok=True)
    return AppConfig(
        repo_root=repo_root,
        storage_root=root,
        thumbnails_dir=default_thumbnails_dir(root),
        avatars_dir=default_avatars_dir(root),
        library_path=default_library_path(root),
        converter=env.get("PHOTO_VAULT_DCRAW") or DEFAULT_CONVERTER,
        transcoder=env.get("PHOTO_VAULT_CONVERT") or DEFAULT_TRANSCODER,
        exif_reader=env.get("PHOTO_VAULT_EXIFTOOL") or DEFAULT_EXIF_READER,
        tool_timeout=_env_float(env, "PHOTO_VAULT_TOOL_TIMEOUT", DEFAULT_TOOL_TIMEOUT),
        batch_pause=_env_float(env, "PHOTO_VAULT_BATCH_PAUSE", DEFAULT_BATCH_PAUSE),
    )
