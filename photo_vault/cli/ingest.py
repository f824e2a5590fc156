"""CLI for registering uploaded photos in the vault."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer

from vault_lib import config as config_mod, log as log_mod
from vault_lib.errors import VaultError
from vault_lib.ingest import Ingestor
from vault_lib.stores import LibraryStore

MIME_BY_EXTENSION = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
    ".bmp": "image/bmp",
}


def guess_mime(path: Path) -> str:
    """Standard images map to their type; anything else is sent as a generic upload."""
    return MIME_BY_EXTENSION.get(path.suffix.lower(), "application/octet-stream")


def main(
    files: List[Path] = typer.Argument(..., exists=True, dir_okay=False, help="Files to ingest"),
    mime: Optional[str] = typer.Option(None, "--mime", help="MIME type to report for every file"),
    event: Optional[str] = typer.Option(None, "--event", help="Event folder to file the photos under"),
    root: Optional[Path] = typer.Option(None, "--root", help="Storage root (defaults to PHOTO_VAULT_ROOT)"),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level"),
) -> None:
    log_mod.setup_logging(log_level)
    logger = logging.getLogger("cli.ingest")
    cfg = config_mod.load_config(root)
    store = LibraryStore(cfg.library_path)
    ingestor = Ingestor(store, cfg, logger=logger)
    ingested = rejected = 0
    for path in files:
        try:
            photo = ingestor.register_upload(path, path.name, mime or guess_mime(path), event_name=event)
        except VaultError as exc:
            rejected += 1
            typer.echo(f"{path.name}: {exc}", err=True)
            continue
        ingested += 1
        typer.echo(f"{photo.id}\t{photo.original_name}\t{photo.thumbnail_path}")
    logger.info("Ingested %d files, rejected %d", ingested, rejected)
    if rejected:
        raise typer.Exit(code=1)


def run() -> None:  # pragma: no cover
    typer.run(main)


if __name__ == "__main__":  # pragma: no cover
    run()
