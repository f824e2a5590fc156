"""CLI for regenerating photo thumbnails."""
from __future__ import annotations

import logging
from collections import Counter
from pathlib import Path
from typing import List, Optional

import typer
from tqdm import tqdm

from vault_lib import config as config_mod, log as log_mod
from vault_lib.errors import VaultError
from vault_lib.ingest import Ingestor
from vault_lib.stores import LibraryStore


def main(
    photo_ids: Optional[List[str]] = typer.Argument(None, help="Photo ids to rebuild"),
    all_photos: bool = typer.Option(False, "--all", help="Rebuild every photo in the library"),
    root: Optional[Path] = typer.Option(None, "--root", help="Storage root (defaults to PHOTO_VAULT_ROOT)"),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level"),
) -> None:
    log_mod.setup_logging(log_level)
    logger = logging.getLogger("cli.thumbs")
    cfg = config_mod.load_config(root)
    store = LibraryStore(cfg.library_path)
    targets = store.photo_ids() if all_photos else list(photo_ids or [])
    if not targets:
        typer.echo("Nothing to do: pass photo ids or --all", err=True)
        raise typer.Exit(code=1)

    ingestor = Ingestor(store, cfg, logger=logger)
    strategies: Counter = Counter()
    errors = 0
    for photo_id in tqdm(targets, unit="photo"):
        try:
            result = ingestor.refresh_thumbnail(photo_id)
        except VaultError as exc:
            errors += 1
            logger.warning("Thumbnail failed for %s: %s", photo_id, exc)
            continue
        strategies[result.strategy] += 1
    summary = " ".join(f"{name}={count}" for name, count in sorted(strategies.items()))
    typer.echo(f"Rebuilt {sum(strategies.values())} thumbnails ({summary or 'none'}) errors={errors}")
    if errors:
        raise typer.Exit(code=1)


def run() -> None:  # pragma: no cover
    typer.run(main)


if __name__ == "__main__":  # pragma: no cover
    run()
