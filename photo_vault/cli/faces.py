"""CLI for attaching detector output, recognizing faces, and managing people."""
from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional

import typer

from vault_lib import config as config_mod, log as log_mod
from vault_lib import people as people_mod
from vault_lib.assignments import AssignmentMaintainer
from vault_lib.config import AppConfig
from vault_lib.errors import InvalidFaceIndex, VaultError
from vault_lib.recognition import DEFAULT_UNPROCESSED_LIMIT, FaceRecognitionService, Match
from vault_lib.stores import LibraryStore

app = typer.Typer(add_completion=False)

ROOT_OPTION = typer.Option(None, "--root", help="Storage root (defaults to PHOTO_VAULT_ROOT)")
LOG_LEVEL_OPTION = typer.Option("INFO", "--log-level", help="Logging level")
MIN_CONFIDENCE_OPTION = typer.Option(
    "medium",
    "--min-confidence",
    help="Lowest confidence tier to auto-assign (high|medium|low)",
)


@dataclass
class Context:
    cfg: AppConfig
    store: LibraryStore
    maintainer: AssignmentMaintainer
    service: FaceRecognitionService
    logger: logging.Logger


def _context(root: Optional[Path], log_level: str) -> Context:
    log_mod.setup_logging(log_level)
    logger = logging.getLogger("cli.faces")
    cfg = config_mod.load_config(root)
    store = LibraryStore(cfg.library_path)
    maintainer = AssignmentMaintainer(store, cfg, logger=logger)
    service = FaceRecognitionService(store, maintainer, logger=logger, pause=cfg.batch_pause)
    return Context(cfg=cfg, store=store, maintainer=maintainer, service=service, logger=logger)


@contextmanager
def _exit_on_error() -> Iterator[None]:
    try:
        yield
    except (VaultError, ValueError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)


def _echo_matches(photo_id: str, matches: List[Match]) -> None:
    if not matches:
        typer.echo(f"{photo_id}: no matches")
        return
    for match in matches:
        typer.echo(
            f"{photo_id}\tface={match.face_index}\t{match.person_name}\t"
            f"{match.similarity:.3f}\t{match.confidence.value}"
        )


@app.command()
def attach(
    photo_id: str = typer.Argument(..., help="Photo to attach detections to"),
    detections: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON list of detector faces"),
    root: Optional[Path] = ROOT_OPTION,
    log_level: str = LOG_LEVEL_OPTION,
) -> None:
    """Record face detector output for a photo and auto-recognize it."""
    ctx = _context(root, log_level)
    payload = json.loads(detections.read_text())
    if isinstance(payload, dict):
        payload = payload.get("faces") or []
    if not isinstance(payload, list):
        raise typer.BadParameter("detections must be a JSON list of faces")
    with _exit_on_error():
        matches = ctx.service.attach_faces(photo_id, payload)
    typer.echo(f"Attached {len(payload)} faces to {photo_id}")
    _echo_matches(photo_id, matches)


@app.command()
def reset(
    photo_id: str = typer.Argument(..., help="Photo whose detections should be cleared"),
    root: Optional[Path] = ROOT_OPTION,
    log_level: str = LOG_LEVEL_OPTION,
) -> None:
    """Forget detection results so the photo can be processed again."""
    ctx = _context(root, log_level)
    with _exit_on_error():
        ctx.service.reset_faces(photo_id)
    typer.echo(f"Cleared faces for {photo_id}")


@app.command()
def recognize(
    photo_id: str = typer.Argument(..., help="Photo to recognize"),
    min_confidence: str = MIN_CONFIDENCE_OPTION,
    root: Optional[Path] = ROOT_OPTION,
    log_level: str = LOG_LEVEL_OPTION,
) -> None:
    ctx = _context(root, log_level)
    with _exit_on_error():
        matches = ctx.service.process_photo(photo_id, min_confidence)
    _echo_matches(photo_id, matches)


@app.command()
def batch(
    photo_ids: List[str] = typer.Argument(..., help="Photos to recognize"),
    min_confidence: str = MIN_CONFIDENCE_OPTION,
    root: Optional[Path] = ROOT_OPTION,
    log_level: str = LOG_LEVEL_OPTION,
) -> None:
    ctx = _context(root, log_level)
    with _exit_on_error():
        results = ctx.service.batch_process(photo_ids, min_confidence)
    for photo_id, matches in results.items():
        _echo_matches(photo_id, matches)


@app.command("auto-process")
def auto_process(
    limit: int = typer.Option(DEFAULT_UNPROCESSED_LIMIT, "--limit", min=1, help="Photos to process"),
    min_confidence: str = MIN_CONFIDENCE_OPTION,
    root: Optional[Path] = ROOT_OPTION,
    log_level: str = LOG_LEVEL_OPTION,
) -> None:
    """Recognize the newest photos that still have unassigned faces."""
    ctx = _context(root, log_level)
    photo_ids = ctx.service.find_unprocessed_photos(limit)
    if not photo_ids:
        typer.echo("No photos with unassigned faces")
        raise typer.Exit(code=0)
    with _exit_on_error():
        results = ctx.service.batch_process(photo_ids, min_confidence)
    total = sum(len(matches) for matches in results.values())
    typer.echo(f"Processed {len(photo_ids)} photos, {total} matches")


@app.command()
def assign(
    photo_id: str = typer.Argument(...),
    face_index: int = typer.Argument(...),
    person_id: str = typer.Argument(...),
    learn: bool = typer.Option(True, "--learn/--no-learn", help="Add the face descriptor to the person"),
    root: Optional[Path] = ROOT_OPTION,
    log_level: str = LOG_LEVEL_OPTION,
) -> None:
    """Manually confirm which person a face belongs to."""
    ctx = _context(root, log_level)
    with _exit_on_error():
        result = ctx.maintainer.apply_assignment(photo_id, face_index, person_id, learn=learn)
    typer.echo(
        f"Assigned face {face_index} of {photo_id} to {result.person.name} "
        f"(photos={result.person.photo_count} descriptors={len(result.person.face_descriptors)})"
    )


@app.command()
def unassign(
    photo_id: str = typer.Argument(...),
    face_index: int = typer.Argument(...),
    root: Optional[Path] = ROOT_OPTION,
    log_level: str = LOG_LEVEL_OPTION,
) -> None:
    ctx = _context(root, log_level)
    with _exit_on_error():
        ctx.maintainer.unassign(photo_id, face_index)
    typer.echo(f"Unassigned face {face_index} of {photo_id}")


@app.command()
def suggest(
    photo_id: str = typer.Argument(...),
    face_index: int = typer.Argument(...),
    root: Optional[Path] = ROOT_OPTION,
    log_level: str = LOG_LEVEL_OPTION,
) -> None:
    """List the people a face most resembles."""
    ctx = _context(root, log_level)
    with _exit_on_error():
        photo = ctx.store.require_photo(photo_id)
        face = photo.face(face_index)
        if face is None:
            raise InvalidFaceIndex(photo_id, face_index, len(photo.faces))
        if face.descriptor is None:
            typer.echo("Face has no descriptor", err=True)
            raise typer.Exit(code=1)
        suggestions = ctx.service.suggest_people(face.descriptor)
    if not suggestions:
        typer.echo("No similar people")
        return
    for person, score in suggestions:
        typer.echo(f"{person.id}\t{person.name}\t{score:.3f}")


@app.command()
def stats(
    root: Optional[Path] = ROOT_OPTION,
    log_level: str = LOG_LEVEL_OPTION,
) -> None:
    ctx = _context(root, log_level)
    typer.echo(json.dumps(ctx.service.recognition_stats().to_dict(), indent=2))


@app.command("add-person")
def add_person(
    name: str = typer.Argument(...),
    notes: str = typer.Option("", "--notes"),
    root: Optional[Path] = ROOT_OPTION,
    log_level: str = LOG_LEVEL_OPTION,
) -> None:
    ctx = _context(root, log_level)
    with _exit_on_error():
        person = people_mod.create_person(ctx.store, name, notes=notes)
    typer.echo(f"{person.id}\t{person.name}")


@app.command("rename-person")
def rename_person(
    person_id: str = typer.Argument(...),
    name: str = typer.Argument(...),
    root: Optional[Path] = ROOT_OPTION,
    log_level: str = LOG_LEVEL_OPTION,
) -> None:
    ctx = _context(root, log_level)
    with _exit_on_error():
        person = people_mod.rename_person(ctx.store, person_id, name)
    typer.echo(f"{person.id}\t{person.name}")


@app.command("delete-person")
def delete_person(
    person_id: str = typer.Argument(...),
    root: Optional[Path] = ROOT_OPTION,
    log_level: str = LOG_LEVEL_OPTION,
) -> None:
    """Delete a person and clear every face assigned to them."""
    ctx = _context(root, log_level)
    with _exit_on_error():
        cleared = people_mod.delete_person(ctx.store, person_id, ctx.cfg.storage_root)
    typer.echo(f"Deleted {person_id}; cleared faces in {cleared} photos")


def run() -> None:  # pragma: no cover
    app()


if __name__ == "__main__":  # pragma: no cover
    run()
