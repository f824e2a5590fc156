import logging
from pathlib import Path

from PIL import Image
from typer.testing import CliRunner

from cli import faces, ingest
from vault_lib import thumbs as thumbs_mod
from vault_lib.config import load_config
from vault_lib.ingest import Ingestor
from vault_lib.stores import LibraryStore

runner = CliRunner()


def test_guess_mime_sends_raw_as_generic_upload():
    assert ingest.guess_mime(Path("a.JPG")) == "image/jpeg"
    assert ingest.guess_mime(Path("a.nef")) == "application/octet-stream"


def test_add_person_and_duplicate_name(tmp_path):
    root = tmp_path / "vault"
    result = runner.invoke(faces.app, ["add-person", "  Ann ", "--root", str(root)])
    assert result.exit_code == 0, result.output
    store = LibraryStore(load_config(root, env={}).library_path)
    assert [person.name for person in store.people()] == ["Ann"]

    duplicate = runner.invoke(faces.app, ["add-person", "Ann", "--root", str(root)])
    assert duplicate.exit_code == 1


def test_assign_unknown_photo_exits_with_error(tmp_path):
    result = runner.invoke(faces.app, ["assign", "nope", "0", "p1", "--root", str(tmp_path)])
    assert result.exit_code == 1


def test_stats_reports_counts(tmp_path):
    result = runner.invoke(faces.app, ["stats", "--root", str(tmp_path)])
    assert result.exit_code == 0
    assert "total_unassigned_faces" in result.output


def test_attach_records_detections(tmp_path, monkeypatch):
    monkeypatch.setattr(thumbs_mod, "is_converter_available", lambda binary="dcraw": False)
    root = tmp_path / "vault"
    cfg = load_config(root, env={})
    source = tmp_path / "p.jpg"
    Image.new("RGB", (100, 100)).save(source)
    ingestor = Ingestor(LibraryStore(cfg.library_path), cfg, logger=logging.getLogger("tests.cli"))
    photo = ingestor.register_upload(source, "p.jpg", "image/jpeg")
    detections = tmp_path / "faces.json"
    detections.write_text('[{"boundingBox": {"x": 1, "y": 1, "width": 10, "height": 10}, "descriptor": null}]')

    result = runner.invoke(faces.app, ["attach", photo.id, str(detections), "--root", str(root)])
    assert result.exit_code == 0, result.output
    stored = LibraryStore(cfg.library_path).require_photo(photo.id)
    assert stored.faces_detected and len(stored.faces) == 1
