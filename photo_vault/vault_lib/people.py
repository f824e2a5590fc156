"""Create, rename, and delete people in the library."""
from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Optional, Sequence

from .avatars import delete_avatar
from .descriptors import coerce_descriptor
from .errors import DuplicatePersonName
from .models import Person, utcnow
from .stores import LibraryStore

logger = logging.getLogger(__name__)


def _clean_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValueError("Person name is required")
    return cleaned


def create_person(
    store: LibraryStore,
    name: str,
    *,
    descriptor: Optional[Sequence[float]] = None,
    notes: str = "",
) -> Person:
    """Add a person, optionally seeded with one face descriptor."""
    cleaned = _clean_name(name)
    seed = [coerce_descriptor(descriptor)] if descriptor is not None else []
    with store.transaction():
        if store.person_by_name(cleaned) is not None:
            raise DuplicatePersonName(cleaned)
        person = Person(
            id=uuid.uuid4().hex,
            name=cleaned,
            face_descriptors=seed,
            notes=notes.strip(),
        )
        store.put_person(person)
    logger.info("Created person %s (%s)", person.name, person.id)
    return person


def rename_person(store: LibraryStore, person_id: str, name: str) -> Person:
    """Rename a person.

    Faces keep the name recorded when they were assigned; it is a snapshot.
    """
    cleaned = _clean_name(name)
    with store.transaction():
        person = store.require_person(person_id)
        if cleaned == person.name:
            return person
        existing = store.person_by_name(cleaned)
        if existing is not None and existing.id != person_id:
            raise DuplicatePersonName(cleaned)
        person.name = cleaned
        person.updated_at = utcnow()
        store.put_person(person)
    logger.info("Renamed person %s to %s", person_id, cleaned)
    return person


def delete_person(store: LibraryStore, person_id: str, storage_root: Path) -> int:
    """Delete a person, clear every face assigned to them, and drop the avatar.

    Returns the number of photos whose faces were cleared.
    """
    with store.transaction():
        person = store.require_person(person_id)
        touched = store.delete_person(person_id)
    delete_avatar(person.avatar, storage_root)
    logger.info("Deleted person %s; cleared faces in %d photos", person.name, len(touched))
    return len(touched)
