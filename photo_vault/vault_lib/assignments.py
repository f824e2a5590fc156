"""Apply face-to-person assignments while keeping person aggregates consistent."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .avatars import select_avatar
from .config import AppConfig
from .errors import InvalidFaceIndex
from .models import FaceRecord, Person, Photo, utcnow
from .paths import resolve_storage_path
from .stores import LibraryStore


@dataclass
class AssignmentResult:
    photo: Photo
    person: Person


class AssignmentMaintainer:
    """Mutates faces and person aggregates through one store transaction.

    ``photo_count`` is only ever recomputed from the staged photo state,
    never incremented, so it always equals the number of distinct photos
    that reference the person.
    """

    def __init__(self, store: LibraryStore, cfg: AppConfig, *, logger: logging.Logger) -> None:
        self.store = store
        self.cfg = cfg
        self.logger = logger

    def apply_assignment(
        self,
        photo_id: str,
        face_index: int,
        person_id: str,
        *,
        learn: bool = True,
        update_avatar: bool = True,
    ) -> AssignmentResult:
        with self.store.transaction():
            photo = self.store.require_photo(photo_id)
            person = self.store.require_person(person_id)
            face = _face_at(photo, face_index)
            former = face.person_id

            face.assign_to(person.id, person.name)
            if learn and face.descriptor is not None:
                person.add_face_descriptor(face.descriptor)
            if update_avatar:
                person.avatar = self._avatar_for(photo, face, person)

            self.store.put_photo(photo)
            if former and former != person.id:
                self.recompute_photo_count(former)
            person.photo_count = self.store.count_photos_with_person(person.id)
            person.updated_at = utcnow()
            self.store.put_person(person)
        self.logger.debug(
            "Assigned face %d of %s to %s (%d photos)",
            face_index,
            photo_id,
            person.name,
            person.photo_count,
        )
        return AssignmentResult(photo=photo, person=person)

    def unassign(self, photo_id: str, face_index: int) -> Photo:
        """Clear one face. Descriptors the person already absorbed are kept."""
        with self.store.transaction():
            photo = self.store.require_photo(photo_id)
            face = _face_at(photo, face_index)
            former = face.person_id
            face.clear_assignment()
            self.store.put_photo(photo)
            if former:
                self.recompute_photo_count(former)
        return photo

    def recompute_photo_count(self, person_id: str) -> Optional[Person]:
        """Refresh ``photo_count`` from stored photos; a missing person is ignored."""
        with self.store.transaction():
            person = self.store.person(person_id)
            if person is None:
                self.logger.debug("Skipping photo count for missing person %s", person_id)
                return None
            count = self.store.count_photos_with_person(person_id)
            if count != person.photo_count:
                person.photo_count = count
                person.updated_at = utcnow()
                self.store.put_person(person)
            return person

    def recompute_many(self, person_ids: Iterable[str]) -> List[Person]:
        updated: List[Person] = []
        with self.store.transaction():
            for person_id in dict.fromkeys(person_ids):
                person = self.recompute_photo_count(person_id)
                if person is not None:
                    updated.append(person)
        return updated

    def _avatar_for(self, photo: Photo, face: FaceRecord, person: Person) -> Optional[str]:
        photo_path = resolve_storage_path(self.cfg.storage_root, photo.original_path)
        try:
            return select_avatar(photo_path, face, person.id, person.avatar, self.cfg.storage_root)
        except (OSError, SyntaxError, ValueError) as exc:
            self.logger.warning("Failed to generate avatar for %s from %s: %s", person.id, photo.id, exc)
            return person.avatar


def _face_at(photo: Photo, face_index: int) -> FaceRecord:
    face = photo.face(face_index)
    if face is None:
        raise InvalidFaceIndex(photo.id, face_index, len(photo.faces))
    return face
