"""JSON-backed store for Photo and Person records."""
from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from ..errors import InvalidDescriptor, PersonNotFound, PhotoNotFound
from ..models import Person, Photo
from .json_store import BaseJSONStore

logger = logging.getLogger(__name__)


class LibraryStore(BaseJSONStore):
    """Photos and people kept in one JSON document.

    Keeping both sections in one file lets a face assignment persist the
    photo and the person in a single atomic write. All mutations go through
    ``transaction()``: changes are staged in memory, written once on
    success, and rolled back if the block raises.
    """

    VERSION = 1

    def __init__(self, path: Path) -> None:
        self._in_transaction = False
        super().__init__(path)

    def _init_data(self) -> Dict[str, Any]:
        return {
            "version": self.VERSION,
            "updated_at": int(time.time()),
            "photos": {},
            "people": {},
        }

    def _load_payload(self, payload: Dict[str, Any]) -> None:
        for section in ("photos", "people"):
            value = payload.get(section)
            self._data[section] = value if isinstance(value, dict) else {}

    @contextmanager
    def transaction(self) -> Iterator["LibraryStore"]:
        with self.lock:
            if self._in_transaction:
                yield self
                return
            snapshot = deepcopy(self._data)
            self._in_transaction = True
            try:
                yield self
                self._touch_locked()
                self._write_locked()
            except BaseException:
                self._data = snapshot
                raise
            finally:
                self._in_transaction = False

    # Photos

    def photo(self, photo_id: str) -> Optional[Photo]:
        """Return the photo, or None. Malformed stored faces raise InvalidDescriptor."""
        with self.lock:
            raw = self._data["photos"].get(photo_id)
            return Photo.from_dict(raw) if raw else None

    def require_photo(self, photo_id: str) -> Photo:
        photo = self.photo(photo_id)
        if photo is None:
            raise PhotoNotFound(photo_id)
        return photo

    def photo_ids(self) -> List[str]:
        with self.lock:
            return list(self._data["photos"].keys())

    def photos(self) -> List[Photo]:
        """All readable photos; records that fail validation are skipped."""
        with self.lock:
            raws = list(self._data["photos"].values())
        results: List[Photo] = []
        for raw in raws:
            try:
                results.append(Photo.from_dict(raw))
            except (InvalidDescriptor, KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping unreadable photo %s: %s", raw.get("id"), exc)
        return results

    def put_photo(self, photo: Photo) -> None:
        with self.transaction():
            self._data["photos"][photo.id] = photo.to_dict()

    def count_photos_with_person(self, person_id: str) -> int:
        """Distinct photos with at least one face assigned to ``person_id``."""
        with self.lock:
            return sum(
                1
                for raw in self._data["photos"].values()
                if any(face.get("person_id") == person_id for face in raw.get("faces") or [])
            )

    # People

    def person(self, person_id: str) -> Optional[Person]:
        with self.lock:
            raw = self._data["people"].get(person_id)
            return Person.from_dict(raw) if raw else None

    def require_person(self, person_id: str) -> Person:
        person = self.person(person_id)
        if person is None:
            raise PersonNotFound(person_id)
        return person

    def people(self) -> List[Person]:
        """All people in insertion order."""
        with self.lock:
            raws = list(self._data["people"].values())
        results: List[Person] = []
        for raw in raws:
            try:
                results.append(Person.from_dict(raw))
            except (InvalidDescriptor, KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping unreadable person %s: %s", raw.get("id"), exc)
        return results

    def person_by_name(self, name: str) -> Optional[Person]:
        with self.lock:
            for raw in self._data["people"].values():
                if raw.get("name") == name:
                    return Person.from_dict(raw)
        return None

    def put_person(self, person: Person) -> None:
        with self.transaction():
            self._data["people"][person.id] = person.to_dict()

    def delete_person(self, person_id: str) -> List[str]:
        """Remove a person and clear every face that referenced them.

        Returns the ids of photos whose faces were cleared.
        """
        with self.transaction():
            if self._data["people"].pop(person_id, None) is None:
                raise PersonNotFound(person_id)
            touched: List[str] = []
            for photo_id, raw in self._data["photos"].items():
                changed = False
                for face in raw.get("faces") or []:
                    if face.get("person_id") == person_id:
                        face.pop("person_id", None)
                        face.pop("person_name", None)
                        changed = True
                if changed:
                    touched.append(photo_id)
            return touched
