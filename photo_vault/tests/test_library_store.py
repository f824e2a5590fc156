"""Tests for the JSON library store and record models."""
from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from vault_lib.descriptors import DESCRIPTOR_DIM
from vault_lib.errors import InvalidDescriptor, PersonNotFound, PhotoNotFound
from vault_lib.models import BoundingBox, FaceRecord, Person, Photo
from vault_lib.stores import LibraryStore


def _vec(offset: float = 0.0) -> list:
    values = [0.0] * DESCRIPTOR_DIM
    values[1] = offset
    return values


def _photo(photo_id: str, faces=None) -> Photo:
    return Photo(
        id=photo_id,
        filename=f"{photo_id}.jpg",
        original_name=f"{photo_id}.jpg",
        original_path=f"originals/{photo_id}.jpg",
        thumbnail_path=f"thumbnails/thumb_{photo_id}.jpg",
        faces=list(faces or []),
        faces_detected=True,
    )


class LibraryStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = Path(self.tmpdir.name) / "library.json"
        self.store = LibraryStore(self.path)

    def tearDown(self) -> None:
        self.tmpdir.cleanup()

    def test_round_trip_through_disk(self) -> None:
        face = FaceRecord(bbox=BoundingBox(1, 2, 30, 40), descriptor=_vec(0.1), confidence=0.9)
        face.assign_to("p1", "Alice")
        self.store.put_person(Person(id="p1", name="Alice", face_descriptors=[_vec(0.1)]))
        self.store.put_photo(_photo("a", [face]))

        reopened = LibraryStore(self.path)
        photo = reopened.require_photo("a")
        self.assertEqual(photo.faces[0].person_name, "Alice")
        self.assertEqual(photo.faces[0].bbox, BoundingBox(1, 2, 30, 40))
        self.assertEqual(photo.faces[0].descriptor.shape, (DESCRIPTOR_DIM,))
        self.assertEqual(len(reopened.require_person("p1").face_descriptors), 1)

    def test_missing_records(self) -> None:
        self.assertIsNone(self.store.photo("nope"))
        self.assertIsNone(self.store.person("nope"))
        with self.assertRaises(PhotoNotFound):
            self.store.require_photo("nope")
        with self.assertRaises(PersonNotFound):
            self.store.require_person("nope")

    def test_transaction_rolls_back_on_error(self) -> None:
        self.store.put_person(Person(id="p1", name="Alice"))
        with self.assertRaises(RuntimeError):
            with self.store.transaction():
                self.store.put_photo(_photo("a"))
                self.store.put_person(Person(id="p1", name="Renamed"))
                raise RuntimeError("boom")
        self.assertIsNone(self.store.photo("a"))
        self.assertEqual(self.store.require_person("p1").name, "Alice")
        on_disk = json.loads(self.path.read_text())
        self.assertEqual(on_disk["people"]["p1"]["name"], "Alice")
        self.assertEqual(on_disk["photos"], {})

    def test_count_photos_with_person_counts_distinct_photos(self) -> None:
        first = FaceRecord(bbox=BoundingBox(0, 0, 1, 1), person_id="p1", person_name="A")
        second = FaceRecord(bbox=BoundingBox(5, 5, 1, 1), person_id="p1", person_name="A")
        self.store.put_photo(_photo("a", [first, second]))
        self.store.put_photo(_photo("b", [FaceRecord(bbox=BoundingBox(0, 0, 1, 1))]))
        self.assertEqual(self.store.count_photos_with_person("p1"), 1)

    def test_delete_person_clears_faces(self) -> None:
        self.store.put_person(Person(id="p1", name="Alice"))
        face = FaceRecord(bbox=BoundingBox(0, 0, 1, 1), person_id="p1", person_name="Alice")
        self.store.put_photo(_photo("a", [face]))
        touched = self.store.delete_person("p1")
        self.assertEqual(touched, ["a"])
        self.assertFalse(self.store.require_photo("a").faces[0].is_assigned)
        with self.assertRaises(PersonNotFound):
            self.store.delete_person("p1")

    def test_corrupt_file_is_ignored(self) -> None:
        self.path.write_text("{not json")
        store = LibraryStore(self.path)
        self.assertEqual(store.photo_ids(), [])

    def test_malformed_stored_descriptor_raises_on_load(self) -> None:
        self.store.put_photo(_photo("a", [FaceRecord(bbox=BoundingBox(0, 0, 1, 1), descriptor=_vec())]))
        payload = json.loads(self.path.read_text())
        payload["photos"]["a"]["faces"][0]["descriptor"] = [0.1, 0.2]
        self.path.write_text(json.dumps(payload))
        store = LibraryStore(self.path)
        with self.assertRaises(InvalidDescriptor):
            store.photo("a")
        self.assertEqual(store.photos(), [])

    def test_person_by_name_is_case_sensitive(self) -> None:
        self.store.put_person(Person(id="p1", name="Alice"))
        self.assertEqual(self.store.person_by_name("Alice").id, "p1")
        self.assertIsNone(self.store.person_by_name("alice"))


class FaceRecordTests(unittest.TestCase):
    def test_detection_drops_malformed_descriptor(self) -> None:
        face = FaceRecord.from_detection(
            {
                "boundingBox": {"x": 10, "y": 20, "width": 30, "height": 40},
                "landmarks": [{"x": 1, "y": 2}],
                "descriptor": [0.5] * 12,
                "confidence": 0.97,
            }
        )
        self.assertIsNone(face.descriptor)
        self.assertEqual(face.bbox.width, 30)
        self.assertEqual(face.landmarks, ((1.0, 2.0),))

    def test_constructor_rejects_malformed_descriptor(self) -> None:
        with self.assertRaises(InvalidDescriptor):
            FaceRecord(bbox=BoundingBox(0, 0, 1, 1), descriptor=[1.0, 2.0])

    def test_person_fields_move_together(self) -> None:
        with self.assertRaises(ValueError):
            FaceRecord(bbox=BoundingBox(0, 0, 1, 1), person_id="p1")
        face = FaceRecord(bbox=BoundingBox(0, 0, 1, 1))
        face.assign_to("p1", "Alice")
        self.assertTrue(face.is_assigned)
        face.clear_assignment()
        self.assertIsNone(face.person_name)
        self.assertNotIn("person_id", face.to_dict())


if __name__ == "__main__":
    unittest.main()
