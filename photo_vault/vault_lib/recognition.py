"""Match unlabeled face descriptors against known people and auto-assign them."""
from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from .assignments import AssignmentMaintainer
from .descriptors import DESCRIPTOR_DIM, coerce_descriptor, corpus_similarity
from .errors import NotFound
from .models import FaceRecord, Person, Photo, utcnow
from .stores import LibraryStore

HIGH_CONFIDENCE_THRESHOLD = 0.85
MEDIUM_CONFIDENCE_THRESHOLD = 0.75
LOW_CONFIDENCE_THRESHOLD = 0.65

SUGGESTION_THRESHOLD = 0.6
SUGGESTION_LIMIT = 5
DEFAULT_UNPROCESSED_LIMIT = 50


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


_ACCEPTED_TIERS = {
    Confidence.LOW: {Confidence.LOW, Confidence.MEDIUM, Confidence.HIGH},
    Confidence.MEDIUM: {Confidence.MEDIUM, Confidence.HIGH},
    Confidence.HIGH: {Confidence.HIGH},
}


def parse_confidence(value: Union[str, Confidence]) -> Confidence:
    if isinstance(value, Confidence):
        return value
    try:
        return Confidence(str(value).strip().lower())
    except ValueError as exc:
        raise ValueError(f"min confidence must be high, medium, or low (got {value!r})") from exc


def confidence_for(score: float) -> Optional[Confidence]:
    """Tier for ``score``; None below the low floor."""
    if score >= HIGH_CONFIDENCE_THRESHOLD:
        return Confidence.HIGH
    if score >= MEDIUM_CONFIDENCE_THRESHOLD:
        return Confidence.MEDIUM
    if score >= LOW_CONFIDENCE_THRESHOLD:
        return Confidence.LOW
    return None


def accepts(confidence: Confidence, min_confidence: Union[str, Confidence]) -> bool:
    return confidence in _ACCEPTED_TIERS[parse_confidence(min_confidence)]


@dataclass(frozen=True)
class Match:
    face_index: int
    person_id: str
    person_name: str
    similarity: float
    confidence: Confidence

    def to_dict(self) -> Dict[str, Any]:
        return {
            "faceIndex": self.face_index,
            "personId": self.person_id,
            "personName": self.person_name,
            "similarity": self.similarity,
            "confidence": self.confidence.value,
        }


@dataclass
class RecognitionStats:
    total_photos_with_faces: int
    photos_with_unassigned_faces: int
    total_unassigned_faces: int
    recognition_candidates: int

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


def recognize_faces(faces: Sequence[FaceRecord], people: Sequence[Person]) -> List[Match]:
    """Propose the best-scoring person for each face; does not mutate anything.

    A face is scored against every descriptor of every person and a person's
    score is their best single descriptor. Ties go to the person seen first.
    """
    candidates = [person for person in people if person.face_descriptors]
    if not candidates:
        return []
    matches: List[Match] = []
    for index, face in enumerate(faces):
        descriptor = face.descriptor
        if descriptor is None or getattr(descriptor, "shape", None) != (DESCRIPTOR_DIM,):
            continue
        best: Optional[Tuple[Person, float]] = None
        for person in candidates:
            score = corpus_similarity(descriptor, person.face_descriptors)
            if best is None or score > best[1]:
                best = (person, score)
        if best is None:
            continue
        person, score = best
        tier = confidence_for(score)
        if tier is None:
            continue
        matches.append(
            Match(
                face_index=index,
                person_id=person.id,
                person_name=person.name,
                similarity=score,
                confidence=tier,
            )
        )
    return matches


class FaceRecognitionService:
    """Recognition workflows over the library store."""

    def __init__(
        self,
        store: LibraryStore,
        maintainer: AssignmentMaintainer,
        *,
        logger: logging.Logger,
        pause: float = 0.1,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store = store
        self.maintainer = maintainer
        self.logger = logger
        self.pause = pause
        self._sleep = sleep

    def process_photo(
        self,
        photo_id: str,
        min_confidence: Union[str, Confidence] = Confidence.MEDIUM,
    ) -> List[Match]:
        photo = self.store.require_photo(photo_id)
        if not photo.faces_detected or not photo.faces:
            return []
        people = self.store.people()
        if not any(person.face_descriptors for person in people):
            self.logger.debug("No people with face descriptors to match against")
            return []
        matches = recognize_faces(photo.faces, people)
        for match in matches:
            self.logger.info(
                "Face %d of %s matched %s at %d%% (%s)",
                match.face_index,
                photo_id,
                match.person_name,
                round(match.similarity * 100),
                match.confidence.value,
            )
        if matches:
            self.auto_assign(photo_id, matches, min_confidence)
        return matches

    def auto_assign(
        self,
        photo_id: str,
        matches: Sequence[Match],
        min_confidence: Union[str, Confidence] = Confidence.MEDIUM,
    ) -> int:
        """Assign accepted matches to faces that have no person yet."""
        minimum = parse_confidence(min_confidence)
        assigned = 0
        with self.store.transaction():
            photo = self.store.photo(photo_id)
            if photo is None:
                return 0
            for match in matches:
                if not accepts(match.confidence, minimum):
                    continue
                face = photo.face(match.face_index)
                if face is None or face.is_assigned:
                    continue
                try:
                    self.maintainer.apply_assignment(
                        photo_id,
                        match.face_index,
                        match.person_id,
                        learn=False,
                        update_avatar=False,
                    )
                except NotFound as exc:
                    self.logger.warning("Skipping match for face %d of %s: %s", match.face_index, photo_id, exc)
                    continue
                face.assign_to(match.person_id, match.person_name)
                assigned += 1
        if assigned:
            self.logger.info("Auto-assigned %d faces in photo %s", assigned, photo_id)
        return assigned

    def batch_process(
        self,
        photo_ids: Sequence[str],
        min_confidence: Union[str, Confidence] = Confidence.MEDIUM,
    ) -> Dict[str, List[Match]]:
        """Process photos one at a time; a failing photo yields an empty result."""
        minimum = parse_confidence(min_confidence)
        self.logger.info("Starting batch face recognition for %d photos", len(photo_ids))
        results: Dict[str, List[Match]] = {}
        for position, photo_id in enumerate(photo_ids):
            if position and self.pause > 0:
                self._sleep(self.pause)
            try:
                results[photo_id] = self.process_photo(photo_id, minimum)
            except Exception as exc:
                self.logger.warning("Error processing photo %s: %s", photo_id, exc)
                results[photo_id] = []
        self.logger.info("Completed batch face recognition for %d photos", len(photo_ids))
        return results

    def find_unprocessed_photos(self, limit: int = DEFAULT_UNPROCESSED_LIMIT) -> List[str]:
        """Photos with an unassigned face that has a descriptor, newest first."""
        if limit <= 0:
            return []
        candidates = [photo for photo in self.store.photos() if photo.has_unassigned_descriptor()]
        candidates.sort(key=_newest_first)
        return [photo.id for photo in candidates[:limit]]

    def attach_faces(self, photo_id: str, faces: Sequence[Dict[str, Any]]) -> List[Match]:
        """Record detector output for a photo, then try to recognize it.

        Replacing the faces drops earlier assignments, so the counts of the
        people who lost them are recomputed. Recognition failures are logged
        and never undo the attach.
        """
        records = [FaceRecord.from_detection(item) for item in faces]
        with self.store.transaction():
            photo = self.store.require_photo(photo_id)
            former = photo.person_ids()
            photo.faces = records
            photo.faces_detected = True
            photo.faces_processed_at = utcnow()
            self.store.put_photo(photo)
            self.maintainer.recompute_many(former)
        if not any(record.descriptor is not None for record in records):
            return []
        try:
            matches = self.process_photo(photo_id, Confidence.MEDIUM)
        except Exception as exc:
            self.logger.warning("Auto-recognition failed for %s: %s", photo_id, exc)
            return []
        self.logger.info("Auto-recognition found %d matches for photo %s", len(matches), photo_id)
        return matches

    def reset_faces(self, photo_id: str) -> Photo:
        """Forget detection results so the photo can be reprocessed."""
        with self.store.transaction():
            photo = self.store.require_photo(photo_id)
            former = photo.person_ids()
            photo.faces = []
            photo.faces_detected = False
            photo.faces_processed_at = None
            self.store.put_photo(photo)
            self.maintainer.recompute_many(former)
        return photo

    def suggest_people(
        self,
        descriptor: Sequence[float],
        *,
        threshold: float = SUGGESTION_THRESHOLD,
        limit: int = SUGGESTION_LIMIT,
    ) -> List[Tuple[Person, float]]:
        vector = coerce_descriptor(descriptor)
        scored = [
            (person, corpus_similarity(vector, person.face_descriptors))
            for person in self.store.people()
            if person.face_descriptors
        ]
        ranked = sorted(
            (item for item in scored if item[1] >= threshold),
            key=lambda item: item[1],
            reverse=True,
        )
        return ranked[:limit]

    def recognition_stats(self) -> RecognitionStats:
        photos = [photo for photo in self.store.photos() if photo.faces_detected]
        with_faces = [photo for photo in photos if photo.faces]
        unassigned = [face for photo in photos for face in photo.faces if not face.is_assigned]
        return RecognitionStats(
            total_photos_with_faces=len(with_faces),
            photos_with_unassigned_faces=sum(
                1 for photo in photos if any(not face.is_assigned for face in photo.faces)
            ),
            total_unassigned_faces=len(unassigned),
            recognition_candidates=sum(1 for face in unassigned if face.descriptor is not None),
        )


def _newest_first(photo: Photo) -> Tuple[bool, float]:
    captured = photo.captured_at
    if captured is None:
        return (True, 0.0)
    return (False, -_timestamp(captured))


def _timestamp(value: datetime) -> float:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()
