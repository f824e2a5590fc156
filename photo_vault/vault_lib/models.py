"""Photo, face, and person records exchanged between the store and the engine."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from dateutil import parser as dateparser

from .descriptors import coerce_descriptor, descriptor_to_list, optional_descriptor
from .errors import InvalidDescriptor

logger = logging.getLogger(__name__)

Point = Tuple[float, float]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return dateparser.isoparse(str(value))
    except (ValueError, TypeError, OverflowError):
        return None


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class BoundingBox:
    x: float
    y: float
    width: float
    height: float

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.x, self.y, self.width, self.height)

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "BoundingBox":
        return cls(
            x=float(payload.get("x") or 0.0),
            y=float(payload.get("y") or 0.0),
            width=float(payload.get("width") or 0.0),
            height=float(payload.get("height") or 0.0),
        )


@dataclass
class FaceRecord:
    bbox: BoundingBox
    landmarks: Tuple[Point, ...] = ()
    descriptor: Optional[np.ndarray] = None
    confidence: Optional[float] = None
    person_id: Optional[str] = None
    person_name: Optional[str] = None

    def __post_init__(self) -> None:
        self.descriptor = optional_descriptor(self.descriptor)
        if (self.person_id is None) != (self.person_name is None):
            raise ValueError("person_id and person_name must be set together")

    @property
    def is_assigned(self) -> bool:
        return self.person_id is not None

    def assign_to(self, person_id: str, person_name: str) -> None:
        self.person_id = person_id
        self.person_name = person_name

    def clear_assignment(self) -> None:
        self.person_id = None
        self.person_name = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "bbox": self.bbox.to_dict(),
            "landmarks": [list(point) for point in self.landmarks],
            "descriptor": descriptor_to_list(self.descriptor),
            "confidence": self.confidence,
        }
        if self.person_id is not None:
            payload["person_id"] = self.person_id
            payload["person_name"] = self.person_name
        return payload

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "FaceRecord":
        """Build from a stored record; malformed descriptors raise InvalidDescriptor."""
        person_id = payload.get("person_id") or None
        person_name = payload.get("person_name") if person_id else None
        return cls(
            bbox=BoundingBox.from_dict(payload.get("bbox") or {}),
            landmarks=_parse_landmarks(payload.get("landmarks")),
            descriptor=payload.get("descriptor"),
            confidence=_optional_float(payload.get("confidence")),
            person_id=person_id,
            person_name=(person_name or "") if person_id else None,
        )

    @classmethod
    def from_detection(cls, payload: Dict[str, Any]) -> "FaceRecord":
        """Build from face detector output.

        Detector output arrives with camelCase keys. A malformed descriptor
        is dropped (the face is kept for manual tagging) rather than failing
        the photo.
        """
        bbox = payload.get("boundingBox") or payload.get("bbox") or {}
        descriptor = payload.get("descriptor")
        try:
            vector = optional_descriptor(descriptor)
        except InvalidDescriptor as exc:
            logger.warning("Dropping malformed face descriptor: %s", exc)
            vector = None
        return cls(
            bbox=BoundingBox.from_dict(bbox),
            landmarks=_parse_landmarks(payload.get("landmarks")),
            descriptor=vector,
            confidence=_optional_float(payload.get("confidence")),
        )


@dataclass
class Photo:
    id: str
    filename: str
    original_name: str
    original_path: str
    thumbnail_path: str
    mime_type: str = ""
    size: int = 0
    width: Optional[int] = None
    height: Optional[int] = None
    captured_at: Optional[datetime] = None
    event_name: Optional[str] = None
    faces: List[FaceRecord] = field(default_factory=list)
    faces_detected: bool = False
    faces_processed_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)

    def face(self, index: int) -> Optional[FaceRecord]:
        if 0 <= index < len(self.faces):
            return self.faces[index]
        return None

    def person_ids(self) -> set:
        return {face.person_id for face in self.faces if face.person_id}

    def has_unassigned_descriptor(self) -> bool:
        return any(face.descriptor is not None and not face.is_assigned for face in self.faces)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "filename": self.filename,
            "original_name": self.original_name,
            "original_path": self.original_path,
            "thumbnail_path": self.thumbnail_path,
            "mime_type": self.mime_type,
            "size": self.size,
            "width": self.width,
            "height": self.height,
            "captured_at": format_timestamp(self.captured_at),
            "event_name": self.event_name,
            "faces": [face.to_dict() for face in self.faces],
            "faces_detected": self.faces_detected,
            "faces_processed_at": format_timestamp(self.faces_processed_at),
            "created_at": format_timestamp(self.created_at),
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Photo":
        return cls(
            id=str(payload["id"]),
            filename=str(payload.get("filename") or ""),
            original_name=str(payload.get("original_name") or ""),
            original_path=str(payload.get("original_path") or ""),
            thumbnail_path=str(payload.get("thumbnail_path") or ""),
            mime_type=str(payload.get("mime_type") or ""),
            size=int(payload.get("size") or 0),
            width=_optional_int(payload.get("width")),
            height=_optional_int(payload.get("height")),
            captured_at=parse_timestamp(payload.get("captured_at")),
            event_name=payload.get("event_name") or None,
            faces=[FaceRecord.from_dict(item) for item in payload.get("faces") or []],
            faces_detected=bool(payload.get("faces_detected")),
            faces_processed_at=parse_timestamp(payload.get("faces_processed_at")),
            created_at=parse_timestamp(payload.get("created_at")) or utcnow(),
        )


@dataclass
class Person:
    id: str
    name: str
    avatar: Optional[str] = None
    face_descriptors: List[np.ndarray] = field(default_factory=list)
    photo_count: int = 0
    notes: str = ""
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        self.face_descriptors = [coerce_descriptor(item) for item in self.face_descriptors]

    def add_face_descriptor(self, descriptor: Any) -> None:
        self.face_descriptors.append(coerce_descriptor(descriptor))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "avatar": self.avatar,
            "face_descriptors": [descriptor_to_list(item) for item in self.face_descriptors],
            "photo_count": self.photo_count,
            "notes": self.notes,
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Person":
        return cls(
            id=str(payload["id"]),
            name=str(payload.get("name") or ""),
            avatar=payload.get("avatar") or None,
            face_descriptors=list(payload.get("face_descriptors") or []),
            photo_count=int(payload.get("photo_count") or 0),
            notes=str(payload.get("notes") or ""),
            created_at=parse_timestamp(payload.get("created_at")) or utcnow(),
            updated_at=parse_timestamp(payload.get("updated_at")) or utcnow(),
        )


def _parse_landmarks(value: Any) -> Tuple[Point, ...]:
    if not isinstance(value, list):
        return ()
    points: List[Point] = []
    for item in value:
        if isinstance(item, dict):
            points.append((float(item.get("x") or 0.0), float(item.get("y") or 0.0)))
        elif isinstance(item, (list, tuple)) and len(item) >= 2:
            points.append((float(item[0]), float(item[1])))
    return tuple(points)


def _optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _optional_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
