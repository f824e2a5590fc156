"""Exception types shared across the vault toolchain."""
from __future__ import annotations


class VaultError(Exception):
    """Base class for errors callers are expected to handle."""


class ThumbnailError(VaultError):
    """Every thumbnail strategy failed, including the placeholder."""


class ToolError(VaultError):
    """An external converter could not be spawned, timed out, or failed."""


class InvalidDescriptor(VaultError, ValueError):
    """A face descriptor is not a 128-dimensional numeric vector."""


class UnsupportedUpload(VaultError):
    """The upload boundary rejected a file by MIME type or extension."""


class NotFound(VaultError):
    """A referenced photo or person does not exist."""


class PhotoNotFound(NotFound):
    def __init__(self, photo_id: str) -> None:
        super().__init__(f"Photo not found: {photo_id}")
        self.photo_id = photo_id


class PersonNotFound(NotFound):
    def __init__(self, person_id: str) -> None:
        super().__init__(f"Person not found: {person_id}")
        self.person_id = person_id


class InvalidFaceIndex(VaultError, IndexError):
    def __init__(self, photo_id: str, face_index: int, face_count: int) -> None:
        super().__init__(
            f"Invalid face index {face_index} for photo {photo_id} ({face_count} faces)"
        )
        self.photo_id = photo_id
        self.face_index = face_index
        self.face_count = face_count


class DuplicatePersonName(VaultError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Person with this name already exists: {name}")
        self.name = name
