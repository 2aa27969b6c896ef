"""Data models for the Flickr uploader."""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

DEFAULT_EVENT_NAME = "Uncategorized Event"
DEFAULT_ALBUM_NAME = "General"
ALBUM_TITLE_SEPARATOR = " -- "


@dataclass(frozen=True)
class AlbumEntry:
    """A Flickr album (photoset) as seen in the album listing."""

    id: str
    title: str


@dataclass(frozen=True)
class AlbumResolution:
    """Outcome of resolving an album title to an album ID."""

    album_id: str
    title: str
    created: bool


@dataclass(frozen=True)
class AlbumPath:
    """Event/album pair parsed from an ``"Event/Album"`` path."""

    event: str
    album: str

    @property
    def title(self) -> str:
        """Get the Flickr album title for this path."""
        return f"{self.event}{ALBUM_TITLE_SEPARATOR}{self.album}"

    @classmethod
    def parse(cls, album_path: str) -> "AlbumPath":
        """Parse an album path.

        The path is split on ``/`` and blank segments are dropped. The first
        segment names the event and the second the album; further segments
        are ignored.

        Args:
            album_path: Path such as ``"Campout/Day1"``

        Returns:
            Parsed album path
        """
        parts = [part.strip() for part in album_path.split("/") if part.strip()]
        event = parts[0] if parts else DEFAULT_EVENT_NAME
        album = parts[1] if len(parts) > 1 else DEFAULT_ALBUM_NAME
        return cls(event=event, album=album)


@dataclass(frozen=True)
class StagedImage:
    """A downloaded image written to a temporary file awaiting upload."""

    local_path: Path
    byte_size: int
    declared_title: str
    content_type: str

    def __post_init__(self) -> None:
        """Validate staged image data."""
        if self.byte_size <= 0:
            raise ValueError("Staged image must not be empty")


@dataclass(frozen=True)
class UploadResult:
    """Result of a successful photo upload."""

    photo_id: str
    album_id: str
    album_title: str
    uploaded_at: datetime
    album_created: bool = False
    is_private: bool = True

    def __post_init__(self) -> None:
        """Validate upload result."""
        if not self.photo_id:
            raise ValueError("Upload result must have a photo_id")
        if not self.album_id:
            raise ValueError("Upload result must have an album_id")

    def to_dict(self) -> dict[str, object]:
        """Render the result with the camelCase keys used on the wire."""
        return {
            "photoId": self.photo_id,
            "albumId": self.album_id,
            "albumTitle": self.album_title,
            "isPrivate": self.is_private,
            "uploadedAt": self.uploaded_at.isoformat(),
            "albumCreated": self.album_created,
        }
