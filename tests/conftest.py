"""Pytest configuration and shared fixtures."""

from pathlib import Path

import pytest

from flickr_uploader.config import Settings
from flickr_uploader.errors import FlickrAPIError
from flickr_uploader.models import AlbumEntry

IMAGE_URL = "https://images.example.com/photos/beach.jpg"


class FakeFlickrClient:
    """In-memory stand-in for FlickrAPIClient that records every call."""

    def __init__(self, albums: list[AlbumEntry] | None = None) -> None:
        self.albums = list(albums or [])
        self.list_calls = 0
        self.created: list[tuple[str, str]] = []
        self.added: list[tuple[str, str]] = []
        self.uploads: list[dict] = []
        self.list_errors: list[Exception] = []
        self.create_errors: list[Exception] = []
        self.add_errors: list[Exception] = []
        self.upload_errors: list[Exception] = []
        self._next_photo = 1
        self._next_album = 1

    async def list_all_albums(self) -> list[AlbumEntry]:
        self.list_calls += 1
        if self.list_errors:
            raise self.list_errors.pop(0)
        return list(self.albums)

    async def create_album(self, title: str, primary_photo_id: str) -> str:
        if self.create_errors:
            raise self.create_errors.pop(0)
        album_id = f"album_{self._next_album}"
        self._next_album += 1
        self.created.append((title, primary_photo_id))
        self.albums.append(AlbumEntry(id=album_id, title=title))
        return album_id

    async def add_photo_to_album(self, album_id: str, photo_id: str) -> None:
        if self.add_errors:
            raise self.add_errors.pop(0)
        self.added.append((album_id, photo_id))

    async def upload_photo(
        self,
        photo_path: Path,
        title: str,
        description: str = "",
        privacy: dict[str, str] | None = None,
    ) -> str:
        self.uploads.append(
            {
                "path": photo_path,
                "existed": photo_path.exists(),
                "content": photo_path.read_bytes() if photo_path.exists() else None,
                "title": title,
                "description": description,
                "privacy": privacy,
            }
        )
        if self.upload_errors:
            raise self.upload_errors.pop(0)
        photo_id = f"photo_{self._next_photo}"
        self._next_photo += 1
        return photo_id


@pytest.fixture
def fake_flickr() -> FakeFlickrClient:
    """Return an empty fake Flickr account."""
    return FakeFlickrClient()


@pytest.fixture
def jpeg_bytes() -> bytes:
    """Return a small payload standing in for a JPEG image."""
    return b"\xff\xd8\xff\xe0" + b"\x00" * 2048 + b"\xff\xd9"


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Return fully configured settings with fake credentials."""
    staging = tmp_path / "staging"
    staging.mkdir()
    return Settings(
        api_key="test_api_key",
        api_secret="test_api_secret",
        access_token="test_access_token",
        access_secret="test_access_secret",
        user_id="12345678@N00",
        staging_dir=staging,
    )


@pytest.fixture
def no_backoff(monkeypatch: pytest.MonkeyPatch) -> None:
    """Make retry backoff waits instantaneous."""
    monkeypatch.setattr(
        "flickr_uploader.retry.backoff_delay", lambda attempt, jitter_ms=0.0: 0.0
    )


def auth_error() -> FlickrAPIError:
    """Build the error Flickr returns for a bad OAuth token."""
    return FlickrAPIError(
        "Flickr API error while calling flickr.photosets.create: Invalid auth token",
        code=98,
        status_code=200,
    )
