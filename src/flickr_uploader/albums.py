"""Cached album directory and find-or-create album resolution."""

import asyncio
import logging
import time
import weakref
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from flickr_uploader.models import AlbumEntry, AlbumResolution
from flickr_uploader.rate_limiter import RateLimiter
from flickr_uploader.retry import remote_call

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL = 300.0


class AlbumAPI(Protocol):
    """The part of the Flickr client the album directory depends on."""

    async def list_all_albums(self) -> list[AlbumEntry]: ...

    async def create_album(self, title: str, primary_photo_id: str) -> str: ...


def normalize_title(title: str) -> str:
    """Normalize an album title for comparison.

    Only leading and trailing whitespace and letter case are ignored.
    """
    return title.strip().casefold()


def find_album(title: str, albums: list[AlbumEntry]) -> AlbumEntry | None:
    """Find the album whose title matches ``title``.

    Args:
        title: Desired album title
        albums: Albums to search

    Returns:
        The first matching album, or None
    """
    wanted = normalize_title(title)
    return next((a for a in albums if normalize_title(a.title) == wanted), None)


@dataclass
class AlbumCache:
    """Album listing plus the time it was fetched."""

    entries: list[AlbumEntry] = field(default_factory=list)
    fetched_at: float | None = None

    def is_fresh(self, now: float, ttl: float) -> bool:
        """Check if the listing is younger than ``ttl`` seconds."""
        return self.fetched_at is not None and now - self.fetched_at < ttl

    def invalidate(self) -> None:
        """Force the next read to refetch, keeping entries as a fallback."""
        self.fetched_at = None


class AlbumDirectory:
    """Maps album titles to album IDs, creating albums on demand."""

    def __init__(
        self,
        api_client: AlbumAPI,
        rate_limiter: RateLimiter,
        ttl: float = DEFAULT_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize album directory.

        Args:
            api_client: Flickr API client
            rate_limiter: Shared rate limiter for outbound calls
            ttl: Seconds an album listing stays fresh
            clock: Monotonic time source
        """
        self.api_client = api_client
        self.rate_limiter = rate_limiter
        self.ttl = ttl
        self._clock = clock
        self._cache = AlbumCache()
        self._refresh_lock = asyncio.Lock()
        self._title_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    async def get_albums(self, force_refresh: bool = False) -> list[AlbumEntry]:
        """Get the user's albums, from cache while it is fresh.

        Listing is best effort: if the refresh fails the last good listing
        (or an empty list) is returned.

        Args:
            force_refresh: Refetch even if the cache is fresh

        Returns:
            List of albums
        """
        if not force_refresh and self._cache.is_fresh(self._clock(), self.ttl):
            return list(self._cache.entries)

        async with self._refresh_lock:
            # Another request may have refreshed while we waited
            if not force_refresh and self._cache.is_fresh(self._clock(), self.ttl):
                return list(self._cache.entries)

            albums = await remote_call(
                "list_albums", self.rate_limiter, self.api_client.list_all_albums
            )
            if albums is None:
                logger.warning(
                    f"Using {len(self._cache.entries)} cached album(s) after failed refresh"
                )
                return list(self._cache.entries)

            self._cache = AlbumCache(entries=list(albums), fetched_at=self._clock())
            logger.debug(f"Album cache refreshed with {len(albums)} album(s)")
            return list(albums)

    def invalidate(self) -> None:
        """Make the next ``get_albums`` call refetch the listing."""
        self._cache.invalidate()

    def _lock_for(self, title: str) -> asyncio.Lock:
        # Entries disappear once no resolution holds or waits on the lock
        return self._title_locks.setdefault(normalize_title(title), asyncio.Lock())

    async def resolve_album(self, title: str, primary_photo_id: str) -> AlbumResolution:
        """Find an album by title or create it with ``primary_photo_id``.

        Concurrent resolutions of the same title inside this process are
        serialized, so only one of them creates the album.

        Args:
            title: Album title
            primary_photo_id: Photo used as the new album's primary photo

        Returns:
            The album ID and whether the album was created

        Raises:
            AlbumOperationFailed: If the album has to be created and creation fails
        """
        async with self._lock_for(title):
            existing = find_album(title, await self.get_albums())
            if existing is not None:
                logger.info(f"Found existing album '{existing.title}' ({existing.id})")
                return AlbumResolution(album_id=existing.id, title=existing.title, created=False)

            logger.info(f"Creating new album '{title}'")
            album_id = await remote_call(
                "create_album",
                self.rate_limiter,
                lambda: self.api_client.create_album(title, primary_photo_id),
            )
            self.invalidate()
            return AlbumResolution(album_id=album_id, title=title, created=True)

    async def find_or_create_album(self, title: str, primary_photo_id: str) -> str:
        """Get the ID of the album titled ``title``, creating it if needed."""
        resolution = await self.resolve_album(title, primary_photo_id)
        return resolution.album_id
