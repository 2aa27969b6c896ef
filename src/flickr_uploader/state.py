"""Process-wide state shared by concurrent uploads."""

from dataclasses import dataclass

from flickr_uploader.albums import DEFAULT_CACHE_TTL, AlbumAPI, AlbumDirectory
from flickr_uploader.rate_limiter import DEFAULT_QUOTA, RateLimiter


@dataclass
class ServiceState:
    """The only mutable state shared between in-flight uploads.

    Created once when the service starts and kept for the life of the
    process. ``RateLimiter`` guards its budget with a lock and
    ``AlbumDirectory`` serializes refreshes and same-title creations.
    """

    rate_limiter: RateLimiter
    albums: AlbumDirectory

    @classmethod
    def create(
        cls,
        api_client: AlbumAPI,
        rate_limit: int = DEFAULT_QUOTA,
        album_cache_ttl: float = DEFAULT_CACHE_TTL,
    ) -> "ServiceState":
        """Build the shared state for one Flickr account."""
        rate_limiter = RateLimiter(quota=rate_limit)
        albums = AlbumDirectory(api_client, rate_limiter, ttl=album_cache_ttl)
        return cls(rate_limiter=rate_limiter, albums=albums)
