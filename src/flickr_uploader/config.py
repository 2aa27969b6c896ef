"""Service configuration loaded from environment variables."""

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from flickr_uploader.albums import DEFAULT_CACHE_TTL
from flickr_uploader.rate_limiter import DEFAULT_QUOTA

REQUIRED_VARIABLES = {
    "api_key": "FLICKR_API_KEY",
    "api_secret": "FLICKR_API_SECRET",
    "access_token": "FLICKR_ACCESS_TOKEN",
    "access_secret": "FLICKR_ACCESS_SECRET",
    "user_id": "FLICKR_USER_ID",
}


@dataclass(frozen=True)
class Settings:
    """Flickr credentials and service tuning."""

    api_key: str = ""
    api_secret: str = ""
    access_token: str = ""
    access_secret: str = ""
    user_id: str = ""
    staging_dir: Path | None = None
    album_cache_ttl: float = DEFAULT_CACHE_TTL
    rate_limit: int = DEFAULT_QUOTA

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Load settings from the environment.

        Args:
            environ: Mapping to read instead of ``os.environ``

        Returns:
            Settings

        Raises:
            ValueError: If a numeric setting cannot be parsed
        """
        env = os.environ if environ is None else environ
        staging_dir = env.get("FLICKR_UPLOADER_STAGING_DIR")
        return cls(
            **{field: env.get(name, "").strip() for field, name in REQUIRED_VARIABLES.items()},
            staging_dir=Path(staging_dir) if staging_dir else None,
            album_cache_ttl=float(env.get("FLICKR_UPLOADER_ALBUM_CACHE_TTL", DEFAULT_CACHE_TTL)),
            rate_limit=int(env.get("FLICKR_UPLOADER_RATE_LIMIT", DEFAULT_QUOTA)),
        )

    def missing_variables(self) -> list[str]:
        """Get the names of required environment variables that are unset."""
        return [name for field, name in REQUIRED_VARIABLES.items() if not getattr(self, field)]

    @property
    def is_configured(self) -> bool:
        """Check if every Flickr credential is present."""
        return not self.missing_variables()
