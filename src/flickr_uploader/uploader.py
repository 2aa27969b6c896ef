"""Upload orchestration: stage, upload privately, file into an album, clean up."""

import logging
from datetime import datetime, timezone
from pathlib import Path

import httpx

from flickr_uploader.api_client import PRIVATE_UPLOAD_FLAGS, FlickrAPIClient
from flickr_uploader.models import StagedImage, UploadResult
from flickr_uploader.retry import remote_call
from flickr_uploader.staging import (
    DOWNLOAD_TIMEOUT_SECONDS,
    MAX_DOWNLOAD_BYTES,
    fetch_and_stage,
)
from flickr_uploader.state import ServiceState

logger = logging.getLogger(__name__)


def default_description(album_title: str, now: datetime) -> str:
    """Build the description attached to uploaded photos."""
    return f"Uploaded to '{album_title}' on {now:%Y-%m-%d %H:%M} UTC"


class PhotoUploader:
    """Uploads images from URLs to Flickr and files them into albums."""

    def __init__(
        self,
        api_client: FlickrAPIClient,
        http_client: httpx.AsyncClient,
        state: ServiceState,
        staging_dir: Path | None = None,
        download_timeout: float = DOWNLOAD_TIMEOUT_SECONDS,
        max_download_bytes: int = MAX_DOWNLOAD_BYTES,
    ) -> None:
        """Initialize photo uploader.

        Args:
            api_client: Flickr API client instance
            http_client: httpx client used to download source images
            state: Shared rate limiter and album directory
            staging_dir: Directory for temporary files, system default if None
            download_timeout: Deadline in seconds for each download
            max_download_bytes: Largest accepted image size
        """
        self.api_client = api_client
        self.http_client = http_client
        self.state = state
        self.staging_dir = staging_dir
        self.download_timeout = download_timeout
        self.max_download_bytes = max_download_bytes

    async def upload_photo_from_url(
        self,
        source_url: str,
        title: str,
        album_title: str,
        description: str | None = None,
    ) -> UploadResult:
        """Upload the image at ``source_url`` as a private photo in ``album_title``.

        The staged temporary file is deleted on every exit path once the
        download succeeded.

        Args:
            source_url: URL of the image
            title: Photo title
            album_title: Title of the album to file the photo in
            description: Photo description, generated if None

        Returns:
            Upload result

        Raises:
            FetchFailed: If the image cannot be downloaded
            InvalidContentType: If the URL does not serve an image
            EmptyDownload: If the image is empty
            FileTooLarge: If the image is too large
            RateLimitExceeded: If the hourly call quota is used up
            TerminalAuthError: If Flickr rejects the credentials
            OperationFailed: If the upload fails after all retries
            AlbumOperationFailed: If the album cannot be created
        """
        staged = await fetch_and_stage(
            self.http_client,
            source_url,
            title,
            staging_dir=self.staging_dir,
            timeout=self.download_timeout,
            max_bytes=self.max_download_bytes,
        )
        try:
            return await self._upload_staged(staged, title, album_title, description)
        except Exception as e:
            logger.error(f"Failed to upload {source_url} to '{album_title}': {e}")
            raise
        finally:
            self._cleanup(staged)

    async def _upload_staged(
        self,
        staged: StagedImage,
        title: str,
        album_title: str,
        description: str | None,
    ) -> UploadResult:
        """Upload a staged image and file it into its album.

        Args:
            staged: Image already written to disk
            title: Photo title
            album_title: Title of the album to file the photo in
            description: Photo description, generated if None

        Returns:
            Upload result
        """
        now = datetime.now(timezone.utc)
        if description is None:
            description = default_description(album_title, now)

        photo_id = await remote_call(
            "upload_photo",
            self.state.rate_limiter,
            lambda: self.api_client.upload_photo(
                staged.local_path, title, description, PRIVATE_UPLOAD_FLAGS
            ),
        )
        logger.info(f"Uploaded {staged.declared_title} ({staged.byte_size} bytes) as photo {photo_id}")

        resolution = await self.state.albums.resolve_album(album_title, photo_id)

        # A new album already holds the photo as its primary photo
        if not resolution.created:
            logger.info(f"Adding photo {photo_id} to existing album {resolution.album_id}")
            await remote_call(
                "add_photo",
                self.state.rate_limiter,
                lambda: self.api_client.add_photo_to_album(resolution.album_id, photo_id),
            )

        return UploadResult(
            photo_id=photo_id,
            album_id=resolution.album_id,
            album_title=resolution.title,
            uploaded_at=now,
            album_created=resolution.created,
        )

    def _cleanup(self, staged: StagedImage) -> None:
        """Delete the staged file, logging rather than raising on failure."""
        try:
            staged.local_path.unlink()
            logger.debug(f"Removed staged file {staged.local_path}")
        except OSError as e:
            logger.warning(f"Failed to clean up temp file {staged.local_path}: {e}")
