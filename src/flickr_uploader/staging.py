"""Download remote images into temporary files ready for upload."""

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from urllib.parse import parse_qsl, unquote, urlencode, urlsplit, urlunsplit

import httpx

from flickr_uploader import __version__
from flickr_uploader.errors import (
    EmptyDownload,
    FetchFailed,
    FileTooLarge,
    InvalidContentType,
    ValidationError,
)
from flickr_uploader.models import StagedImage

logger = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT_SECONDS = 30.0
MAX_DOWNLOAD_BYTES = 200 * 1024 * 1024
DOWNLOAD_USER_AGENT = f"flickr-url-uploader/{__version__} (+image fetcher)"
STAGED_SUFFIX = ".jpg"
DEFAULT_TITLE = "photo"
MAX_FILENAME_BYTES = 100


def validate_source_url(source_url: str) -> str:
    """Check that ``source_url`` is an absolute http(s) URL.

    Args:
        source_url: URL supplied by the caller

    Returns:
        The URL with surrounding whitespace removed

    Raises:
        ValidationError: If the URL is malformed
    """
    url = source_url.strip()
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValidationError(f"Invalid image URL: {source_url!r}")
    return url


def title_from_url(source_url: str) -> str:
    """Derive a photo title from the last path segment of a URL."""
    path = urlsplit(source_url).path
    name = unquote(path.rstrip("/").rsplit("/", 1)[-1]).strip()
    return name or DEFAULT_TITLE


def normalize_source_url(source_url: str) -> str:
    """Rewrite Dropbox share links so they serve the file itself.

    Share links answer with an HTML preview page unless ``dl=1`` is set.
    Other URLs are returned unchanged.
    """
    parts = urlsplit(source_url)
    host = parts.hostname or ""
    if host != "dropbox.com" and not host.endswith(".dropbox.com"):
        return source_url

    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != "dl"]
    query.append(("dl", "1"))
    return urlunsplit(parts._replace(query=urlencode(query)))


def staged_filename(desired_title: str) -> str:
    """Get the file name used for the staged copy of an image.

    Control characters and path separators are removed, the name is cut to
    ``MAX_FILENAME_BYTES`` UTF-8 bytes and ``.jpg`` is appended.
    """
    name = "".join(c for c in desired_title if c.isprintable())
    name = name.replace("/", "_").replace(os.sep, "_").strip()
    if name.endswith(STAGED_SUFFIX):
        name = name[: -len(STAGED_SUFFIX)]
    name = name.encode("utf-8")[:MAX_FILENAME_BYTES].decode("utf-8", errors="ignore").strip()
    return f"{name or DEFAULT_TITLE}{STAGED_SUFFIX}"


async def _download(
    http_client: httpx.AsyncClient, url: str, max_bytes: int, timeout: float
) -> tuple[bytes, str]:
    # The client's own timeouts must not fire before the overall deadline
    async with http_client.stream(
        "GET",
        url,
        headers={"User-Agent": DOWNLOAD_USER_AGENT},
        follow_redirects=True,
        timeout=httpx.Timeout(timeout),
    ) as response:
        if not response.is_success:
            raise FetchFailed(
                f"Failed to fetch image from URL: HTTP {response.status_code}"
            )

        content_type = response.headers.get("Content-Type", "")
        media_type = content_type.split(";", 1)[0].strip().lower()
        if not media_type.startswith("image/"):
            raise InvalidContentType(
                f"Invalid content type {content_type or 'missing'!r}: URL does not point to an image"
            )

        declared_length = response.headers.get("Content-Length")
        if declared_length and declared_length.isdigit() and int(declared_length) > max_bytes:
            raise FileTooLarge(
                f"Image is {int(declared_length)} bytes, the limit is {max_bytes} bytes"
            )

        chunks = []
        received = 0
        async for chunk in response.aiter_bytes():
            received += len(chunk)
            if received > max_bytes:
                raise FileTooLarge(
                    f"Image exceeds the limit of {max_bytes} bytes"
                )
            chunks.append(chunk)

    return b"".join(chunks), media_type


async def fetch_and_stage(
    http_client: httpx.AsyncClient,
    source_url: str,
    desired_title: str,
    *,
    staging_dir: Path | None = None,
    timeout: float = DOWNLOAD_TIMEOUT_SECONDS,
    max_bytes: int = MAX_DOWNLOAD_BYTES,
) -> StagedImage:
    """Download an image and write it to a unique temporary file.

    The caller owns the returned file and must delete it.

    Args:
        http_client: httpx client used for the download
        source_url: URL of the image
        desired_title: Title the staged file name is derived from
        staging_dir: Directory for the temporary file, system default if None
        timeout: Deadline in seconds for the whole download
        max_bytes: Largest accepted image size

    Returns:
        The staged image

    Raises:
        FetchFailed: If the download fails, times out or is not 2xx
        InvalidContentType: If the response is not an image
        FileTooLarge: If the image exceeds ``max_bytes``
        EmptyDownload: If the image has no content
    """
    url = normalize_source_url(source_url)
    logger.info(f"Downloading image from {url}")

    try:
        content, media_type = await asyncio.wait_for(
            _download(http_client, url, max_bytes, timeout), timeout=timeout
        )
    except asyncio.TimeoutError as e:
        raise FetchFailed(f"Timed out fetching image after {timeout:.0f}s") from e
    except httpx.HTTPError as e:
        raise FetchFailed(f"Failed to fetch image from URL: {e}") from e

    if not content:
        raise EmptyDownload("Downloaded image is empty")

    filename = staged_filename(desired_title)
    fd, raw_path = tempfile.mkstemp(prefix="flickr-upload-", suffix=f"-{filename}", dir=staging_dir)
    path = Path(raw_path)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content)
    except OSError:
        path.unlink(missing_ok=True)
        raise

    logger.debug(f"Staged {len(content)} bytes at {path}")
    return StagedImage(
        local_path=path,
        byte_size=len(content),
        declared_title=desired_title,
        content_type=media_type,
    )
