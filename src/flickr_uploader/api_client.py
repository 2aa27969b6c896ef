"""Flickr API client using httpx for async HTTP calls and oauthlib for signing."""

import logging
import mimetypes
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, NoReturn

import httpx
from oauthlib.oauth1 import Client as OAuth1Client

from flickr_uploader import __version__
from flickr_uploader.errors import FlickrAPIError, ServerError
from flickr_uploader.models import AlbumEntry

logger = logging.getLogger(__name__)

# Flickr API endpoints
REST_API_URL = "https://api.flickr.com/services/rest/"
UPLOAD_API_URL = "https://up.flickr.com/services/upload/"

USER_AGENT = f"flickr-url-uploader/{__version__}"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

# Largest page size photosets.getList accepts
ALBUMS_PER_PAGE = 500

PRIVATE_UPLOAD_FLAGS = {
    "is_public": "0",
    "is_friend": "0",
    "is_family": "0",
    # 2 hides the photo from public searches
    "hidden": "2",
}


class FlickrAPIClient:
    """Client for interacting with the Flickr API using httpx."""

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        access_token: str,
        access_secret: str,
        user_id: str,
        timeout: float | None = None,
    ) -> None:
        """Initialize Flickr API client.

        Args:
            api_key: Flickr API key (OAuth consumer key)
            api_secret: Flickr API secret (OAuth consumer secret)
            access_token: OAuth access token
            access_secret: OAuth access token secret
            user_id: NSID of the account that owns the albums
            timeout: Per-request timeout in seconds, None for no timeout
        """
        self.api_key = api_key
        self.user_id = user_id
        self.timeout = timeout
        self._signer = OAuth1Client(
            api_key,
            client_secret=api_secret,
            resource_owner_key=access_token,
            resource_owner_secret=access_secret,
        )
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "FlickrAPIClient":
        """Async context manager entry."""
        self._client = httpx.AsyncClient(
            timeout=self.timeout, headers={"User-Agent": USER_AGENT}
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        if self._client:
            await self._client.aclose()
        self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the httpx AsyncClient instance.

        Returns:
            The httpx.AsyncClient instance

        Raises:
            RuntimeError: If client is used outside of async context manager
        """
        if self._client is None:
            raise RuntimeError("Client must be used within async context manager")
        return self._client

    def _authorization(self, url: str, params: dict[str, str]) -> dict[str, str]:
        """Sign a form POST with OAuth 1.0a (HMAC-SHA1).

        Args:
            url: Endpoint the form is posted to
            params: Form fields covered by the signature

        Returns:
            Headers carrying the ``Authorization`` value
        """
        _, headers, _ = self._signer.sign(
            url,
            http_method="POST",
            body=params,
            headers={"Content-Type": FORM_CONTENT_TYPE},
        )
        return {"Authorization": headers["Authorization"]}

    async def call(self, method: str, **params: str) -> dict[str, Any]:
        """Call a Flickr REST method.

        Args:
            method: Flickr method name (e.g., "flickr.photosets.getList")
            **params: Method arguments

        Returns:
            Parsed JSON response

        Raises:
            FlickrAPIError: If Flickr reports a failure
            ServerError: If a server or network error occurs
        """
        form = {"method": method, "format": "json", "nojsoncallback": "1", **params}
        headers = self._authorization(REST_API_URL, form)

        try:
            response = await self.client.post(REST_API_URL, data=form, headers=headers)
        except httpx.RequestError as e:
            logger.warning(f"Network error while calling {method}: {e}")
            raise ServerError(f"Network error: {e}") from e

        result = self._parse_json_response(response, f"calling {method}")
        if response.status_code >= 400 or result.get("stat") != "ok":
            self._handle_error_response(response.status_code, result, f"calling {method}")
        return result

    async def list_albums(self, page: int = 1) -> tuple[list[AlbumEntry], int]:
        """List one page of the user's albums.

        Malformed records are skipped and a malformed response counts as an
        empty page.

        Args:
            page: Page number, starting at 1

        Returns:
            Albums on the page and the total number of pages
        """
        result = await self.call(
            "flickr.photosets.getList",
            user_id=self.user_id,
            page=str(page),
            per_page=str(ALBUMS_PER_PAGE),
        )
        photosets = result.get("photosets")
        if not isinstance(photosets, dict):
            return [], 1

        albums = []
        for photoset in photosets.get("photoset") or []:
            try:
                title = photoset["title"]
                if isinstance(title, dict):
                    title = title.get("_content", "")
                albums.append(AlbumEntry(id=str(photoset["id"]), title=str(title)))
            except (KeyError, TypeError):
                logger.debug(f"Skipping malformed album record: {photoset!r}")

        try:
            pages = int(photosets.get("pages", 1))
        except (TypeError, ValueError):
            pages = 1
        return albums, max(pages, 1)

    async def list_all_albums(self) -> list[AlbumEntry]:
        """List every album owned by the user, walking all pages."""
        albums, pages = await self.list_albums(1)
        for page in range(2, pages + 1):
            page_albums, _ = await self.list_albums(page)
            albums.extend(page_albums)
        logger.debug(f"Listed {len(albums)} album(s) across {pages} page(s)")
        return albums

    async def create_album(self, title: str, primary_photo_id: str) -> str:
        """Create a new Flickr album.

        Args:
            title: Album title
            primary_photo_id: Photo that becomes the album's first photo

        Returns:
            Album ID

        Raises:
            FlickrAPIError: If album creation fails
            ServerError: If server error occurs
        """
        result = await self.call(
            "flickr.photosets.create",
            title=title,
            primary_photo_id=primary_photo_id,
        )
        try:
            album_id = str(result["photoset"]["id"])
        except (KeyError, TypeError) as e:
            raise FlickrAPIError(f"Invalid API response while creating album '{title}'") from e
        logger.info(f"Created album '{title}' with ID: {album_id}")
        return album_id

    async def add_photo_to_album(self, album_id: str, photo_id: str) -> None:
        """Add an uploaded photo to an album.

        Args:
            album_id: Album ID
            photo_id: Photo ID

        Raises:
            FlickrAPIError: If Flickr rejects the request
            ServerError: If server error occurs
        """
        await self.call(
            "flickr.photosets.addPhoto", photoset_id=album_id, photo_id=photo_id
        )
        logger.debug(f"Added photo {photo_id} to album {album_id}")

    async def upload_photo(
        self,
        photo_path: Path,
        title: str,
        description: str = "",
        privacy: dict[str, str] | None = None,
    ) -> str:
        """Upload a photo to Flickr.

        Args:
            photo_path: Path to the photo file
            title: Photo title
            description: Photo description
            privacy: Visibility flags, private by default

        Returns:
            Photo ID

        Raises:
            FlickrAPIError: If photo upload fails
            ServerError: If server error occurs
            FileNotFoundError: If photo file doesn't exist
        """
        if not photo_path.exists():
            raise FileNotFoundError(f"Photo file not found: {photo_path}")

        form = {
            "title": title,
            "description": description,
            **(privacy if privacy is not None else PRIVATE_UPLOAD_FLAGS),
        }
        # The photo itself is not part of the signature base string
        headers = self._authorization(UPLOAD_API_URL, form)

        mime_type = mimetypes.guess_type(photo_path)[0] or "application/octet-stream"
        content = photo_path.read_bytes()
        files = {"photo": (photo_path.name, content, mime_type)}

        try:
            response = await self.client.post(
                UPLOAD_API_URL, data=form, files=files, headers=headers
            )
        except httpx.RequestError as e:
            logger.warning(f"Network error while uploading {photo_path.name}: {e}")
            raise ServerError(f"Network error: {e}") from e

        photo_id = self._parse_upload_response(response, f"uploading {photo_path.name}")
        logger.debug(f"Uploaded {photo_path.name}, photo ID: {photo_id}")
        return photo_id

    def _parse_json_response(
        self, response: httpx.Response, context: str
    ) -> dict[str, Any]:
        """Parse JSON response, handling non-JSON responses gracefully.

        Args:
            response: The httpx Response object
            context: Description of what operation was attempted

        Returns:
            Parsed JSON as a dictionary

        Raises:
            ServerError: If response is 5xx with non-JSON body
            FlickrAPIError: If response has invalid JSON for non-5xx status
        """
        try:
            result = response.json()
        except ValueError:
            # Non-JSON response (e.g., HTML error page during outages)
            if response.status_code >= 500:
                raise ServerError(
                    f"Server error {response.status_code}: {response.text[:200]}",
                    status_code=response.status_code,
                )
            raise FlickrAPIError(
                f"Invalid API response while {context}: {response.text[:200]}",
                status_code=response.status_code,
            )
        if not isinstance(result, dict):
            raise FlickrAPIError(f"Invalid API response while {context}: {result!r}")
        return result

    def _parse_upload_response(self, response: httpx.Response, context: str) -> str:
        """Extract the photo ID from an upload response.

        The upload endpoint answers in XML regardless of the requested format.

        Raises:
            ServerError: If response is 5xx
            FlickrAPIError: If the upload was rejected or the reply is malformed
        """
        if response.status_code >= 500:
            raise ServerError(
                f"Server error {response.status_code} while {context}",
                status_code=response.status_code,
            )
        try:
            root = ET.fromstring(response.text)
        except ET.ParseError as e:
            raise FlickrAPIError(
                f"Invalid API response while {context}: {response.text[:200]}",
                status_code=response.status_code,
            ) from e

        if root.get("stat") == "ok":
            photo_id = root.findtext("photoid")
            if photo_id:
                return photo_id.strip()
            raise FlickrAPIError(f"Invalid API response while {context}: no photo ID")

        err = root.find("err")
        code = err.get("code") if err is not None else None
        message = err.get("msg", "unknown error") if err is not None else "unknown error"
        self._handle_error_response(
            response.status_code,
            {"stat": "fail", "code": code, "message": message},
            context,
        )

    def _handle_error_response(
        self, status_code: int, result: dict[str, Any], context: str
    ) -> NoReturn:
        """Handle error responses from the Flickr API.

        Args:
            status_code: HTTP status code
            result: Response body
            context: Description of what operation failed

        Raises:
            ServerError: If server error occurs
            FlickrAPIError: For other API errors
        """
        try:
            code = int(result.get("code")) if result.get("code") is not None else None
        except (TypeError, ValueError):
            code = None
        error_message = result.get("message", str(result))

        # Flickr code 105 means the service is temporarily unavailable
        if status_code >= 500 or code == 105:
            logger.warning(f"Server error while {context}: {error_message}")
            raise ServerError(
                f"Flickr API server error: {error_message}",
                code=code,
                status_code=status_code,
            )

        error_msg = f"Flickr API error while {context}: {error_message}"
        logger.debug(error_msg)
        raise FlickrAPIError(error_msg, code=code, status_code=status_code)
