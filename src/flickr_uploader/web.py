"""FastAPI service exposing the uploader to automation platforms."""

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import datetime, timezone
from typing import Any

import httpx
import pydantic
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from flickr_uploader import __version__
from flickr_uploader.api_client import FlickrAPIClient
from flickr_uploader.config import Settings
from flickr_uploader.errors import UploaderError, ValidationError, status_code_for
from flickr_uploader.models import AlbumPath, UploadResult
from flickr_uploader.rate_limiter import DEFAULT_WINDOW_SECONDS
from flickr_uploader.staging import title_from_url, validate_source_url
from flickr_uploader.state import ServiceState
from flickr_uploader.uploader import PhotoUploader

logger = logging.getLogger(__name__)

SERVICE_NAME = "Flickr Photo Uploader"

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


class UploadRequest(pydantic.BaseModel):
    """Body of ``POST /upload``."""

    imageUrl: str | None = None
    dropboxUrl: str | None = None
    albumPath: str | None = None
    title: str | None = None
    description: str | None = None

    @property
    def source_url(self) -> str | None:
        """Get the URL to fetch; a Dropbox URL wins over an image URL."""
        return self.dropboxUrl or self.imageUrl


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def error_response(error: Exception) -> JSONResponse:
    """Render an error as the JSON body returned to callers."""
    return JSONResponse(
        status_code=status_code_for(error),
        content={
            "error": str(error),
            "type": type(error).__name__,
            "timestamp": _timestamp(),
        },
    )


def photo_url(user_id: str, photo_id: str) -> str:
    return f"https://www.flickr.com/photos/{user_id}/{photo_id}"


def album_url(user_id: str, album_id: str) -> str:
    return f"https://www.flickr.com/photos/{user_id}/albums/{album_id}"


def render_result(result: UploadResult, user_id: str) -> dict[str, Any]:
    """Render an upload result with links to the photo and album."""
    return {
        **result.to_dict(),
        "flickrUrl": photo_url(user_id, result.photo_id),
        "albumUrl": album_url(user_id, result.album_id),
    }


async def parse_upload_request(request: Request) -> UploadRequest:
    """Read and validate the JSON body of an upload request.

    Raises:
        ValidationError: If the body is not valid JSON or lacks required fields
    """
    try:
        payload = await request.json()
        body = UploadRequest.model_validate(payload)
    except ValueError as e:
        # pydantic.ValidationError is a ValueError too
        raise ValidationError(f"Invalid request body: {e}") from e

    if not body.source_url or not body.albumPath:
        raise ValidationError("Missing imageUrl/dropboxUrl or albumPath")
    validate_source_url(body.source_url)
    return body


def create_app(
    settings: Settings | None = None,
    *,
    api_client: FlickrAPIClient | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Service settings, read from the environment if None
        api_client: Flickr client to use instead of building one from settings
        http_client: httpx client for downloads instead of a new one

    Returns:
        The application
    """
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Create the shared clients and state for the life of the process."""
        app.state.service = None
        app.state.uploader = None
        async with AsyncExitStack() as stack:
            downloads = http_client or await stack.enter_async_context(httpx.AsyncClient())
            if settings.is_configured:
                flickr = api_client or await stack.enter_async_context(
                    FlickrAPIClient(
                        settings.api_key,
                        settings.api_secret,
                        settings.access_token,
                        settings.access_secret,
                        settings.user_id,
                    )
                )
                service = ServiceState.create(
                    flickr,
                    rate_limit=settings.rate_limit,
                    album_cache_ttl=settings.album_cache_ttl,
                )
                app.state.service = service
                app.state.uploader = PhotoUploader(
                    flickr, downloads, service, staging_dir=settings.staging_dir
                )
                logger.info(f"{SERVICE_NAME} ready for user {settings.user_id}")
            else:
                logger.warning(
                    f"Flickr API not configured, missing: {', '.join(settings.missing_variables())}"
                )
            yield

    app = FastAPI(title=SERVICE_NAME, version=__version__, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_security_headers(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        return response

    @app.get("/")
    @app.get("/health")
    async def health(request: Request) -> dict[str, Any]:
        """Report configuration status and rate limit headroom."""
        service: ServiceState | None = request.app.state.service
        missing = settings.missing_variables()
        remaining = service.rate_limiter.remaining() if service else settings.rate_limit
        return {
            "status": "ok" if not missing else "not configured",
            "service": SERVICE_NAME,
            "version": __version__,
            "configured": not missing,
            "missing": missing,
            "rateLimit": {
                "quota": settings.rate_limit,
                "remaining": remaining,
                "windowSeconds": DEFAULT_WINDOW_SECONDS,
            },
            "endpoints": {"health": "GET /health", "upload": "POST /upload"},
            "timestamp": _timestamp(),
        }

    @app.options("/{path:path}")
    async def preflight(path: str) -> Response:
        return Response(status_code=200)

    @app.post("/upload")
    async def upload(request: Request) -> JSONResponse:
        """Upload the image at ``imageUrl``/``dropboxUrl`` into ``albumPath``."""
        try:
            body = await parse_upload_request(request)
        except ValidationError as e:
            return error_response(e)

        uploader: PhotoUploader | None = request.app.state.uploader
        if uploader is None:
            return JSONResponse(
                status_code=500,
                content={
                    "error": "Flickr API not configured. Add environment variables.",
                    "missing": settings.missing_variables(),
                    "timestamp": _timestamp(),
                },
            )

        source_url = body.source_url.strip()
        album = AlbumPath.parse(body.albumPath)
        title = (body.title or "").strip() or title_from_url(source_url)
        logger.info(f"Upload requested: {source_url} -> '{album.title}'")

        try:
            result = await uploader.upload_photo_from_url(
                source_url, title, album.title, description=body.description
            )
        except Exception as e:
            logger.error(f"Upload error: {e}", exc_info=not isinstance(e, UploaderError))
            return error_response(e)

        return JSONResponse(
            content={
                "message": "Photo uploaded",
                "result": render_result(result, settings.user_id),
            }
        )

    @app.api_route("/upload", methods=["GET", "PUT", "PATCH", "DELETE"])
    async def upload_method_not_allowed() -> JSONResponse:
        return JSONResponse(
            status_code=405,
            content={"error": "Method not allowed", "timestamp": _timestamp()},
            headers={"Allow": "POST, OPTIONS"},
        )

    return app
