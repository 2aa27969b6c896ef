"""Command-line interface for the Flickr uploader."""

import asyncio
import logging
from pathlib import Path

import httpx
import typer
import uvicorn
from rich.console import Console
from rich.logging import RichHandler

from flickr_uploader.api_client import FlickrAPIClient
from flickr_uploader.config import Settings
from flickr_uploader.errors import UploaderError
from flickr_uploader.models import AlbumPath
from flickr_uploader.staging import title_from_url, validate_source_url
from flickr_uploader.state import ServiceState
from flickr_uploader.uploader import PhotoUploader
from flickr_uploader.web import album_url, create_app, photo_url

app = typer.Typer(
    name="flickr-uploader",
    help="Upload images from URLs to private Flickr albums",
    add_completion=False,
)
console = Console()


def setup_logging(verbose: bool) -> None:
    """Configure logging with Rich handler.

    Args:
        verbose: Enable verbose (DEBUG) logging
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, console=console)],
    )


async def async_upload(
    settings: Settings,
    source_url: str,
    album_path: str,
    title: str | None,
    description: str | None,
) -> int:
    """Async upload implementation.

    Args:
        settings: Flickr credentials and tuning
        source_url: URL of the image to upload
        album_path: ``"Event/Album"`` path of the target album
        title: Photo title, derived from the URL if None
        description: Photo description, generated if None

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    logger = logging.getLogger(__name__)
    album = AlbumPath.parse(album_path)
    title = title or title_from_url(source_url)

    try:
        async with FlickrAPIClient(
            settings.api_key,
            settings.api_secret,
            settings.access_token,
            settings.access_secret,
            settings.user_id,
        ) as api_client, httpx.AsyncClient() as http_client:
            state = ServiceState.create(
                api_client,
                rate_limit=settings.rate_limit,
                album_cache_ttl=settings.album_cache_ttl,
            )
            uploader = PhotoUploader(
                api_client, http_client, state, staging_dir=settings.staging_dir
            )
            result = await uploader.upload_photo_from_url(
                source_url, title, album.title, description=description
            )
    except Exception as e:
        logger.error(f"Upload failed: {e}", exc_info=not isinstance(e, UploaderError))
        console.print(f"[red]Upload failed ({type(e).__name__}): {e}[/red]")
        return 1

    console.print("\n[bold]Upload Summary:[/bold]")
    console.print(f"  Photo: {photo_url(settings.user_id, result.photo_id)}")
    console.print(f"  Album: {result.album_title} ({album_url(settings.user_id, result.album_id)})")
    if result.album_created:
        console.print("  [green]Created new album[/green]")
    else:
        console.print("  [green]Added to existing album[/green]")
    return 0


@app.command()
def upload(
    source_url: str = typer.Argument(..., help="URL of the image to upload"),
    album_path: str = typer.Argument(..., help='Target album as "Event/Album"'),
    title: str = typer.Option(None, "--title", help="Photo title (defaults to the URL file name)"),
    description: str = typer.Option(None, "--description", help="Photo description"),
    api_key: str = typer.Option(None, "--api-key", envvar="FLICKR_API_KEY", help="Flickr API key"),
    api_secret: str = typer.Option(None, "--api-secret", envvar="FLICKR_API_SECRET", help="Flickr API secret"),
    access_token: str = typer.Option(
        None, "--access-token", "-t", envvar="FLICKR_ACCESS_TOKEN", help="OAuth access token"
    ),
    access_secret: str = typer.Option(
        None, "--access-secret", envvar="FLICKR_ACCESS_SECRET", help="OAuth access token secret"
    ),
    user_id: str = typer.Option(None, "--user-id", envvar="FLICKR_USER_ID", help="Flickr user NSID"),
    staging_dir: Path = typer.Option(
        None,
        "--staging-dir",
        envvar="FLICKR_UPLOADER_STAGING_DIR",
        exists=True,
        file_okay=False,
        dir_okay=True,
        writable=True,
        help="Directory for temporary downloads",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Upload one image as a private photo and file it into an album.

    ALBUM_PATH "Campout/Day1" files the photo into the album
    "Campout -- Day1", which is created if it does not exist.
    """
    setup_logging(verbose)

    settings = Settings(
        api_key=api_key or "",
        api_secret=api_secret or "",
        access_token=access_token or "",
        access_secret=access_secret or "",
        user_id=user_id or "",
        staging_dir=staging_dir,
    )
    if not settings.is_configured:
        console.print(
            "[red]Error: Flickr credentials are required. Missing: "
            f"{', '.join(settings.missing_variables())}[/red]"
        )
        raise typer.Exit(1)

    try:
        source_url = validate_source_url(source_url)
    except UploaderError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    exit_code = asyncio.run(async_upload(settings, source_url, album_path, title, description))
    raise typer.Exit(exit_code)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Address to bind"),
    port: int = typer.Option(8000, "--port", "-p", min=1, max=65535, help="Port to listen on"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Run the HTTP upload service.

    Flickr credentials are read from the FLICKR_* environment variables.
    """
    setup_logging(verbose)
    uvicorn.run(create_app(), host=host, port=port, log_config=None)


if __name__ == "__main__":
    app()
