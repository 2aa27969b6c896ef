"""Flickr URL Uploader - Upload images from URLs into private Flickr albums."""

__version__ = "0.1.0"

from flickr_uploader.albums import AlbumDirectory
from flickr_uploader.api_client import FlickrAPIClient
from flickr_uploader.models import AlbumEntry, AlbumPath, StagedImage, UploadResult
from flickr_uploader.rate_limiter import RateLimiter
from flickr_uploader.retry import run_with_retry
from flickr_uploader.staging import fetch_and_stage
from flickr_uploader.state import ServiceState
from flickr_uploader.uploader import PhotoUploader

__all__ = [
    "AlbumDirectory",
    "AlbumEntry",
    "AlbumPath",
    "FlickrAPIClient",
    "PhotoUploader",
    "RateLimiter",
    "ServiceState",
    "StagedImage",
    "UploadResult",
    "fetch_and_stage",
    "run_with_retry",
]
