"""Error taxonomy and failure policies for the Flickr uploader."""

from dataclasses import dataclass


class UploaderError(Exception):
    """Base exception for all uploader errors."""

    pass


class ValidationError(UploaderError):
    """Exception raised for bad or missing request fields."""

    pass


class RateLimitExceeded(UploaderError):
    """Exception raised when the hourly Flickr call quota is exhausted."""

    pass


class OperationFailed(UploaderError):
    """Exception raised when a remote call fails after all retry attempts."""

    pass


class TerminalAuthError(UploaderError):
    """Exception raised for invalid credentials or permission errors.

    These are never retried.
    """

    pass


class FetchFailed(UploaderError):
    """Exception raised when the source image cannot be downloaded."""

    pass


class InvalidContentType(UploaderError):
    """Exception raised when the source URL does not serve an image."""

    pass


class EmptyDownload(UploaderError):
    """Exception raised when the downloaded image has no content."""

    pass


class FileTooLarge(UploaderError):
    """Exception raised when the downloaded image exceeds the size limit."""

    pass


class AlbumOperationFailed(UploaderError):
    """Exception raised when an album cannot be resolved or created."""

    pass


class FlickrAPIError(UploaderError):
    """Base exception for Flickr API errors."""

    def __init__(
        self, message: str, code: int | None = None, status_code: int | None = None
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class ServerError(FlickrAPIError):
    """Exception raised for 5xx server errors and network failures."""

    pass


@dataclass(frozen=True)
class CallPolicy:
    """How failures of one kind of remote call are treated.

    Attributes:
        retried: Whether the call goes through the retry executor
        absorbed: Whether a final failure is logged and swallowed
        wrap_as: Exception type a propagated failure is wrapped in, if any
    """

    retried: bool
    absorbed: bool
    wrap_as: type[UploaderError] | None = None


CALL_POLICIES: dict[str, CallPolicy] = {
    "list_albums": CallPolicy(retried=True, absorbed=True),
    "create_album": CallPolicy(retried=True, absorbed=False, wrap_as=AlbumOperationFailed),
    "add_photo": CallPolicy(retried=True, absorbed=True),
    "upload_photo": CallPolicy(retried=True, absorbed=False),
}

_RATE_LIMIT_MARKERS = ("rate limit",)
_AUTH_MARKERS = ("permission", "oauth", "auth token", "api key", "signature", "credentials")
_VALIDATION_MARKERS = ("invalid", "missing")


def status_code_for(error: Exception) -> int:
    """Map an error to the HTTP status code returned to the caller.

    The error type decides first; for wrapped errors the message content is
    used as a fallback.

    Args:
        error: The error raised while handling a request

    Returns:
        HTTP status code
    """
    if isinstance(error, RateLimitExceeded):
        return 429
    if isinstance(error, (ValidationError, InvalidContentType)):
        return 400
    if isinstance(error, TerminalAuthError):
        return 401

    message = str(error).lower()
    if any(marker in message for marker in _RATE_LIMIT_MARKERS):
        return 429
    if any(marker in message for marker in _AUTH_MARKERS):
        return 401
    if any(marker in message for marker in _VALIDATION_MARKERS):
        return 400
    return 500
