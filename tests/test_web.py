"""Black-box tests for the HTTP service."""

import dataclasses

import httpx
import pytest
from conftest import FakeFlickrClient, auth_error
from fastapi.testclient import TestClient

from flickr_uploader.config import Settings
from flickr_uploader.web import create_app

BEACH_URL = "https://images.example.com/trip/beach.jpg"
SUNSET_URL = "https://images.example.com/trip/sunset.jpg"


class ImageServer:
    """Mock transport serving fake images and recording requests."""

    def __init__(self, content_type: str = "image/jpeg") -> None:
        self.content_type = content_type
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        # About 200KB of fake JPEG data, distinct per URL
        body = b"\xff\xd8" + request.url.path.encode() * 13000 + b"\xff\xd9"
        return httpx.Response(200, headers={"Content-Type": self.content_type}, content=body)


def make_client(
    settings: Settings, flickr: FakeFlickrClient, server: ImageServer | None = None
) -> TestClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(server or ImageServer()))
    app = create_app(settings, api_client=flickr, http_client=http_client)
    return TestClient(app)


class TestHealth:
    """Test health and preflight endpoints."""

    @pytest.mark.parametrize("path", ["/", "/health"])
    def test_health_configured(
        self, path: str, settings: Settings, fake_flickr: FakeFlickrClient
    ) -> None:
        """Test health output for a configured service."""
        with make_client(settings, fake_flickr) as client:
            response = client.get(path)

        assert response.status_code == 200
        body = response.json()
        assert body["configured"] is True
        assert body["missing"] == []
        assert body["rateLimit"] == {"quota": 3600, "remaining": 3600, "windowSeconds": 3600}
        assert "timestamp" in body

    def test_health_not_configured(self, fake_flickr: FakeFlickrClient) -> None:
        """Test that health never errors and lists missing variables."""
        with make_client(Settings(), fake_flickr) as client:
            response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["configured"] is False
        assert "FLICKR_API_KEY" in body["missing"]
        assert "FLICKR_USER_ID" in body["missing"]

    def test_security_headers(self, settings: Settings, fake_flickr: FakeFlickrClient) -> None:
        """Test that every response carries the security headers."""
        with make_client(settings, fake_flickr) as client:
            response = client.get("/")

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"

    def test_options(self, settings: Settings, fake_flickr: FakeFlickrClient) -> None:
        """Test that OPTIONS answers with an empty 200."""
        with make_client(settings, fake_flickr) as client:
            response = client.options("/upload")

        assert response.status_code == 200
        assert response.content == b""

    def test_cors_preflight(self, settings: Settings, fake_flickr: FakeFlickrClient) -> None:
        """Test that CORS preflight requests are allowed."""
        with make_client(settings, fake_flickr) as client:
            response = client.options(
                "/upload",
                headers={
                    "Origin": "https://automation.example.com",
                    "Access-Control-Request-Method": "POST",
                    "Access-Control-Request-Headers": "Content-Type",
                },
            )

        assert response.status_code == 200
        assert response.headers["Access-Control-Allow-Origin"] == "*"

    def test_cors_preflight_any_header(self, settings: Settings, fake_flickr: FakeFlickrClient) -> None:
        """Test that preflights asking for extra request headers still get 200."""
        with make_client(settings, fake_flickr) as client:
            response = client.options(
                "/upload",
                headers={
                    "Origin": "https://automation.example.com",
                    "Access-Control-Request-Method": "POST",
                    "Access-Control-Request-Headers": "Content-Type, Authorization, X-Request-Id",
                },
            )

        assert response.status_code == 200
        allowed = response.headers["Access-Control-Allow-Headers"].lower()
        assert "authorization" in allowed
        assert "x-request-id" in allowed


class TestUploadValidation:
    """Test request validation on the upload endpoint."""

    @pytest.mark.parametrize(
        "payload",
        [
            {"albumPath": "Trip/Beach"},
            {"imageUrl": BEACH_URL},
            {"imageUrl": "", "albumPath": "Trip/Beach"},
        ],
    )
    def test_missing_fields(
        self, payload: dict, settings: Settings, fake_flickr: FakeFlickrClient
    ) -> None:
        """Test that a missing URL or album path is rejected."""
        with make_client(settings, fake_flickr) as client:
            response = client.post("/upload", json=payload)

        assert response.status_code == 400
        assert "Missing imageUrl/dropboxUrl or albumPath" in response.json()["error"]
        assert "timestamp" in response.json()

    def test_malformed_url(self, settings: Settings, fake_flickr: FakeFlickrClient) -> None:
        """Test that malformed URLs are rejected."""
        with make_client(settings, fake_flickr) as client:
            response = client.post("/upload", json={"imageUrl": "not-a-url", "albumPath": "Trip"})

        assert response.status_code == 400

    def test_invalid_json(self, settings: Settings, fake_flickr: FakeFlickrClient) -> None:
        """Test that unparseable bodies are rejected."""
        with make_client(settings, fake_flickr) as client:
            response = client.post(
                "/upload", content=b"{not json", headers={"Content-Type": "application/json"}
            )

        assert response.status_code == 400

    def test_wrong_field_type(self, settings: Settings, fake_flickr: FakeFlickrClient) -> None:
        """Test that non-string fields are rejected."""
        with make_client(settings, fake_flickr) as client:
            response = client.post("/upload", json={"imageUrl": ["x"], "albumPath": "Trip"})

        assert response.status_code == 400

    @pytest.mark.parametrize("method", ["GET", "PUT", "DELETE"])
    def test_method_not_allowed(
        self, method: str, settings: Settings, fake_flickr: FakeFlickrClient
    ) -> None:
        """Test that other methods on the upload path are refused."""
        with make_client(settings, fake_flickr) as client:
            response = client.request(method, "/upload")

        assert response.status_code == 405
        assert response.json()["error"] == "Method not allowed"

    def test_not_configured(self, fake_flickr: FakeFlickrClient) -> None:
        """Test that uploads fail when credentials are missing."""
        with make_client(Settings(), fake_flickr) as client:
            response = client.post("/upload", json={"imageUrl": BEACH_URL, "albumPath": "Trip"})

        assert response.status_code == 500
        assert "not configured" in response.json()["error"]
        assert fake_flickr.uploads == []


class TestUploadEndpoint:
    """End-to-end tests of the upload endpoint."""

    def test_first_and_second_upload(
        self, settings: Settings, fake_flickr: FakeFlickrClient
    ) -> None:
        """Test album creation on the first upload and reuse on the second."""
        with make_client(settings, fake_flickr) as client:
            first = client.post("/upload", json={"imageUrl": BEACH_URL, "albumPath": "Trip/Beach"})
            second = client.post(
                "/upload", json={"imageUrl": SUNSET_URL, "albumPath": "Trip/Beach"}
            )

        assert first.status_code == 200
        assert first.json()["message"] == "Photo uploaded"
        result = first.json()["result"]
        assert result["albumTitle"] == "Trip -- Beach"
        assert result["albumCreated"] is True
        assert result["isPrivate"] is True
        assert result["flickrUrl"] == f"https://www.flickr.com/photos/12345678@N00/{result['photoId']}"
        assert result["albumUrl"] == f"https://www.flickr.com/photos/12345678@N00/albums/{result['albumId']}"

        assert second.status_code == 200
        second_result = second.json()["result"]
        assert second_result["albumId"] == result["albumId"]
        assert second_result["albumCreated"] is False

        assert fake_flickr.created == [("Trip -- Beach", result["photoId"])]
        assert fake_flickr.added == [(result["albumId"], second_result["photoId"])]

    def test_album_path_defaults(self, settings: Settings, fake_flickr: FakeFlickrClient) -> None:
        """Test that a single-segment path files into the General album."""
        with make_client(settings, fake_flickr) as client:
            response = client.post("/upload", json={"imageUrl": BEACH_URL, "albumPath": "Solo"})

        assert response.json()["result"]["albumTitle"] == "Solo -- General"

    def test_title_from_url(self, settings: Settings, fake_flickr: FakeFlickrClient) -> None:
        """Test that the photo title defaults to the URL file name."""
        with make_client(settings, fake_flickr) as client:
            client.post("/upload", json={"imageUrl": BEACH_URL, "albumPath": "Trip/Beach"})
            client.post(
                "/upload",
                json={"imageUrl": SUNSET_URL, "albumPath": "Trip/Beach", "title": "Golden hour"},
            )

        assert [u["title"] for u in fake_flickr.uploads] == ["beach.jpg", "Golden hour"]

    def test_dropbox_url_preferred(self, settings: Settings, fake_flickr: FakeFlickrClient) -> None:
        """Test that dropboxUrl wins over imageUrl."""
        server = ImageServer()
        with make_client(settings, fake_flickr, server) as client:
            response = client.post(
                "/upload",
                json={
                    "imageUrl": BEACH_URL,
                    "dropboxUrl": "https://www.dropbox.com/s/abc/party.jpg?dl=0",
                    "albumPath": "Trip/Beach",
                },
            )

        assert response.status_code == 200
        assert str(server.requests[0].url) == "https://www.dropbox.com/s/abc/party.jpg?dl=1"

    def test_non_image_is_bad_request(
        self, settings: Settings, fake_flickr: FakeFlickrClient
    ) -> None:
        """Test that a non-image URL fails before any upload."""
        with make_client(settings, fake_flickr, ImageServer("text/html")) as client:
            response = client.post("/upload", json={"imageUrl": BEACH_URL, "albumPath": "Trip"})

        assert response.status_code == 400
        assert response.json()["type"] == "InvalidContentType"
        assert fake_flickr.uploads == []

    def test_auth_failure_is_unauthorized(
        self, settings: Settings, fake_flickr: FakeFlickrClient
    ) -> None:
        """Test that Flickr auth failures map to 401."""
        fake_flickr.upload_errors = [auth_error()]

        with make_client(settings, fake_flickr) as client:
            response = client.post("/upload", json={"imageUrl": BEACH_URL, "albumPath": "Trip"})

        assert response.status_code == 401
        assert response.json()["type"] == "TerminalAuthError"

    def test_rate_limit_is_too_many_requests(
        self, settings: Settings, fake_flickr: FakeFlickrClient
    ) -> None:
        """Test that an exhausted quota maps to 429."""
        limited = dataclasses.replace(settings, rate_limit=1)

        with make_client(limited, fake_flickr) as client:
            response = client.post("/upload", json={"imageUrl": BEACH_URL, "albumPath": "Trip"})
            health = client.get("/health")

        assert response.status_code == 429
        assert health.json()["rateLimit"]["remaining"] == 0
