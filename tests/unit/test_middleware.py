"""Tests for CORS, security headers, and request logging middleware."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from yard_reports.api.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware, setup_cors
from yard_reports.core.config import Settings


def _create_test_app() -> FastAPI:
    """Create a minimal FastAPI app for middleware testing."""
    app = FastAPI()

    @app.get("/test")
    async def test_route() -> dict:
        return {"ok": True}

    return app


class TestSecurityHeadersMiddleware:
    """Tests for SecurityHeadersMiddleware."""

    @pytest.fixture
    def client(self) -> TestClient:
        app = _create_test_app()
        app.add_middleware(SecurityHeadersMiddleware)
        return TestClient(app)

    def test_x_content_type_options(self, client: TestClient) -> None:
        response = client.get("/test")
        assert response.headers["X-Content-Type-Options"] == "nosniff"

    def test_x_frame_options(self, client: TestClient) -> None:
        response = client.get("/test")
        assert response.headers["X-Frame-Options"] == "DENY"

    def test_responses_not_cached(self, client: TestClient) -> None:
        response = client.get("/test")
        assert response.headers["Cache-Control"] == "no-store"


class TestRequestLoggingMiddleware:
    """Tests for RequestLoggingMiddleware."""

    def test_passes_response_through(self) -> None:
        app = _create_test_app()
        app.add_middleware(RequestLoggingMiddleware)
        response = TestClient(app).get("/test")
        assert response.status_code == 200
        assert response.json() == {"ok": True}


class TestSetupCors:
    """Tests for setup_cors."""

    def test_allowed_origin(self, settings: Settings) -> None:
        settings = settings.model_copy(update={"cors_origins": "https://portal.example.com"})
        app = _create_test_app()
        setup_cors(app, settings)
        response = TestClient(app).get("/test", headers={"Origin": "https://portal.example.com"})
        assert response.headers["access-control-allow-origin"] == "https://portal.example.com"

    def test_unlisted_origin(self, settings: Settings) -> None:
        settings = settings.model_copy(update={"cors_origins": "https://portal.example.com"})
        app = _create_test_app()
        setup_cors(app, settings)
        response = TestClient(app).get("/test", headers={"Origin": "https://evil.example.com"})
        assert "access-control-allow-origin" not in response.headers

    def test_origin_regex(self, settings: Settings) -> None:
        settings = settings.model_copy(update={"cors_origin_regex": r"https://.*\.yard\.example\.com"})
        app = _create_test_app()
        setup_cors(app, settings)
        response = TestClient(app).get("/test", headers={"Origin": "https://pr-7.yard.example.com"})
        assert response.headers["access-control-allow-origin"] == "https://pr-7.yard.example.com"
