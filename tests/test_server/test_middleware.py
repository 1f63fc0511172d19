"""Tests for server middleware."""

import pytest
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route
from starlette.testclient import TestClient

from starfish_gateway.observability import bucket_var, request_id_var
from starfish_gateway.server.middleware import (
    REQUEST_ID_HEADER,
    RequestContextMiddleware,
    bucket_from_path,
)


@pytest.fixture
def simple_app() -> Starlette:
    """Create a simple test application."""

    async def handler(request: Request) -> JSONResponse:
        """Simple handler that returns request state and logging context."""
        return JSONResponse({
            "state_request_id": getattr(request.state, "request_id", None),
            "context_request_id": request_id_var.get(),
            "bucket": bucket_var.get(),
        })

    app = Starlette(routes=[Route("/{path:path}", handler)])
    app.add_middleware(RequestContextMiddleware)
    return app


class TestBucketFromPath:
    """Tests for bucket_from_path."""

    @pytest.mark.parametrize(
        "path,bucket",
        [
            ("/", None),
            ("/Archive", "Archive"),
            ("/Archive/projects/a.txt", "Archive"),
            ("/health", None),
            ("/_gateway/cache", None),
        ],
    )
    def test_first_segment(self, path: str, bucket: str | None) -> None:
        assert bucket_from_path(path) == bucket


class TestRequestContextMiddleware:
    """Tests for RequestContextMiddleware."""

    def test_generates_request_id(self, simple_app: Starlette) -> None:
        """A request id is generated when none is sent."""
        client = TestClient(simple_app)

        response = client.get("/Archive")

        assert response.status_code == 200
        request_id = response.headers[REQUEST_ID_HEADER]
        assert len(request_id) == 32
        assert request_id == request_id.upper()
        assert response.json()["state_request_id"] == request_id

    def test_echoes_incoming_request_id(self, simple_app: Starlette) -> None:
        """An incoming request id is reused."""
        client = TestClient(simple_app)

        response = client.get("/Archive", headers={"x-amz-request-id": "ABC123"})

        assert response.headers[REQUEST_ID_HEADER] == "ABC123"
        assert response.json()["context_request_id"] == "ABC123"

    def test_binds_bucket_to_context(self, simple_app: Starlette) -> None:
        """The bucket is part of the logging context."""
        client = TestClient(simple_app)

        assert client.get("/Archive/key.txt").json()["bucket"] == "Archive"
        assert client.get("/health").json()["bucket"] is None

    def test_emits_request_metrics(self, simple_app: Starlette, metrics) -> None:
        """Each request is counted and timed."""
        client = TestClient(simple_app)

        client.get("/Archive")

        names = [name for name, _, _ in metrics]
        assert "gateway_requests" in names
        assert "gateway_request_duration_ms" in names
        labels = next(labels for name, _, labels in metrics if name == "gateway_requests")
        assert labels == {"method": "GET", "status": 200, "bucket": "Archive"}

    def test_custom_header_name(self) -> None:
        """The header name is configurable."""

        async def handler(request: Request) -> JSONResponse:
            return JSONResponse({"ok": True})

        app = Starlette(routes=[Route("/", handler)])
        app.add_middleware(RequestContextMiddleware, header_name="x-request-id")
        client = TestClient(app)

        response = client.get("/", headers={"x-request-id": "custom"})

        assert response.headers["x-request-id"] == "custom"
