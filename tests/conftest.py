"""Pytest configuration and fixtures."""

from typing import Any

import httpx
import pytest

from starfish_gateway.models import Entry
from starfish_gateway.observability import register_metric_callback, unregister_metric_callback
from starfish_gateway.upstream import StarfishClient

API_ENDPOINT = "https://starfish.test/api"
FILE_SERVER = "https://files.test"
TOKEN = "test-token"

# 2024-01-15 11:00:00 UTC
JAN_15_2024 = 1705316400


class FakeStarfish:
    """In-memory Starfish API and file server served through httpx.MockTransport."""

    def __init__(
        self,
        collections: dict[str, list[dict[str, Any]]] | None = None,
        files: dict[str, bytes] | None = None,
    ) -> None:
        self.collections = collections or {}
        self.files = files or {}
        self.requests: list[httpx.Request] = []
        self.fail_with: int | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, text="upstream failure")

        if request.url.host == "files.test":
            content = self.files.get(request.url.path.lstrip("/"))
            if content is None:
                return httpx.Response(404)
            return httpx.Response(200, content=content)

        path = request.url.path
        if path == "/api/tagsets/Collections:/tags":
            return httpx.Response(200, json=sorted(self.collections))
        if path == "/api/query/":
            tag = request.url.params["query"].split()[0].removeprefix("tag=")
            name = tag.removeprefix("Collections:")
            if name not in self.collections:
                return httpx.Response(404, text="no such tag")
            return httpx.Response(200, json=self.collections[name])
        return httpx.Response(404)

    @property
    def query_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == "/api/query/"]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def api_entry(parent_path: str, fn: str, size: int = 100, mt: int = JAN_15_2024, **extra: Any) -> dict[str, Any]:
    """One row as returned by the Starfish query endpoint."""
    row = {
        "parent_path": parent_path,
        "fn": fn,
        "type": 32768,
        "size": size,
        "mt": mt,
        "ct": mt,
        "at": mt,
        "uid": 1000,
        "gid": 1000,
        "mode": "0644",
        "volume": "vol1",
    }
    row.update(extra)
    return row


@pytest.fixture
def archive_rows() -> list[dict[str, Any]]:
    """Entries of the Archive collection, sorted by parent path then filename."""
    return [
        api_entry("projects/a", "notes.txt", size=10),
        api_entry("projects/a", "report.pdf", size=1048576, tags_explicit="project-a,important"),
        api_entry("projects/b", "data.csv", size=2048),
        api_entry("", "readme.md", size=5),
    ]


@pytest.fixture
def fake_starfish(archive_rows) -> FakeStarfish:
    return FakeStarfish(
        collections={"Archive": archive_rows, "Empty": []},
        files={
            "vol1/projects/a/report.pdf": b"%PDF-1.7 report",
            "vol1/projects/a/notes.txt": b"hello notes",
        },
    )


@pytest.fixture
def starfish_client(fake_starfish: FakeStarfish) -> StarfishClient:
    return StarfishClient(
        API_ENDPOINT,
        TOKEN,
        file_server_url=FILE_SERVER,
        transport=fake_starfish.transport(),
    )


@pytest.fixture
def sample_config_dict() -> dict[str, Any]:
    """Sample configuration dictionary for testing."""
    return {
        "starfish": {
            "endpoint": API_ENDPOINT,
            "token": TOKEN,
            "file_server_url": FILE_SERVER,
        },
        "cache": {"ttl_seconds": 60},
        "collections": {"refresh_interval_seconds": 600},
        "logging": {"level": "debug", "format": "text"},
    }


@pytest.fixture
def sample_entry() -> Entry:
    return Entry(
        filename="document.pdf",
        parent_path="projects/a",
        size=1048576,
        modify_time_unix=JAN_15_2024,
        create_time_unix=JAN_15_2024,
        volume="vol1",
        uid=1000,
        gid=100,
        inode=42,
        tags_explicit_str="project-a,important",
        tags_inherited_str="important,archive",
    )


@pytest.fixture
def metrics():
    """Collect emitted metrics as (name, value, labels) tuples."""
    received: list[tuple[str, float, dict[str, Any]]] = []

    def callback(name: str, value: float, labels: dict[str, Any]) -> None:
        received.append((name, value, dict(labels)))

    register_metric_callback(callback)
    yield received
    unregister_metric_callback(callback)
