"""Tests for the Starfish HTTP client."""

import httpx
import pytest

from starfish_gateway.config import StarfishConfig
from starfish_gateway.exceptions import ObjectNotFoundError, UpstreamError
from starfish_gateway.upstream import QUERY_FORMAT, QUERY_SORT, StarfishClient, error_code_for_status

from conftest import API_ENDPOINT, FILE_SERVER, TOKEN, FakeStarfish


def client_for(handler, **kwargs) -> StarfishClient:
    return StarfishClient(API_ENDPOINT, TOKEN, transport=httpx.MockTransport(handler), **kwargs)


class TestErrorCodes:
    """Tests for status code mapping."""

    @pytest.mark.parametrize(
        "status,code",
        [
            (401, "AUTHENTICATION_FAILED"),
            (404, "COLLECTION_NOT_FOUND"),
            (429, "RATE_LIMITED"),
            (500, "API_ERROR"),
            (503, "API_ERROR"),
        ],
    )
    def test_mapping(self, status: int, code: str) -> None:
        assert error_code_for_status(status) == code


class TestQuery:
    """Tests for StarfishClient.query."""

    @pytest.mark.asyncio
    async def test_request_shape(self, fake_starfish: FakeStarfish, starfish_client: StarfishClient) -> None:
        await starfish_client.query("Collections:Archive", "type=f")

        request = fake_starfish.query_requests[0]
        assert str(request.url).startswith(f"{API_ENDPOINT}/query/")
        assert request.headers["Authorization"] == f"Bearer {TOKEN}"
        assert request.url.params["query"] == "tag=Collections:Archive type=f"
        assert request.url.params["format"] == QUERY_FORMAT
        assert request.url.params["limit"] == "1000"
        assert request.url.params["sort_by"] == QUERY_SORT
        await starfish_client.close()

    @pytest.mark.asyncio
    async def test_returns_entries(self, starfish_client: StarfishClient) -> None:
        result = await starfish_client.query("Collections:Archive")
        assert result.total == 4
        assert [e.filename for e in result.entries] == ["notes.txt", "report.pdf", "data.csv", "readme.md"]
        assert result.entries[1].tags_explicit == ["project-a", "important"]
        await starfish_client.close()

    @pytest.mark.asyncio
    async def test_query_limit(self, fake_starfish: FakeStarfish) -> None:
        async with StarfishClient(
            API_ENDPOINT, TOKEN, query_limit=25, transport=fake_starfish.transport()
        ) as client:
            await client.query("Collections:Archive")
        assert fake_starfish.query_requests[0].url.params["limit"] == "25"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,code", [(401, "AUTHENTICATION_FAILED"), (500, "API_ERROR")])
    async def test_error_status(self, fake_starfish: FakeStarfish, status: int, code: str) -> None:
        fake_starfish.fail_with = status
        async with StarfishClient(API_ENDPOINT, TOKEN, transport=fake_starfish.transport()) as client:
            with pytest.raises(UpstreamError) as exc_info:
                await client.query("Collections:Archive")
        assert exc_info.value.code == code
        assert str(status) in exc_info.value.message

    @pytest.mark.asyncio
    async def test_unknown_collection(self, starfish_client: StarfishClient) -> None:
        with pytest.raises(UpstreamError) as exc_info:
            await starfish_client.query("Collections:Missing")
        assert exc_info.value.code == "COLLECTION_NOT_FOUND"
        await starfish_client.close()

    @pytest.mark.asyncio
    async def test_invalid_json(self) -> None:
        async with client_for(lambda request: httpx.Response(200, text="<html>")) as client:
            with pytest.raises(UpstreamError) as exc_info:
                await client.query("Collections:Archive")
        assert exc_info.value.code == "RESPONSE_DECODE_FAILED"

    @pytest.mark.asyncio
    async def test_non_array_response(self) -> None:
        async with client_for(lambda request: httpx.Response(200, json={"entries": []})) as client:
            with pytest.raises(UpstreamError) as exc_info:
                await client.query("Collections:Archive")
        assert exc_info.value.code == "RESPONSE_DECODE_FAILED"

    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with client_for(handler) as client:
            with pytest.raises(UpstreamError) as exc_info:
                await client.query("Collections:Archive")
        assert exc_info.value.code == "API_UNAVAILABLE"


class TestListCollections:
    """Tests for StarfishClient.list_collections."""

    @pytest.mark.asyncio
    async def test_lists_tag_names(self, starfish_client: StarfishClient) -> None:
        assert await starfish_client.list_collections() == ["Archive", "Empty"]
        await starfish_client.close()

    @pytest.mark.asyncio
    async def test_accepts_tag_objects(self) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.path)
            return httpx.Response(200, json=[{"name": "Archive"}, {"name": ""}, "Projects", 7])

        async with client_for(handler) as client:
            assert await client.list_collections("Teams") == ["Archive", "Projects"]
        assert seen == ["/api/tagsets/Teams:/tags"]


class TestFetchFile:
    """Tests for StarfishClient.fetch_file."""

    @pytest.mark.asyncio
    async def test_reads_content(self, fake_starfish: FakeStarfish, starfish_client: StarfishClient) -> None:
        content = await starfish_client.fetch_file("vol1", "/projects/a/report.pdf")
        assert content == b"%PDF-1.7 report"

        request = fake_starfish.requests[-1]
        assert str(request.url) == f"{FILE_SERVER}/vol1/projects/a/report.pdf"
        assert request.headers["X-Internal-Token"] == TOKEN
        await starfish_client.close()

    @pytest.mark.asyncio
    async def test_missing_file(self, starfish_client: StarfishClient) -> None:
        with pytest.raises(ObjectNotFoundError):
            await starfish_client.fetch_file("vol1", "projects/a/missing.txt")
        await starfish_client.close()

    @pytest.mark.asyncio
    async def test_file_server_disabled(self, fake_starfish: FakeStarfish) -> None:
        async with StarfishClient(API_ENDPOINT, TOKEN, transport=fake_starfish.transport()) as client:
            assert not client.serves_files
            with pytest.raises(UpstreamError) as exc_info:
                await client.fetch_file("vol1", "projects/a/report.pdf")
        assert exc_info.value.code == "FILE_SERVER_DISABLED"


class TestFromConfig:
    """Tests for StarfishClient.from_config."""

    def test_copies_settings(self) -> None:
        config = StarfishConfig(
            endpoint=f"{API_ENDPOINT}/",
            token=TOKEN,
            file_server_url=f"{FILE_SERVER}/",
            query_limit=50,
        )
        client = StarfishClient.from_config(config)
        assert client.endpoint == API_ENDPOINT
        assert client.file_server_url == FILE_SERVER
        assert client.query_limit == 50
        assert client.serves_files
