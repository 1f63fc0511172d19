"""HTTP client for the Starfish metadata API and file server."""

from typing import Any
from urllib.parse import quote

import httpx

from starfish_gateway.config import StarfishConfig
from starfish_gateway.exceptions import ObjectNotFoundError, UpstreamError
from starfish_gateway.models import Entry, QueryResult
from starfish_gateway.observability import Timer, get_logger

logger = get_logger(__name__)

QUERY_FORMAT = "parent_path fn type size ct mt at uid gid mode volume tags_explicit tags_inherited"
QUERY_SORT = "parent_path,fn"

# HTTP status -> error code
STATUS_CODES = {
    401: "AUTHENTICATION_FAILED",
    404: "COLLECTION_NOT_FOUND",
    429: "RATE_LIMITED",
}


def error_code_for_status(status_code: int) -> str:
    return STATUS_CODES.get(status_code, "API_ERROR")


class StarfishClient:
    """Async client for the Starfish REST API.

    Example:
        async with StarfishClient("https://sf.example.com/api", token) as client:
            result = await client.query("Collections:Archive", "type=f")
    """

    def __init__(
        self,
        endpoint: str,
        token: str,
        file_server_url: str | None = None,
        timeout: float = 30.0,
        query_limit: int = 1000,
        verify_tls: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize client.

        Args:
            endpoint: Starfish API base URL
            token: Bearer token, also sent to the file server
            file_server_url: File server base URL; None disables file reads
            timeout: Request timeout in seconds
            query_limit: Maximum entries requested per query
            verify_tls: Verify server certificates
            transport: Optional httpx transport (used by tests)
        """
        self.endpoint = endpoint.rstrip("/")
        self.token = token
        self.file_server_url = file_server_url.rstrip("/") if file_server_url else None
        self.query_limit = query_limit
        self._http = httpx.AsyncClient(timeout=timeout, verify=verify_tls, transport=transport)

    @classmethod
    def from_config(
        cls,
        config: StarfishConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "StarfishClient":
        return cls(
            endpoint=config.endpoint,
            token=config.token,
            file_server_url=config.file_server_url,
            timeout=config.timeout_seconds,
            query_limit=config.query_limit,
            verify_tls=config.verify_tls,
            transport=transport,
        )

    @property
    def serves_files(self) -> bool:
        return self.file_server_url is not None

    def _auth_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
        }

    async def _get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        try:
            response = await self._http.get(url, params=params, headers=self._auth_headers())
        except httpx.HTTPError as e:
            raise UpstreamError("API_UNAVAILABLE", f"Starfish API is unavailable: {e}") from e

        if response.status_code != 200:
            raise UpstreamError(
                error_code_for_status(response.status_code),
                f"API request failed with status {response.status_code}: {response.text}",
            )

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError("RESPONSE_DECODE_FAILED", f"Failed to decode API response: {e}") from e

    async def query(self, collection_tag: str, additional_query: str = "") -> QueryResult:
        """Fetch all entries carrying a collection tag.

        Args:
            collection_tag: Full tag, e.g. "Collections:Archive"
            additional_query: Extra space-separated filters, e.g. "type=f"

        Returns:
            Entries sorted by parent path then filename

        Raises:
            UpstreamError: If the request or response decoding fails
        """
        filters = [f"tag={collection_tag}"]
        if additional_query:
            filters.append(additional_query)
        params = {
            "query": " ".join(filters),
            "format": QUERY_FORMAT,
            "limit": str(self.query_limit),
            "sort_by": QUERY_SORT,
        }

        with Timer() as t:
            data = await self._get_json(f"{self.endpoint}/query/", params=params)

        if not isinstance(data, list):
            raise UpstreamError("RESPONSE_DECODE_FAILED", "Expected a JSON array of entries")
        entries = [Entry.from_api(item) for item in data if isinstance(item, dict)]

        logger.debug(
            "Starfish query complete",
            context={"collection_tag": collection_tag, "entries": len(entries)},
            duration_ms=t.duration_ms,
        )
        return QueryResult(entries=entries, total=len(entries))

    async def list_collections(self, tagset: str = "Collections") -> list[str]:
        """List tag names in a tagset.

        Raises:
            UpstreamError: If the request or response decoding fails
        """
        data = await self._get_json(f"{self.endpoint}/tagsets/{quote(tagset)}:/tags")
        if not isinstance(data, list):
            raise UpstreamError("RESPONSE_DECODE_FAILED", "Expected a JSON array of tag names")

        names = []
        for item in data:
            # Newer API versions return tag objects instead of bare names
            if isinstance(item, dict):
                item = item.get("name")
            if isinstance(item, str) and item:
                names.append(item)
        return names

    async def fetch_file(self, volume: str, path: str) -> bytes:
        """Read file content through the file server.

        Raises:
            UpstreamError: If no file server is configured or the read fails
            ObjectNotFoundError: If the file server has no such file
        """
        if self.file_server_url is None:
            raise UpstreamError("FILE_SERVER_DISABLED", "No file server configured")

        url = f"{self.file_server_url}/{quote(volume)}/{quote(path.lstrip('/'))}"
        try:
            response = await self._http.get(url, headers={"X-Internal-Token": self.token})
        except httpx.HTTPError as e:
            raise UpstreamError("API_UNAVAILABLE", f"File server is unavailable: {e}") from e

        if response.status_code == 404:
            raise ObjectNotFoundError(volume, path)
        if response.status_code != 200:
            raise UpstreamError(
                error_code_for_status(response.status_code),
                f"File server returned status {response.status_code}",
            )
        return response.content

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "StarfishClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
