"""HTTP route handlers for the S3 surface."""

import functools
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from starfish_gateway.exceptions import (
    BucketNotFoundError,
    NotImplementedOperationError,
    ObjectNotFoundError,
    UpstreamError,
)
from starfish_gateway.observability import RequestContext, get_logger
from starfish_gateway.server.responses import (
    build_list_buckets_xml,
    build_list_objects_v2_xml,
    build_list_objects_xml,
    error_response,
    object_headers,
    xml_response,
)
from starfish_gateway.utils.validation import parse_max_keys

if TYPE_CHECKING:
    from starfish_gateway.gateway import StarfishGateway

logger = get_logger(__name__)

READ_METHODS = ["GET", "HEAD"]
WRITE_METHODS = ["PUT", "POST", "DELETE"]

# Upstream error code -> S3 error code
UPSTREAM_ERROR_CODES = {
    "COLLECTION_NOT_FOUND": "NoSuchBucket",
    "AUTHENTICATION_FAILED": "AccessDenied",
}


def s3_error_code(error: Exception) -> str:
    """S3 error code for an exception raised while serving a request."""
    if isinstance(error, BucketNotFoundError):
        return "NoSuchBucket"
    if isinstance(error, ObjectNotFoundError):
        return "NoSuchKey"
    if isinstance(error, NotImplementedOperationError):
        return "NotImplemented"
    if isinstance(error, UpstreamError):
        return UPSTREAM_ERROR_CODES.get(error.code, "InternalError")
    return "InternalError"


def request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def s3_errors(
    handler: Callable[[Request], Awaitable[Response]],
) -> Callable[[Request], Awaitable[Response]]:
    """Decorator rendering exceptions as S3 error XML."""

    @functools.wraps(handler)
    async def wrapper(request: Request) -> Response:
        try:
            return await handler(request)
        except Exception as e:
            code = s3_error_code(e)
            if code == "InternalError":
                logger.error("Request failed", context={"path": request.url.path}, error=e)
                message = "We encountered an internal error. Please try again."
            else:
                message = str(e)
            return error_response(
                code,
                message,
                resource=request.url.path,
                request_id=request_id(request) or "",
            )

    return wrapper


def create_routes(gateway: "StarfishGateway") -> list[Route]:
    """Create HTTP routes for the gateway.

    Args:
        gateway: The configured StarfishGateway instance

    Returns:
        List of Starlette routes
    """

    async def health(request: Request) -> Response:
        """Health check endpoint."""
        return JSONResponse(
            {
                "status": "ok",
                "timestamp": time.time(),
            }
        )

    async def cache_stats(request: Request) -> Response:
        """Cache statistics."""
        stats = await gateway.cache_stats()
        return JSONResponse(stats.to_dict())

    @s3_errors
    async def list_buckets(request: Request) -> Response:
        """ListBuckets - GET /"""
        async with RequestContext(request_id(request), operation="ListBuckets"):
            buckets = await gateway.list_buckets()
        return xml_response(build_list_buckets_xml(buckets))

    async def list_objects(request: Request, bucket: str) -> Response:
        params = request.query_params
        try:
            max_keys = parse_max_keys(params.get("max-keys"), gateway.config.listing.default_max_keys)
        except ValueError as e:
            return error_response("InvalidArgument", str(e), request.url.path, request_id(request) or "")

        if params.get("list-type") == "2":
            continuation_token = params.get("continuation-token", "")
            async with RequestContext(request_id(request), bucket, "ListObjectsV2"):
                listing = await gateway.list_objects_v2(
                    bucket,
                    prefix=params.get("prefix", ""),
                    delimiter=params.get("delimiter", ""),
                    start_after=params.get("start-after", ""),
                    continuation_token=continuation_token,
                    max_keys=max_keys,
                )
            return xml_response(build_list_objects_v2_xml(listing, continuation_token))

        marker = params.get("marker", "")
        async with RequestContext(request_id(request), bucket, "ListObjects"):
            listing = await gateway.list_objects(
                bucket,
                prefix=params.get("prefix", ""),
                delimiter=params.get("delimiter", ""),
                marker=marker,
                max_keys=max_keys,
            )
        return xml_response(build_list_objects_xml(listing, marker))

    async def bucket_request(request: Request, bucket: str) -> Response:
        if request.method == "HEAD":
            async with RequestContext(request_id(request), bucket, "HeadBucket"):
                await gateway.head_bucket(bucket)
            return Response(status_code=200)

        return await list_objects(request, bucket)

    @s3_errors
    async def bucket_endpoint(request: Request) -> Response:
        """HeadBucket, ListObjects and ListObjectsV2 - /{bucket}"""
        if request.method in WRITE_METHODS:
            raise NotImplementedOperationError(f"{request.method} is not supported by this read-only gateway")
        return await bucket_request(request, request.path_params["bucket"])

    @s3_errors
    async def object_endpoint(request: Request) -> Response:
        """HeadObject and GetObject - /{bucket}/{key}"""
        bucket = request.path_params["bucket"]
        key = request.path_params["key"]
        if request.method in WRITE_METHODS:
            raise NotImplementedOperationError(f"{request.method} is not supported by this read-only gateway")

        # "/{bucket}/" addresses the bucket itself
        if not key:
            return await bucket_request(request, bucket)

        if request.method == "HEAD":
            async with RequestContext(request_id(request), bucket, "HeadObject"):
                info = await gateway.head_object(bucket, key)
            return Response(status_code=200, headers=object_headers(info))

        async with RequestContext(request_id(request), bucket, "GetObject"):
            content = await gateway.get_object(bucket, key)
        headers = object_headers(content.info)
        headers["Content-Length"] = str(len(content.body))
        return Response(
            content=content.body,
            media_type="application/octet-stream",
            headers=headers,
        )

    return [
        # Health checks
        Route("/health", health, methods=["GET"]),
        Route("/ping", health, methods=["GET"]),  # Alias
        # Gateway introspection
        Route("/_gateway/cache", cache_stats, methods=["GET"]),
        # S3 service
        Route("/", list_buckets, methods=["GET"]),
        # S3 buckets and objects
        Route("/{bucket}", bucket_endpoint, methods=READ_METHODS + WRITE_METHODS),
        Route("/{bucket}/{key:path}", object_endpoint, methods=READ_METHODS + WRITE_METHODS),
    ]
