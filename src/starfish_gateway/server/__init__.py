"""HTTP Server module."""

from starfish_gateway.server.app import create_app
from starfish_gateway.server.middleware import RequestContextMiddleware
from starfish_gateway.server.routes import create_routes, s3_error_code

__all__ = [
    "RequestContextMiddleware",
    "create_app",
    "create_routes",
    "s3_error_code",
]
