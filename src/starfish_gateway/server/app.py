"""ASGI application for standalone deployment."""

import contextlib
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

from starlette.applications import Starlette
from starlette.middleware import Middleware

from starfish_gateway.server.middleware import RequestContextMiddleware

if TYPE_CHECKING:
    from starfish_gateway.gateway import StarfishGateway


def create_app(gateway: "StarfishGateway") -> Starlette:
    """Create the ASGI application.

    The gateway is started and shut down with the application lifespan.

    Args:
        gateway: The configured StarfishGateway instance

    Returns:
        Starlette application
    """
    from starfish_gateway.server.routes import create_routes

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        await gateway.start()
        try:
            yield
        finally:
            await gateway.shutdown()

    middleware = [
        Middleware(RequestContextMiddleware),
    ]

    app = Starlette(
        routes=create_routes(gateway),
        middleware=middleware,
        lifespan=lifespan,
    )
    app.state.gateway = gateway
    return app
