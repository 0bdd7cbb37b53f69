"""NutriCounter Server - Entry point.

Runs the MCP server and the auth/export routes over HTTP.
Uses Starlette with the MCP HTTP app for maximum compatibility.
"""

import contextlib
import logging
import os

import uvicorn
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route, Mount

from .core.errors import AuthError, auth_error_message
from .core.reports import EXPORT_FILENAME
from .shell.mcp_server import mcp, close_clients, current_user_id, get_auth_client, get_registry
from .shell.auth import validate_api_key_format, hash_api_key


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

PROTECTED_PREFIXES = ("/mcp", "/export.csv", "/auth/logout")
DEFAULT_ORIGINS = "http://localhost:3000,http://localhost:5173"


# ==================== Route Handlers ====================


async def health_check(request: Request) -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse({"status": "healthy", "service": "nutricounter"})


async def register_user(request: Request) -> JSONResponse:
    """Register a new user and return their API key."""
    try:
        body = await request.json()
        email = body.get("email")

        if not email or "@" not in email:
            return JSONResponse({"error": "Valid email is required"}, status_code=400)

        auth_client = get_auth_client()
        api_key, user_id = auth_client.register_user(email)

        return JSONResponse({
            "api_key": api_key,
            "message": "Registration successful! Save your API key - it won't be shown again.",
        })

    except AuthError as e:
        return JSONResponse({"error": auth_error_message(e)}, status_code=409)
    except Exception as e:
        logger.error("Registration failed: %s", str(e))
        return JSONResponse({"error": auth_error_message(e)}, status_code=500)


async def validate_key(request: Request) -> JSONResponse:
    """Validate an API key (the login check)."""
    try:
        body = await request.json()
        api_key = body.get("api_key")

        if not api_key:
            return JSONResponse({"valid": False, "error": "API key required"})

        auth_client = get_auth_client()
        auth_client.authenticate(api_key)
        return JSONResponse({"valid": True})

    except AuthError as e:
        return JSONResponse({"valid": False, "error": auth_error_message(e)})
    except Exception as e:
        logger.error("Validation failed: %s", str(e))
        return JSONResponse({"valid": False, "error": auth_error_message(e)})


async def logout_user(request: Request) -> JSONResponse:
    """End the caller's session and stop their live food log feed."""
    user_id = current_user_id.get()
    if user_id is None:
        return JSONResponse({"error": "Not authenticated"}, status_code=401)

    ended = get_registry().end(user_id)
    return JSONResponse({"logged_out": ended})


async def export_csv(request: Request) -> Response:
    """Download the overview as CSV."""
    user_id = current_user_id.get()
    if user_id is None:
        return JSONResponse({"error": "Not authenticated"}, status_code=401)

    session = await get_registry().get_or_start(user_id)
    return Response(
        session.export_csv(),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"'},
    )


# ==================== Auth Middleware ====================


class AuthMiddleware(BaseHTTPMiddleware):
    """Authenticate requests using API key in Authorization header."""

    async def dispatch(self, request: Request, call_next):
        # Skip auth for public routes
        if not request.url.path.startswith(PROTECTED_PREFIXES):
            return await call_next(request)

        auth_header = request.headers.get("Authorization", "")

        if auth_header.startswith("Bearer "):
            api_key = auth_header.replace("Bearer ", "")

            if validate_api_key_format(api_key):
                user_id = hash_api_key(api_key)
                auth_client = get_auth_client()

                if auth_client.user_exists(user_id):
                    # Set user context for this request
                    current_user_id.set(user_id)
                    logger.debug("Authenticated user: %s", user_id[:8])

        return await call_next(request)


# ==================== Create ASGI App ====================


def with_client_shutdown(inner_lifespan):
    """Wrap a lifespan so sessions and HTTP clients are closed when it exits."""

    @contextlib.asynccontextmanager
    async def lifespan(app):
        async with inner_lifespan(app):
            try:
                yield
            finally:
                await close_clients()

    return lifespan


def create_app() -> Starlette:
    """Create the Starlette application with MCP at root.

    The MCP streamable_http_app() handles /mcp/ internally when mounted at root.
    We use its lifespan context to ensure proper initialization, and close
    our own clients on shutdown.
    """
    mcp_app = mcp.streamable_http_app()

    # Custom routes first, then MCP app at root
    routes = [
        Route("/health", health_check, methods=["GET"]),
        Route("/auth/register", register_user, methods=["POST"]),
        Route("/auth/validate", validate_key, methods=["POST"]),
        Route("/auth/logout", logout_user, methods=["POST"]),
        Route("/export.csv", export_csv, methods=["GET"]),
        Mount("/", app=mcp_app),
    ]

    allowed_origins = os.environ.get("ALLOWED_ORIGINS", DEFAULT_ORIGINS).split(",")

    app = Starlette(
        routes=routes,
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=[o.strip() for o in allowed_origins if o.strip()],
                allow_methods=["GET", "POST", "OPTIONS"],
                allow_headers=["*"],
            ),
            Middleware(AuthMiddleware),
        ],
        lifespan=with_client_shutdown(mcp_app.router.lifespan_context),
    )

    return app


# Create app at module level for uvicorn
app = create_app()


def main() -> None:
    """Run the server."""
    port = int(os.environ.get("PORT", 8080))
    host = os.environ.get("HOST", "0.0.0.0")

    logger.info("Starting NutriCounter server on %s:%d", host, port)

    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
