"""
Bitbucket Cloud MCP gateway.

Run over stdio (single tenant, credentials from the environment) or as a
streamable-HTTP service where every request carries its own Bitbucket
credentials in X-Bitbucket-* headers.
"""
import logging
from typing import Dict, Any

import uvicorn
from starlette.requests import Request
from starlette.responses import JSONResponse

from servers.bitbucket_gateway.config import (
    SERVER_NAME,
    SERVER_VERSION,
    MCP_TRANSPORT,
    HOST,
    PORT,
    USERNAME_HEADER,
    APP_PASSWORD_HEADER,
    ACCESS_TOKEN_HEADER,
    BASE_URL_HEADER,
    configure_logging,
    configure_locale,
)
from servers.bitbucket_gateway.server import mcp, has_credential_headers, credentials_from_env

# Registers every tool on the shared server
from servers.bitbucket_gateway.tools import (  # noqa: F401
    workspaces,
    repositories,
    refs,
    commits,
    pullrequests,
    issues,
    pipelines,
    deployments,
    webhooks,
    restrictions,
    downloads,
)

logger = logging.getLogger("bitbucket-gateway-mcp")

REQUIRED_HEADERS = [
    f"{USERNAME_HEADER} + {APP_PASSWORD_HEADER}",
    f"or {ACCESS_TOKEN_HEADER}",
]


# === HTTP ROUTES ===

@mcp.custom_route("/health", methods=["GET"])
async def health_check(request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok", "server": SERVER_NAME})


@mcp.custom_route("/", methods=["GET"])
async def server_info(request: Request) -> JSONResponse:
    """Describe the server, how to authenticate and which tools it offers."""
    tools = await mcp.list_tools()
    return JSONResponse({
        "name": SERVER_NAME,
        "version": SERVER_VERSION,
        "description": "Multi-tenant Bitbucket MCP Server",
        "endpoints": {
            "mcp": f"{mcp.settings.streamable_http_path} (POST) - Streamable HTTP MCP endpoint",
            "health": "/health - Health check",
        },
        "authentication": {
            "description": "Pass tenant credentials via request headers",
            "methods": {
                "basic_auth": {
                    "headers": {
                        USERNAME_HEADER: "Your Bitbucket username",
                        APP_PASSWORD_HEADER: "Your Bitbucket App Password",
                    },
                },
                "oauth2": {
                    "headers": {ACCESS_TOKEN_HEADER: "OAuth2 access token"},
                },
            },
            "optional_headers": {
                BASE_URL_HEADER: "Override the default Bitbucket API base URL",
            },
        },
        "tool_count": len(tools),
        "tools": sorted(tool.name for tool in tools),
    })


# === CREDENTIAL GUARD ===

class CredentialGuard:
    """
    ASGI middleware rejecting MCP calls that carry no Bitbucket credentials.

    A POST to the MCP endpoint passes when it has at least one credential
    header, or when the server itself was started with credentials in the
    environment. Everything else (health, info, lifespan) goes straight through.
    """

    def __init__(self, app, mcp_path: str):
        self.app = app
        self.mcp_path = mcp_path.rstrip("/") or "/"

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http" and scope["method"] == "POST" and self._is_mcp_path(scope["path"]):
            headers = {
                name.decode("latin-1").lower(): value.decode("latin-1")
                for name, value in scope.get("headers", [])
            }
            if not has_credential_headers(headers) and credentials_from_env().auth_mode is None:
                logger.warning("Rejected MCP request without credentials")
                response = JSONResponse(unauthorized_body(), status_code=401)
                await response(scope, receive, send)
                return
        await self.app(scope, receive, send)

    def _is_mcp_path(self, path: str) -> bool:
        return (path.rstrip("/") or "/") == self.mcp_path


def unauthorized_body() -> Dict[str, Any]:
    return {
        "error": "Unauthorized",
        "message": "Missing Bitbucket credentials",
        "required_headers": REQUIRED_HEADERS,
    }


def create_app():
    """Streamable-HTTP ASGI app with the credential guard in front of /mcp."""
    return CredentialGuard(mcp.streamable_http_app(), mcp.settings.streamable_http_path)


def main():
    configure_logging()
    configure_locale()

    if MCP_TRANSPORT == "streamable-http":
        logger.info(f"Starting {SERVER_NAME} {SERVER_VERSION} on {HOST}:{PORT}")
        uvicorn.run(create_app(), host=HOST, port=PORT, log_level="info")
    else:
        logger.info(f"Starting {SERVER_NAME} {SERVER_VERSION} over stdio")
        mcp.run()


# Run the server using stdio transport when executed directly
if __name__ == "__main__":
    main()
