"""
Shared MCP server instance and the tool execution engine.

Tools never talk to Bitbucket directly. Each one hands ``run_tool`` (or
``run_action`` / ``run_text``) a coroutine factory taking a
``BitbucketClient``; the engine resolves the caller's credentials, builds a
fresh client, awaits the call and renders the result. Every exception is
turned into an error envelope here, so nothing reaches the transport.
"""
import os
import logging
from typing import Optional, Any, Awaitable, Callable, Dict, Mapping, Annotated

from mcp.server.fastmcp import FastMCP, Context
from mcp.types import CallToolResult
from pydantic import Field

from servers.bitbucket_gateway.client import BitbucketClient
from servers.bitbucket_gateway.config import (
    SERVER_NAME,
    DEFAULT_PAGE_SIZE,
    HOST,
    PORT,
    USERNAME_HEADER,
    APP_PASSWORD_HEADER,
    ACCESS_TOKEN_HEADER,
    BASE_URL_HEADER,
    USERNAME_ENV,
    APP_PASSWORD_ENV,
    ACCESS_TOKEN_ENV,
    BASE_URL_ENV,
)
from servers.bitbucket_gateway.errors import classify
from servers.bitbucket_gateway.formatters import format_response, format_success, format_text
from servers.bitbucket_gateway.models import Credentials, OutputMode, PaginationParams

logger = logging.getLogger("bitbucket-gateway-mcp")

# Create the Bitbucket MCP server
mcp = FastMCP(
    SERVER_NAME,
    instructions=(
        "Bitbucket Cloud tools. Authenticate each request with X-Bitbucket-Username + "
        "X-Bitbucket-App-Password headers or an X-Bitbucket-Access-Token header."
    ),
    host=HOST,
    port=PORT,
    stateless_http=True,
    json_response=True,
)

# Shared argument types
PageSize = Annotated[int, Field(ge=1, le=100, description="Number of items per page (1-100)")]
Page = Annotated[Optional[int], Field(ge=1, description="Page number (1-based)")]
Query = Annotated[Optional[str], Field(description="Bitbucket query language filter, e.g. state=\"OPEN\"")]
Sort = Annotated[Optional[str], Field(description="Sort field, prefix with '-' for descending (e.g. -updated_on)")]
Mode = Annotated[OutputMode, Field(description="'structured' for JSON, 'tabular' for a markdown summary")]

ClientCall = Callable[[BitbucketClient], Awaitable[Any]]


def page_params(
    page_size: int = DEFAULT_PAGE_SIZE,
    page: Optional[int] = None,
    query: Optional[str] = None,
    sort: Optional[str] = None
) -> PaginationParams:
    return PaginationParams(page_size=page_size, page=page, query=query, sort=sort)


def get_request_headers(ctx: Context) -> Dict[str, str]:
    """Lower-cased headers of the inbound HTTP request, or {} under stdio."""
    try:
        request = ctx.request_context.request
    except (AttributeError, ValueError):
        return {}

    headers = getattr(request, "headers", None)
    if not isinstance(headers, Mapping):
        return {}
    return {str(key).lower(): value for key, value in headers.items()}


def has_credential_headers(headers: Mapping[str, str]) -> bool:
    return any(
        headers.get(name.lower())
        for name in (USERNAME_HEADER, APP_PASSWORD_HEADER, ACCESS_TOKEN_HEADER)
    )


def credentials_from_env() -> Credentials:
    return Credentials(
        username=os.environ.get(USERNAME_ENV) or None,
        app_password=os.environ.get(APP_PASSWORD_ENV) or None,
        access_token=os.environ.get(ACCESS_TOKEN_ENV) or None,
        base_url=os.environ.get(BASE_URL_ENV) or None,
    )


def resolve_credentials(ctx: Context) -> Credentials:
    """
    Work out whose credentials a tool call runs with.

    Header credentials always win. Environment credentials are only used when
    the request carries none of the credential headers (stdio, single tenant),
    and then the environment is taken as a whole: a base URL header never
    redirects the server's own account to another host.
    """
    headers = get_request_headers(ctx)

    if has_credential_headers(headers):
        logger.debug("Using credentials from request headers")
        return Credentials(
            username=headers.get(USERNAME_HEADER.lower()) or None,
            app_password=headers.get(APP_PASSWORD_HEADER.lower()) or None,
            access_token=headers.get(ACCESS_TOKEN_HEADER.lower()) or None,
            base_url=headers.get(BASE_URL_HEADER.lower()) or None,
        )

    if headers.get(BASE_URL_HEADER.lower()):
        logger.warning(f"Ignoring {BASE_URL_HEADER} header on a request without credential headers")
    logger.debug("Using credentials from environment")
    return credentials_from_env()


async def _invoke(
    ctx: Context,
    call: ClientCall,
    render: Callable[[Any], CallToolResult]
) -> CallToolResult:
    secrets = []
    try:
        credentials = resolve_credentials(ctx)
        secrets = credentials.secrets()
        client = BitbucketClient(credentials)
        data = await call(client)
        return render(data)
    except Exception as error:
        return classify(error, secrets)


async def run_tool(
    ctx: Context,
    call: ClientCall,
    entity_kind: str = "",
    output_mode: str = "structured"
) -> CallToolResult:
    """Read operations: render the result in the requested output mode."""
    return await _invoke(ctx, call, lambda data: format_response(data, output_mode, entity_kind))


async def run_action(
    ctx: Context,
    call: ClientCall,
    message: str,
    key: Optional[str] = None
) -> CallToolResult:
    """Mutations: wrap the result in a success envelope."""
    return await _invoke(ctx, call, lambda data: format_success(message, data, key))


async def run_text(ctx: Context, call: ClientCall) -> CallToolResult:
    """Raw text endpoints such as diffs, step logs and file contents."""
    return await _invoke(ctx, call, format_text)
