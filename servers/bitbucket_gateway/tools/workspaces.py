from typing import Optional

from mcp.server.fastmcp import Context
from mcp.types import CallToolResult

from servers.bitbucket_gateway.config import DEFAULT_PAGE_SIZE
from servers.bitbucket_gateway.server import (
    mcp, run_tool, page_params, PageSize, Page, Query, Sort, Mode
)

# === CONNECTION AND USER TOOLS ===

@mcp.tool(name="bitbucket_test_connection")
async def test_connection(ctx: Context) -> CallToolResult:
    """
    Test the connection to the Bitbucket API with the supplied credentials.

    Returns:
        JSON with "connected" and "message".
    """
    return await run_tool(ctx, lambda client: client.test_connection())

@mcp.tool(name="bitbucket_get_current_user")
async def get_current_user(ctx: Context, output_mode: Mode = "structured") -> CallToolResult:
    """
    Retrieve the authenticated user's profile information.

    Args:
        output_mode: 'structured' (JSON) or 'tabular' (markdown)
    """
    return await run_tool(ctx, lambda client: client.get_current_user(), "user", output_mode)

# === WORKSPACE TOOLS ===

@mcp.tool(name="bitbucket_list_workspaces")
async def list_workspaces(
    ctx: Context,
    role: Optional[str] = None,
    page_size: PageSize = DEFAULT_PAGE_SIZE,
    page: Page = None,
    query: Query = None,
    sort: Sort = None,
    output_mode: Mode = "structured"
) -> CallToolResult:
    """
    List workspaces the authenticated user has access to.

    Args:
        role: Optional filter by role (member, owner, collaborator)
        page_size: Number of items per page (1-100, default 20)
        page: Page number (1-based)
        query: Query filter
        sort: Sort field
        output_mode: 'structured' (JSON) or 'tabular' (markdown)

    Returns:
        Workspaces with slug, name and UUID.
    """
    return await run_tool(
        ctx,
        lambda client: client.list_workspaces(page_params(page_size, page, query, sort), role=role),
        "workspaces",
        output_mode
    )

@mcp.tool(name="bitbucket_get_workspace")
async def get_workspace(ctx: Context, workspace: str, output_mode: Mode = "structured") -> CallToolResult:
    """
    Retrieve details of a specific workspace.

    Args:
        workspace: The workspace slug or UUID
        output_mode: 'structured' (JSON) or 'tabular' (markdown)
    """
    return await run_tool(ctx, lambda client: client.get_workspace(workspace), "workspace", output_mode)

@mcp.tool(name="bitbucket_list_workspace_members")
async def list_workspace_members(
    ctx: Context,
    workspace: str,
    page_size: PageSize = DEFAULT_PAGE_SIZE,
    page: Page = None,
    output_mode: Mode = "structured"
) -> CallToolResult:
    """
    List members of a workspace.

    Args:
        workspace: The workspace slug or UUID
        page_size: Number of items per page (1-100, default 20)
        page: Page number (1-based)
        output_mode: 'structured' (JSON) or 'tabular' (markdown)
    """
    return await run_tool(
        ctx,
        lambda client: client.list_workspace_members(workspace, page_params(page_size, page)),
        "members",
        output_mode
    )
