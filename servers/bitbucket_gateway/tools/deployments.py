from mcp.server.fastmcp import Context
from mcp.types import CallToolResult

from servers.bitbucket_gateway.config import DEFAULT_PAGE_SIZE
from servers.bitbucket_gateway.server import mcp, run_tool, page_params, PageSize, Page, Query, Sort, Mode

# === DEPLOYMENT TOOLS ===

@mcp.tool(name="bitbucket_list_deployments")
async def list_deployments(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    page_size: PageSize = DEFAULT_PAGE_SIZE,
    page: Page = None,
    query: Query = None,
    sort: Sort = None,
    output_mode: Mode = "structured"
) -> CallToolResult:
    """
    List deployments for a repository.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        page_size: Number of items per page (1-100, default 20)
        page: Page number (1-based)
        query: Query filter
        sort: Sort field
        output_mode: 'structured' (JSON) or 'tabular' (markdown)
    """
    return await run_tool(
        ctx,
        lambda client: client.list_deployments(workspace, repo_slug, page_params(page_size, page, query, sort)),
        "deployments",
        output_mode
    )

@mcp.tool(name="bitbucket_get_deployment")
async def get_deployment(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    deployment_uuid: str,
    output_mode: Mode = "structured"
) -> CallToolResult:
    """Get a single deployment."""
    return await run_tool(
        ctx, lambda client: client.get_deployment(workspace, repo_slug, deployment_uuid), "deployment", output_mode
    )

# === ENVIRONMENT TOOLS ===

@mcp.tool(name="bitbucket_list_environments")
async def list_environments(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    page_size: PageSize = DEFAULT_PAGE_SIZE,
    page: Page = None,
    output_mode: Mode = "structured"
) -> CallToolResult:
    """
    List deployment environments (test, staging, production, ...) for a repository.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        page_size: Number of items per page (1-100, default 20)
        page: Page number (1-based)
        output_mode: 'structured' (JSON) or 'tabular' (markdown)
    """
    return await run_tool(
        ctx,
        lambda client: client.list_environments(workspace, repo_slug, page_params(page_size, page)),
        "environments",
        output_mode
    )

@mcp.tool(name="bitbucket_get_environment")
async def get_environment(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    environment_uuid: str,
    output_mode: Mode = "structured"
) -> CallToolResult:
    """Get a single deployment environment."""
    return await run_tool(
        ctx, lambda client: client.get_environment(workspace, repo_slug, environment_uuid), "environment", output_mode
    )
