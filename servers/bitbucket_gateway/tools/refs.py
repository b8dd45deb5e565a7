from typing import Optional

from mcp.server.fastmcp import Context
from mcp.types import CallToolResult

from servers.bitbucket_gateway.config import DEFAULT_PAGE_SIZE
from servers.bitbucket_gateway.server import (
    mcp, run_tool, run_action, page_params, PageSize, Page, Query, Sort, Mode
)

# === BRANCH TOOLS ===

@mcp.tool(name="bitbucket_list_branches")
async def list_branches(
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
    List branches in a repository.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        page_size: Number of items per page (1-100, default 20)
        page: Page number (1-based)
        query: Query filter, e.g. name ~ "feature/"
        sort: Sort field, e.g. -target.date
        output_mode: 'structured' (JSON) or 'tabular' (markdown)

    Returns:
        Branches with their target commit.
    """
    return await run_tool(
        ctx,
        lambda client: client.list_branches(workspace, repo_slug, page_params(page_size, page, query, sort)),
        "branches",
        output_mode
    )

@mcp.tool(name="bitbucket_get_branch")
async def get_branch(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    branch_name: str,
    output_mode: Mode = "structured"
) -> CallToolResult:
    """
    Get a single branch.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        branch_name: The branch name
        output_mode: 'structured' (JSON) or 'tabular' (markdown)
    """
    return await run_tool(ctx, lambda client: client.get_branch(workspace, repo_slug, branch_name), "branch", output_mode)

@mcp.tool(name="bitbucket_create_branch")
async def create_branch(ctx: Context, workspace: str, repo_slug: str, name: str, target: str) -> CallToolResult:
    """
    Create a new branch in a repository.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        name: The name of the new branch
        target: The commit hash the branch should point at

    Returns:
        The created branch.
    """
    return await run_action(
        ctx, lambda client: client.create_branch(workspace, repo_slug, name, target), "Branch created", "branch"
    )

@mcp.tool(name="bitbucket_delete_branch")
async def delete_branch(ctx: Context, workspace: str, repo_slug: str, branch_name: str) -> CallToolResult:
    """
    Delete a branch.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        branch_name: The branch to delete
    """
    return await run_action(
        ctx, lambda client: client.delete_branch(workspace, repo_slug, branch_name), f"Branch {branch_name} deleted"
    )

# === TAG TOOLS ===

@mcp.tool(name="bitbucket_list_tags")
async def list_tags(
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
    List tags in a repository.

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
        lambda client: client.list_tags(workspace, repo_slug, page_params(page_size, page, query, sort)),
        "tags",
        output_mode
    )

@mcp.tool(name="bitbucket_get_tag")
async def get_tag(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    tag_name: str,
    output_mode: Mode = "structured"
) -> CallToolResult:
    """Get a single tag."""
    return await run_tool(ctx, lambda client: client.get_tag(workspace, repo_slug, tag_name), "tag", output_mode)

@mcp.tool(name="bitbucket_create_tag")
async def create_tag(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    name: str,
    target: str,
    message: Optional[str] = None
) -> CallToolResult:
    """
    Create a new tag in a repository.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        name: The name of the new tag
        target: The commit hash to tag
        message: Optional tag message

    Returns:
        The created tag.
    """
    return await run_action(
        ctx, lambda client: client.create_tag(workspace, repo_slug, name, target, message), "Tag created", "tag"
    )

@mcp.tool(name="bitbucket_delete_tag")
async def delete_tag(ctx: Context, workspace: str, repo_slug: str, tag_name: str) -> CallToolResult:
    """Delete a tag."""
    return await run_action(ctx, lambda client: client.delete_tag(workspace, repo_slug, tag_name), f"Tag {tag_name} deleted")

@mcp.tool(name="bitbucket_get_branching_model")
async def get_branching_model(ctx: Context, workspace: str, repo_slug: str, output_mode: Mode = "structured") -> CallToolResult:
    """
    Get the repository's branching model (development/production branches and branch type prefixes).

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        output_mode: 'structured' (JSON) or 'tabular' (markdown)
    """
    return await run_tool(
        ctx, lambda client: client.get_branching_model(workspace, repo_slug), "branching_model", output_mode
    )
