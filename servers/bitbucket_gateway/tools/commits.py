from typing import Optional, Literal

from mcp.server.fastmcp import Context
from mcp.types import CallToolResult

from servers.bitbucket_gateway.config import DEFAULT_PAGE_SIZE
from servers.bitbucket_gateway.models import CommitStatusInput
from servers.bitbucket_gateway.server import (
    mcp, run_tool, run_action, run_text, page_params, PageSize, Page, Query, Sort, Mode
)

# === COMMIT AND DIFF TOOLS ===

@mcp.tool(name="bitbucket_list_commits")
async def list_commits(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    revision: Optional[str] = None,
    include: Optional[str] = None,
    exclude: Optional[str] = None,
    page_size: PageSize = DEFAULT_PAGE_SIZE,
    page: Page = None,
    query: Query = None,
    sort: Sort = None,
    output_mode: Mode = "structured"
) -> CallToolResult:
    """
    List commits in a repository, newest first.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        revision: Branch, tag or commit to start from
        include: Only commits reachable from this ref
        exclude: Leave out commits reachable from this ref
        page_size: Number of items per page (1-100, default 20)
        page: Page number (1-based)
        query: Query filter
        sort: Sort field
        output_mode: 'structured' (JSON) or 'tabular' (markdown)

    Returns:
        Commits with hash, message, author and date.
    """
    return await run_tool(
        ctx,
        lambda client: client.list_commits(
            workspace, repo_slug, page_params(page_size, page, query, sort), revision=revision, include=include, exclude=exclude
        ),
        "commits",
        output_mode
    )

@mcp.tool(name="bitbucket_get_commit")
async def get_commit(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    commit_hash: str,
    output_mode: Mode = "structured"
) -> CallToolResult:
    """
    Get detailed information for a single commit.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        commit_hash: The commit hash (full or abbreviated)
        output_mode: 'structured' (JSON) or 'tabular' (markdown)
    """
    return await run_tool(ctx, lambda client: client.get_commit(workspace, repo_slug, commit_hash), "commit", output_mode)

@mcp.tool(name="bitbucket_list_commit_statuses")
async def list_commit_statuses(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    commit_hash: str,
    page_size: PageSize = DEFAULT_PAGE_SIZE,
    page: Page = None,
    output_mode: Mode = "structured"
) -> CallToolResult:
    """
    List build statuses reported for a commit.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        commit_hash: The commit hash
        page_size: Number of items per page (1-100, default 20)
        page: Page number (1-based)
        output_mode: 'structured' (JSON) or 'tabular' (markdown)
    """
    return await run_tool(
        ctx,
        lambda client: client.list_commit_statuses(workspace, repo_slug, commit_hash, page_params(page_size, page)),
        "statuses",
        output_mode
    )

@mcp.tool(name="bitbucket_create_commit_status")
async def create_commit_status(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    commit_hash: str,
    state: Literal["SUCCESSFUL", "FAILED", "INPROGRESS", "STOPPED"],
    key: str,
    url: str,
    name: Optional[str] = None,
    description: Optional[str] = None
) -> CallToolResult:
    """
    Report a build status for a commit.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        commit_hash: The commit hash
        state: SUCCESSFUL, FAILED, INPROGRESS or STOPPED
        key: Unique key for this status (one status per key per commit)
        url: Link to the build
        name: Display name
        description: Status description

    Returns:
        The created commit status.
    """
    return await run_action(
        ctx,
        lambda client: client.create_commit_status(
            workspace,
            repo_slug,
            commit_hash,
            CommitStatusInput(state=state, key=key, url=url, name=name, description=description)
        ),
        "Commit status created",
        "status"
    )

@mcp.tool(name="bitbucket_get_diff")
async def get_diff(ctx: Context, workspace: str, repo_slug: str, spec: str) -> CallToolResult:
    """
    Get the diff for a commit or between two revisions.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        spec: A commit hash, or 'source..destination' to compare two revisions

    Returns:
        Unified diff as text.
    """
    return await run_text(ctx, lambda client: client.get_diff(workspace, repo_slug, spec))
