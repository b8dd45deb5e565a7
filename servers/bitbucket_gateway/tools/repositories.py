from typing import Optional

from mcp.server.fastmcp import Context
from mcp.types import CallToolResult

from servers.bitbucket_gateway.config import DEFAULT_PAGE_SIZE
from servers.bitbucket_gateway.models import RepositoryInput, RepositoryUpdateInput
from servers.bitbucket_gateway.server import (
    mcp, run_tool, run_action, page_params, PageSize, Page, Query, Sort, Mode
)

# === REPOSITORY MANAGEMENT TOOLS ===

@mcp.tool(name="bitbucket_list_repositories")
async def list_repositories(
    ctx: Context,
    workspace: str,
    role: Optional[str] = None,
    page_size: PageSize = DEFAULT_PAGE_SIZE,
    page: Page = None,
    query: Query = None,
    sort: Sort = None,
    output_mode: Mode = "structured"
) -> CallToolResult:
    """
    List repositories in a workspace.

    Args:
        workspace: The workspace slug or UUID
        role: Optional role filter (admin, contributor, member, owner)
        page_size: Number of items per page (1-100, default 20)
        page: Page number (1-based)
        query: Query filter, e.g. name ~ "api"
        sort: Sort field, e.g. -updated_on
        output_mode: 'structured' (JSON) or 'tabular' (markdown)

    Returns:
        Repositories with name, full name, visibility, language and last update.
    """
    return await run_tool(
        ctx,
        lambda client: client.list_repositories(workspace, page_params(page_size, page, query, sort), role=role),
        "repositories",
        output_mode
    )

@mcp.tool(name="bitbucket_get_repository")
async def get_repository(ctx: Context, workspace: str, repo_slug: str, output_mode: Mode = "structured") -> CallToolResult:
    """
    Get details for a specific repository.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        output_mode: 'structured' (JSON) or 'tabular' (markdown)
    """
    return await run_tool(ctx, lambda client: client.get_repository(workspace, repo_slug), "repository", output_mode)

@mcp.tool(name="bitbucket_create_repository")
async def create_repository(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    description: Optional[str] = None,
    is_private: bool = True,
    fork_policy: Optional[str] = None,
    language: Optional[str] = None,
    has_issues: bool = False,
    has_wiki: bool = False,
    project_key: Optional[str] = None,
    mainbranch: Optional[str] = None
) -> CallToolResult:
    """
    Create a new repository in a workspace.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug (name)
        description: Optional repository description
        is_private: Whether the repository is private (default True)
        fork_policy: Fork policy (allow_forks, no_public_forks, no_forks)
        language: Primary language
        has_issues: Enable the issue tracker
        has_wiki: Enable the wiki
        project_key: Optional project key to associate the repository with
        mainbranch: Name of the main branch

    Returns:
        The created repository.
    """
    return await run_action(
        ctx,
        lambda client: client.create_repository(
            workspace,
            repo_slug,
            RepositoryInput(
                description=description,
                is_private=is_private,
                fork_policy=fork_policy,
                language=language,
                has_issues=has_issues,
                has_wiki=has_wiki,
                project_key=project_key,
                mainbranch=mainbranch
            )
        ),
        "Repository created",
        "repository"
    )

@mcp.tool(name="bitbucket_update_repository")
async def update_repository(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    name: Optional[str] = None,
    description: Optional[str] = None,
    is_private: Optional[bool] = None,
    fork_policy: Optional[str] = None,
    language: Optional[str] = None,
    has_issues: Optional[bool] = None,
    has_wiki: Optional[bool] = None,
    project_key: Optional[str] = None,
    mainbranch: Optional[str] = None
) -> CallToolResult:
    """
    Update repository settings. Only the fields given are changed.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        name: New repository name
        description: New description
        is_private: New private status
        fork_policy: New fork policy
        language: New primary language
        has_issues: Enable or disable the issue tracker
        has_wiki: Enable or disable the wiki
        project_key: Move the repository to this project
        mainbranch: New main branch name

    Returns:
        The updated repository.
    """
    return await run_action(
        ctx,
        lambda client: client.update_repository(
            workspace,
            repo_slug,
            RepositoryUpdateInput(
                name=name,
                description=description,
                is_private=is_private,
                fork_policy=fork_policy,
                language=language,
                has_issues=has_issues,
                has_wiki=has_wiki,
                project_key=project_key,
                mainbranch=mainbranch
            )
        ),
        "Repository updated",
        "repository"
    )

@mcp.tool(name="bitbucket_delete_repository")
async def delete_repository(ctx: Context, workspace: str, repo_slug: str) -> CallToolResult:
    """
    Delete a repository. This cannot be undone.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
    """
    return await run_action(
        ctx, lambda client: client.delete_repository(workspace, repo_slug), f"Repository {workspace}/{repo_slug} deleted"
    )

@mcp.tool(name="bitbucket_list_forks")
async def list_forks(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    page_size: PageSize = DEFAULT_PAGE_SIZE,
    page: Page = None,
    output_mode: Mode = "structured"
) -> CallToolResult:
    """
    List forks of a repository.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        page_size: Number of items per page (1-100, default 20)
        page: Page number (1-based)
        output_mode: 'structured' (JSON) or 'tabular' (markdown)
    """
    return await run_tool(
        ctx,
        lambda client: client.list_forks(workspace, repo_slug, page_params(page_size, page)),
        "repositories",
        output_mode
    )

@mcp.tool(name="bitbucket_fork_repository")
async def fork_repository(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    target_workspace: str,
    name: Optional[str] = None
) -> CallToolResult:
    """
    Fork a repository into another workspace.

    Args:
        workspace: Workspace of the source repository
        repo_slug: The source repository slug
        target_workspace: Workspace to create the fork in
        name: Optional name for the fork

    Returns:
        The new fork.
    """
    return await run_action(
        ctx,
        lambda client: client.fork_repository(workspace, repo_slug, target_workspace, name),
        "Repository forked",
        "repository"
    )
