from typing import Optional, List, Literal

from mcp.server.fastmcp import Context
from mcp.types import CallToolResult

from servers.bitbucket_gateway.config import DEFAULT_PAGE_SIZE
from servers.bitbucket_gateway.models import BranchRestrictionInput, DeployKeyInput
from servers.bitbucket_gateway.server import mcp, run_tool, run_action, page_params, PageSize, Page, Mode

# === BRANCH RESTRICTION TOOLS ===

@mcp.tool(name="bitbucket_list_branch_restrictions")
async def list_branch_restrictions(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    page_size: PageSize = DEFAULT_PAGE_SIZE,
    page: Page = None,
    output_mode: Mode = "structured"
) -> CallToolResult:
    """
    List branch permission rules for a repository.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        page_size: Number of items per page (1-100, default 20)
        page: Page number (1-based)
        output_mode: 'structured' (JSON) or 'tabular' (markdown)
    """
    return await run_tool(
        ctx,
        lambda client: client.list_branch_restrictions(workspace, repo_slug, page_params(page_size, page)),
        "restrictions",
        output_mode
    )

@mcp.tool(name="bitbucket_get_branch_restriction")
async def get_branch_restriction(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    restriction_id: int,
    output_mode: Mode = "structured"
) -> CallToolResult:
    """Get a single branch restriction rule."""
    return await run_tool(
        ctx,
        lambda client: client.get_branch_restriction(workspace, repo_slug, restriction_id),
        "restriction",
        output_mode
    )

@mcp.tool(name="bitbucket_create_branch_restriction")
async def create_branch_restriction(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    kind: str,
    pattern: Optional[str] = None,
    branch_match_kind: Optional[Literal["glob", "branching_model"]] = None,
    branch_type: Optional[str] = None,
    value: Optional[int] = None,
    users: Optional[List[str]] = None,
    groups: Optional[List[str]] = None
) -> CallToolResult:
    """
    Create a branch restriction rule.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        kind: Restriction kind, e.g. push, force, delete, require_approvals_to_merge
        pattern: Branch glob pattern, e.g. main or release/*
        branch_match_kind: glob (default when a pattern is given) or branching_model
        branch_type: Branch type when matching by branching model, e.g. production
        value: Numeric value for count-based kinds such as require_approvals_to_merge
        users: User UUIDs exempt from the rule
        groups: Group slugs exempt from the rule

    Returns:
        The created restriction.
    """
    return await run_action(
        ctx,
        lambda client: client.create_branch_restriction(
            workspace,
            repo_slug,
            BranchRestrictionInput(
                kind=kind,
                pattern=pattern,
                branch_match_kind=branch_match_kind,
                branch_type=branch_type,
                value=value,
                users=users,
                groups=groups
            )
        ),
        "Branch restriction created",
        "restriction"
    )

@mcp.tool(name="bitbucket_update_branch_restriction")
async def update_branch_restriction(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    restriction_id: int,
    kind: Optional[str] = None,
    pattern: Optional[str] = None,
    branch_match_kind: Optional[Literal["glob", "branching_model"]] = None,
    branch_type: Optional[str] = None,
    value: Optional[int] = None,
    users: Optional[List[str]] = None,
    groups: Optional[List[str]] = None
) -> CallToolResult:
    """Update a branch restriction rule. Only the fields given are changed."""
    return await run_action(
        ctx,
        lambda client: client.update_branch_restriction(
            workspace,
            repo_slug,
            restriction_id,
            BranchRestrictionInput(
                kind=kind,
                pattern=pattern,
                branch_match_kind=branch_match_kind,
                branch_type=branch_type,
                value=value,
                users=users,
                groups=groups
            )
        ),
        "Branch restriction updated",
        "restriction"
    )

@mcp.tool(name="bitbucket_delete_branch_restriction")
async def delete_branch_restriction(ctx: Context, workspace: str, repo_slug: str, restriction_id: int) -> CallToolResult:
    """Delete a branch restriction rule."""
    return await run_action(
        ctx,
        lambda client: client.delete_branch_restriction(workspace, repo_slug, restriction_id),
        f"Branch restriction {restriction_id} deleted"
    )

# === DEPLOY KEY TOOLS ===

@mcp.tool(name="bitbucket_list_deploy_keys")
async def list_deploy_keys(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    page_size: PageSize = DEFAULT_PAGE_SIZE,
    page: Page = None,
    output_mode: Mode = "structured"
) -> CallToolResult:
    """List the SSH deploy keys of a repository."""
    return await run_tool(
        ctx,
        lambda client: client.list_deploy_keys(workspace, repo_slug, page_params(page_size, page)),
        "deploy_keys",
        output_mode
    )

@mcp.tool(name="bitbucket_get_deploy_key")
async def get_deploy_key(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    key_id: int,
    output_mode: Mode = "structured"
) -> CallToolResult:
    """Get a single deploy key."""
    return await run_tool(
        ctx, lambda client: client.get_deploy_key(workspace, repo_slug, key_id), "deploy_key", output_mode
    )

@mcp.tool(name="bitbucket_create_deploy_key")
async def create_deploy_key(ctx: Context, workspace: str, repo_slug: str, key: str, label: str) -> CallToolResult:
    """
    Add an SSH deploy key to a repository.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        key: The SSH public key content
        label: A label for the key
    """
    return await run_action(
        ctx,
        lambda client: client.create_deploy_key(workspace, repo_slug, DeployKeyInput(key=key, label=label)),
        "Deploy key added",
        "deploy_key"
    )

@mcp.tool(name="bitbucket_delete_deploy_key")
async def delete_deploy_key(ctx: Context, workspace: str, repo_slug: str, key_id: int) -> CallToolResult:
    """Remove a deploy key from a repository."""
    return await run_action(
        ctx, lambda client: client.delete_deploy_key(workspace, repo_slug, key_id), f"Deploy key {key_id} deleted"
    )
