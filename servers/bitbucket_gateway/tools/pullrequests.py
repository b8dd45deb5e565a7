from typing import Optional, List, Literal

from mcp.server.fastmcp import Context
from mcp.types import CallToolResult

from servers.bitbucket_gateway.config import DEFAULT_PAGE_SIZE
from servers.bitbucket_gateway.models import PullRequestInput, PullRequestUpdateInput, MergeInput
from servers.bitbucket_gateway.server import (
    mcp, run_tool, run_action, run_text, page_params, PageSize, Page, Query, Sort, Mode
)

PullRequestState = Literal["OPEN", "MERGED", "DECLINED", "SUPERSEDED"]

# === PULL REQUEST TOOLS ===

@mcp.tool(name="bitbucket_list_pull_requests")
async def list_pull_requests(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    state: Optional[PullRequestState] = None,
    page_size: PageSize = DEFAULT_PAGE_SIZE,
    page: Page = None,
    query: Query = None,
    sort: Sort = None,
    output_mode: Mode = "structured"
) -> CallToolResult:
    """
    List pull requests in a repository.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        state: Filter by state (OPEN, MERGED, DECLINED, SUPERSEDED)
        page_size: Number of items per page (1-100, default 20)
        page: Page number (1-based)
        query: Query filter, e.g. author.nickname = "jane"
        sort: Sort field, e.g. -updated_on
        output_mode: 'structured' (JSON) or 'tabular' (markdown)

    Returns:
        Pull requests with ID, title, state, author and branches.
    """
    return await run_tool(
        ctx,
        lambda client: client.list_pull_requests(
            workspace, repo_slug, page_params(page_size, page, query, sort), state=state
        ),
        "pullrequests",
        output_mode
    )

@mcp.tool(name="bitbucket_get_pull_request")
async def get_pull_request(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    pr_id: int,
    output_mode: Mode = "structured"
) -> CallToolResult:
    """
    Get details for a specific pull request.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        pr_id: The pull request ID
        output_mode: 'structured' (JSON) or 'tabular' (markdown)
    """
    return await run_tool(
        ctx, lambda client: client.get_pull_request(workspace, repo_slug, pr_id), "pullrequest", output_mode
    )

@mcp.tool(name="bitbucket_create_pull_request")
async def create_pull_request(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    title: str,
    source_branch: str,
    destination_branch: Optional[str] = None,
    description: Optional[str] = None,
    close_source_branch: bool = False,
    reviewers: Optional[List[str]] = None
) -> CallToolResult:
    """
    Create a new pull request.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        title: Pull request title
        source_branch: Branch containing the changes
        destination_branch: Branch to merge into (defaults to the repository's main branch)
        description: Pull request description (markdown)
        close_source_branch: Delete the source branch after merge
        reviewers: Reviewer account UUIDs

    Returns:
        The created pull request.
    """
    return await run_action(
        ctx,
        lambda client: client.create_pull_request(
            workspace,
            repo_slug,
            PullRequestInput(
                title=title,
                source_branch=source_branch,
                destination_branch=destination_branch,
                description=description,
                close_source_branch=close_source_branch,
                reviewers=reviewers
            )
        ),
        "Pull request created",
        "pull_request"
    )

@mcp.tool(name="bitbucket_update_pull_request")
async def update_pull_request(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    pr_id: int,
    title: Optional[str] = None,
    description: Optional[str] = None,
    destination_branch: Optional[str] = None,
    reviewers: Optional[List[str]] = None
) -> CallToolResult:
    """
    Update a pull request. Only the fields given are changed.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        pr_id: The pull request ID
        title: New title
        description: New description
        destination_branch: New destination branch
        reviewers: Replacement list of reviewer account UUIDs
    """
    return await run_action(
        ctx,
        lambda client: client.update_pull_request(
            workspace,
            repo_slug,
            pr_id,
            PullRequestUpdateInput(
                title=title,
                description=description,
                destination_branch=destination_branch,
                reviewers=reviewers
            )
        ),
        "Pull request updated",
        "pull_request"
    )

@mcp.tool(name="bitbucket_approve_pull_request")
async def approve_pull_request(ctx: Context, workspace: str, repo_slug: str, pr_id: int) -> CallToolResult:
    """Approve a pull request as the authenticated user."""
    return await run_action(
        ctx, lambda client: client.approve_pull_request(workspace, repo_slug, pr_id), f"Pull request #{pr_id} approved"
    )

@mcp.tool(name="bitbucket_unapprove_pull_request")
async def unapprove_pull_request(ctx: Context, workspace: str, repo_slug: str, pr_id: int) -> CallToolResult:
    """Withdraw the authenticated user's approval of a pull request."""
    return await run_action(
        ctx,
        lambda client: client.unapprove_pull_request(workspace, repo_slug, pr_id),
        f"Approval removed from pull request #{pr_id}"
    )

@mcp.tool(name="bitbucket_decline_pull_request")
async def decline_pull_request(ctx: Context, workspace: str, repo_slug: str, pr_id: int) -> CallToolResult:
    """
    Decline a pull request.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        pr_id: The pull request ID
    """
    return await run_action(
        ctx,
        lambda client: client.decline_pull_request(workspace, repo_slug, pr_id),
        f"Pull request #{pr_id} declined",
        "pull_request"
    )

@mcp.tool(name="bitbucket_merge_pull_request")
async def merge_pull_request(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    pr_id: int,
    message: Optional[str] = None,
    close_source_branch: Optional[bool] = None,
    merge_strategy: Optional[Literal["merge_commit", "squash", "fast_forward"]] = None
) -> CallToolResult:
    """
    Merge a pull request.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        pr_id: The pull request ID
        message: Merge commit message
        close_source_branch: Delete the source branch after merge
        merge_strategy: merge_commit, squash or fast_forward

    Returns:
        The merged pull request.
    """
    return await run_action(
        ctx,
        lambda client: client.merge_pull_request(
            workspace,
            repo_slug,
            pr_id,
            MergeInput(message=message, close_source_branch=close_source_branch, merge_strategy=merge_strategy)
        ),
        f"Pull request #{pr_id} merged",
        "pull_request"
    )

# === PULL REQUEST COMMENTS AND DIFF ===

@mcp.tool(name="bitbucket_list_pull_request_comments")
async def list_pull_request_comments(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    pr_id: int,
    page_size: PageSize = DEFAULT_PAGE_SIZE,
    page: Page = None,
    output_mode: Mode = "structured"
) -> CallToolResult:
    """
    List comments on a pull request.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        pr_id: The pull request ID
        page_size: Number of items per page (1-100, default 20)
        page: Page number (1-based)
        output_mode: 'structured' (JSON) or 'tabular' (markdown)
    """
    return await run_tool(
        ctx,
        lambda client: client.list_pull_request_comments(workspace, repo_slug, pr_id, page_params(page_size, page)),
        "comments",
        output_mode
    )

@mcp.tool(name="bitbucket_create_pull_request_comment")
async def create_pull_request_comment(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    pr_id: int,
    content: str,
    file_path: Optional[str] = None,
    line: Optional[int] = None
) -> CallToolResult:
    """
    Comment on a pull request. Give file_path and line for an inline comment.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        pr_id: The pull request ID
        content: Comment text (markdown)
        file_path: File to attach an inline comment to
        line: Line number in the new version of the file
    """
    return await run_action(
        ctx,
        lambda client: client.create_pull_request_comment(workspace, repo_slug, pr_id, content, file_path, line),
        "Comment added",
        "comment"
    )

@mcp.tool(name="bitbucket_get_pull_request_diff")
async def get_pull_request_diff(ctx: Context, workspace: str, repo_slug: str, pr_id: int) -> CallToolResult:
    """
    Get the diff of a pull request.

    Returns:
        Unified diff as text.
    """
    return await run_text(ctx, lambda client: client.get_pull_request_diff(workspace, repo_slug, pr_id))
