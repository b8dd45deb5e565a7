from typing import Optional, Literal

from mcp.server.fastmcp import Context
from mcp.types import CallToolResult

from servers.bitbucket_gateway.config import DEFAULT_PAGE_SIZE
from servers.bitbucket_gateway.models import IssueInput, IssueUpdateInput
from servers.bitbucket_gateway.server import (
    mcp, run_tool, run_action, page_params, PageSize, Page, Query, Sort, Mode
)

IssueKind = Literal["bug", "enhancement", "proposal", "task"]
IssuePriority = Literal["trivial", "minor", "major", "critical", "blocker"]
IssueState = Literal["new", "open", "resolved", "on hold", "invalid", "duplicate", "wontfix", "closed"]

# === ISSUE TRACKER TOOLS ===

@mcp.tool(name="bitbucket_list_issues")
async def list_issues(
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
    List issues in a repository's issue tracker.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        page_size: Number of items per page (1-100, default 20)
        page: Page number (1-based)
        query: Query filter, e.g. state="open" AND priority="major"
        sort: Sort field, e.g. -created_on
        output_mode: 'structured' (JSON) or 'tabular' (markdown)

    Returns:
        Issues with ID, title, state, priority, kind and assignee.
    """
    return await run_tool(
        ctx,
        lambda client: client.list_issues(workspace, repo_slug, page_params(page_size, page, query, sort)),
        "issues",
        output_mode
    )

@mcp.tool(name="bitbucket_get_issue")
async def get_issue(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    issue_id: int,
    output_mode: Mode = "structured"
) -> CallToolResult:
    """Get a single issue."""
    return await run_tool(ctx, lambda client: client.get_issue(workspace, repo_slug, issue_id), "issue", output_mode)

@mcp.tool(name="bitbucket_create_issue")
async def create_issue(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    title: str,
    content: Optional[str] = None,
    kind: IssueKind = "bug",
    priority: IssuePriority = "major",
    assignee: Optional[str] = None
) -> CallToolResult:
    """
    Create an issue. The repository must have the issue tracker enabled.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        title: Issue title
        content: Issue description (markdown)
        kind: bug, enhancement, proposal or task
        priority: trivial, minor, major, critical or blocker
        assignee: Assignee account UUID

    Returns:
        The created issue.
    """
    return await run_action(
        ctx,
        lambda client: client.create_issue(
            workspace,
            repo_slug,
            IssueInput(title=title, content=content, kind=kind, priority=priority, assignee=assignee)
        ),
        "Issue created",
        "issue"
    )

@mcp.tool(name="bitbucket_update_issue")
async def update_issue(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    issue_id: int,
    title: Optional[str] = None,
    content: Optional[str] = None,
    kind: Optional[IssueKind] = None,
    priority: Optional[IssuePriority] = None,
    state: Optional[IssueState] = None,
    assignee: Optional[str] = None
) -> CallToolResult:
    """
    Update an issue. Only the fields given are changed.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        issue_id: The issue ID
        title: New title
        content: New description
        kind: New kind
        priority: New priority
        state: New state (new, open, resolved, on hold, invalid, duplicate, wontfix, closed)
        assignee: New assignee account UUID
    """
    return await run_action(
        ctx,
        lambda client: client.update_issue(
            workspace,
            repo_slug,
            issue_id,
            IssueUpdateInput(
                title=title,
                content=content,
                kind=kind,
                priority=priority,
                state=state,
                assignee=assignee
            )
        ),
        f"Issue #{issue_id} updated",
        "issue"
    )

@mcp.tool(name="bitbucket_delete_issue")
async def delete_issue(ctx: Context, workspace: str, repo_slug: str, issue_id: int) -> CallToolResult:
    """Delete an issue."""
    return await run_action(
        ctx, lambda client: client.delete_issue(workspace, repo_slug, issue_id), f"Issue #{issue_id} deleted"
    )

@mcp.tool(name="bitbucket_list_issue_comments")
async def list_issue_comments(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    issue_id: int,
    page_size: PageSize = DEFAULT_PAGE_SIZE,
    page: Page = None,
    output_mode: Mode = "structured"
) -> CallToolResult:
    """
    List comments on an issue.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        issue_id: The issue ID
        page_size: Number of items per page (1-100, default 20)
        page: Page number (1-based)
        output_mode: 'structured' (JSON) or 'tabular' (markdown)
    """
    return await run_tool(
        ctx,
        lambda client: client.list_issue_comments(workspace, repo_slug, issue_id, page_params(page_size, page)),
        "comments",
        output_mode
    )

@mcp.tool(name="bitbucket_create_issue_comment")
async def create_issue_comment(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    issue_id: int,
    content: str
) -> CallToolResult:
    """
    Comment on an issue.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        issue_id: The issue ID
        content: Comment text (markdown)
    """
    return await run_action(
        ctx,
        lambda client: client.create_issue_comment(workspace, repo_slug, issue_id, content),
        "Comment added",
        "comment"
    )
