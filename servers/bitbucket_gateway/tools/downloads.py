from typing import Optional

from mcp.server.fastmcp import Context
from mcp.types import CallToolResult

from servers.bitbucket_gateway.config import DEFAULT_PAGE_SIZE
from servers.bitbucket_gateway.server import (
    mcp, run_tool, run_action, run_text, page_params, PageSize, Page, Mode
)

# === DOWNLOAD TOOLS ===

@mcp.tool(name="bitbucket_list_downloads")
async def list_downloads(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    page_size: PageSize = DEFAULT_PAGE_SIZE,
    page: Page = None,
    output_mode: Mode = "structured"
) -> CallToolResult:
    """
    List files in a repository's downloads section.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        page_size: Number of items per page (1-100, default 20)
        page: Page number (1-based)
        output_mode: 'structured' (JSON) or 'tabular' (markdown)
    """
    return await run_tool(
        ctx,
        lambda client: client.list_downloads(workspace, repo_slug, page_params(page_size, page)),
        "downloads",
        output_mode
    )

@mcp.tool(name="bitbucket_delete_download")
async def delete_download(ctx: Context, workspace: str, repo_slug: str, filename: str) -> CallToolResult:
    """Delete a file from the downloads section."""
    return await run_action(
        ctx, lambda client: client.delete_download(workspace, repo_slug, filename), f"Download {filename} deleted"
    )

# === SOURCE BROWSING TOOLS ===

@mcp.tool(name="bitbucket_get_file_content")
async def get_file_content(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    path: str,
    ref: Optional[str] = None
) -> CallToolResult:
    """
    Read a file from the repository.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        path: Path of the file inside the repository
        ref: Branch, tag or commit (defaults to the main branch)

    Returns:
        The raw file content, truncated when it is very long.
    """
    return await run_text(ctx, lambda client: client.get_file_content(workspace, repo_slug, path, ref))

@mcp.tool(name="bitbucket_list_directory")
async def list_directory(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    path: str = "",
    ref: Optional[str] = None,
    page_size: PageSize = DEFAULT_PAGE_SIZE,
    page: Page = None,
    output_mode: Mode = "structured"
) -> CallToolResult:
    """
    List the entries of a directory in the repository.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        path: Directory path (empty for the repository root)
        ref: Branch, tag or commit (defaults to the main branch)
        page_size: Number of items per page (1-100, default 20)
        page: Page number (1-based)
        output_mode: 'structured' (JSON) or 'tabular' (markdown)
    """
    return await run_tool(
        ctx,
        lambda client: client.list_directory(workspace, repo_slug, path, ref, page_params(page_size, page)),
        "files",
        output_mode
    )
