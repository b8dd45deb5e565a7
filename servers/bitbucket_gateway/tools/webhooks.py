from typing import Optional, List

from mcp.server.fastmcp import Context
from mcp.types import CallToolResult

from servers.bitbucket_gateway.config import DEFAULT_PAGE_SIZE
from servers.bitbucket_gateway.models import WebhookInput, WebhookUpdateInput
from servers.bitbucket_gateway.server import mcp, run_tool, run_action, page_params, PageSize, Page, Mode

# === WEBHOOK TOOLS ===

@mcp.tool(name="bitbucket_list_webhooks")
async def list_webhooks(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    page_size: PageSize = DEFAULT_PAGE_SIZE,
    page: Page = None,
    output_mode: Mode = "structured"
) -> CallToolResult:
    """
    List webhooks configured on a repository.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        page_size: Number of items per page (1-100, default 20)
        page: Page number (1-based)
        output_mode: 'structured' (JSON) or 'tabular' (markdown)

    Returns:
        Webhooks with UUID, URL, active flag and subscribed events.
    """
    return await run_tool(
        ctx,
        lambda client: client.list_webhooks(workspace, repo_slug, page_params(page_size, page)),
        "webhooks",
        output_mode
    )

@mcp.tool(name="bitbucket_get_webhook")
async def get_webhook(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    webhook_uuid: str,
    output_mode: Mode = "structured"
) -> CallToolResult:
    """Get a single webhook."""
    return await run_tool(
        ctx, lambda client: client.get_webhook(workspace, repo_slug, webhook_uuid), "webhook", output_mode
    )

@mcp.tool(name="bitbucket_create_webhook")
async def create_webhook(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    url: str,
    events: List[str],
    description: Optional[str] = None,
    active: bool = True
) -> CallToolResult:
    """
    Create a webhook on a repository.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        url: URL Bitbucket will POST events to
        events: Events to subscribe to, e.g. ["repo:push", "pullrequest:created"]
        description: Webhook description
        active: Whether the webhook is active

    Returns:
        The created webhook.
    """
    return await run_action(
        ctx,
        lambda client: client.create_webhook(
            workspace,
            repo_slug,
            WebhookInput(url=url, events=events, description=description, active=active)
        ),
        "Webhook created",
        "webhook"
    )

@mcp.tool(name="bitbucket_update_webhook")
async def update_webhook(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    webhook_uuid: str,
    url: Optional[str] = None,
    events: Optional[List[str]] = None,
    description: Optional[str] = None,
    active: Optional[bool] = None
) -> CallToolResult:
    """
    Update a webhook. Only the fields given are changed.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        webhook_uuid: The webhook UUID
        url: New target URL
        events: Replacement list of events
        description: New description
        active: Enable or disable the webhook
    """
    return await run_action(
        ctx,
        lambda client: client.update_webhook(
            workspace,
            repo_slug,
            webhook_uuid,
            WebhookUpdateInput(url=url, events=events, description=description, active=active)
        ),
        "Webhook updated",
        "webhook"
    )

@mcp.tool(name="bitbucket_delete_webhook")
async def delete_webhook(ctx: Context, workspace: str, repo_slug: str, webhook_uuid: str) -> CallToolResult:
    """Delete a webhook."""
    return await run_action(
        ctx, lambda client: client.delete_webhook(workspace, repo_slug, webhook_uuid), f"Webhook {webhook_uuid} deleted"
    )
