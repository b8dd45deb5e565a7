from typing import Optional, Literal

from mcp.server.fastmcp import Context
from mcp.types import CallToolResult

from servers.bitbucket_gateway.config import DEFAULT_PAGE_SIZE
from servers.bitbucket_gateway.models import PipelineTarget, PipelineVariableInput
from servers.bitbucket_gateway.server import (
    mcp, run_tool, run_action, run_text, page_params, PageSize, Page, Query, Sort, Mode
)

# === PIPELINE TOOLS ===

@mcp.tool(name="bitbucket_list_pipelines")
async def list_pipelines(
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
    List pipeline runs for a repository.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        page_size: Number of items per page (1-100, default 20)
        page: Page number (1-based)
        query: Query filter
        sort: Sort field, e.g. -created_on
        output_mode: 'structured' (JSON) or 'tabular' (markdown)

    Returns:
        Pipelines with build number, state, target ref, duration and creation date.
    """
    return await run_tool(
        ctx,
        lambda client: client.list_pipelines(workspace, repo_slug, page_params(page_size, page, query, sort)),
        "pipelines",
        output_mode
    )

@mcp.tool(name="bitbucket_get_pipeline")
async def get_pipeline(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    pipeline_uuid: str,
    output_mode: Mode = "structured"
) -> CallToolResult:
    """
    Get a single pipeline run.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        pipeline_uuid: The pipeline UUID (with braces) or build number
        output_mode: 'structured' (JSON) or 'tabular' (markdown)
    """
    return await run_tool(
        ctx, lambda client: client.get_pipeline(workspace, repo_slug, pipeline_uuid), "pipeline", output_mode
    )

@mcp.tool(name="bitbucket_trigger_pipeline")
async def trigger_pipeline(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    target_type: Literal["branch", "tag", "commit"],
    target_name: str,
    selector_type: Optional[Literal["custom", "branches", "tags", "pull-requests", "default"]] = None,
    selector_pattern: Optional[str] = None
) -> CallToolResult:
    """
    Start a pipeline run.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        target_type: branch, tag or commit
        target_name: Branch or tag name, or the commit hash
        selector_type: Pipeline selector type, e.g. custom
        selector_pattern: Selector pattern, e.g. the custom pipeline name

    Returns:
        The started pipeline.
    """
    return await run_action(
        ctx,
        lambda client: client.trigger_pipeline(
            workspace,
            repo_slug,
            PipelineTarget(
                target_type=target_type,
                target_name=target_name,
                selector_type=selector_type,
                selector_pattern=selector_pattern
            )
        ),
        "Pipeline triggered",
        "pipeline"
    )

@mcp.tool(name="bitbucket_stop_pipeline")
async def stop_pipeline(ctx: Context, workspace: str, repo_slug: str, pipeline_uuid: str) -> CallToolResult:
    """Stop a running pipeline."""
    return await run_action(
        ctx,
        lambda client: client.stop_pipeline(workspace, repo_slug, pipeline_uuid),
        f"Pipeline {pipeline_uuid} stopped"
    )

@mcp.tool(name="bitbucket_list_pipeline_steps")
async def list_pipeline_steps(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    pipeline_uuid: str,
    page_size: PageSize = DEFAULT_PAGE_SIZE,
    page: Page = None,
    output_mode: Mode = "structured"
) -> CallToolResult:
    """
    List the steps of a pipeline run.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        pipeline_uuid: The pipeline UUID
        page_size: Number of items per page (1-100, default 20)
        page: Page number (1-based)
        output_mode: 'structured' (JSON) or 'tabular' (markdown)
    """
    return await run_tool(
        ctx,
        lambda client: client.list_pipeline_steps(workspace, repo_slug, pipeline_uuid, page_params(page_size, page)),
        "steps",
        output_mode
    )

@mcp.tool(name="bitbucket_get_pipeline_step_log")
async def get_pipeline_step_log(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    pipeline_uuid: str,
    step_uuid: str
) -> CallToolResult:
    """
    Get the log output of a pipeline step.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        pipeline_uuid: The pipeline UUID
        step_uuid: The step UUID

    Returns:
        The raw step log, truncated when it is very long.
    """
    return await run_text(
        ctx, lambda client: client.get_pipeline_step_log(workspace, repo_slug, pipeline_uuid, step_uuid)
    )

# === PIPELINE VARIABLES ===

@mcp.tool(name="bitbucket_list_pipeline_variables")
async def list_pipeline_variables(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    page_size: PageSize = DEFAULT_PAGE_SIZE,
    page: Page = None,
    output_mode: Mode = "structured"
) -> CallToolResult:
    """List repository-level pipeline variables. Secured values are not returned by Bitbucket."""
    return await run_tool(
        ctx,
        lambda client: client.list_pipeline_variables(workspace, repo_slug, page_params(page_size, page)),
        "variables",
        output_mode
    )

@mcp.tool(name="bitbucket_create_pipeline_variable")
async def create_pipeline_variable(
    ctx: Context,
    workspace: str,
    repo_slug: str,
    key: str,
    value: str,
    secured: bool = False
) -> CallToolResult:
    """
    Create a repository-level pipeline variable.

    Args:
        workspace: The workspace slug or UUID
        repo_slug: The repository slug
        key: Variable name
        value: Variable value
        secured: Store the value as a secret
    """
    return await run_action(
        ctx,
        lambda client: client.create_pipeline_variable(
            workspace, repo_slug, PipelineVariableInput(key=key, value=value, secured=secured)
        ),
        "Pipeline variable created",
        "variable"
    )

@mcp.tool(name="bitbucket_delete_pipeline_variable")
async def delete_pipeline_variable(ctx: Context, workspace: str, repo_slug: str, variable_uuid: str) -> CallToolResult:
    """Delete a repository-level pipeline variable."""
    return await run_action(
        ctx,
        lambda client: client.delete_pipeline_variable(workspace, repo_slug, variable_uuid),
        f"Pipeline variable {variable_uuid} deleted"
    )
