import pytest
import pytest_asyncio
import os
import json
import uuid
import sys
from pathlib import Path

# Fix import paths
sys.path.append(str(Path(__file__).parent.parent))
import servers.bitbucket_gateway.bitbucket_gateway_mcp  # noqa: F401  registers every tool
from servers.bitbucket_gateway.tools import workspaces, repositories, refs, commits, pullrequests, pipelines

# Custom Context class for tests: no HTTP request, so credentials come from the environment
class LiveContext:
    def error(self, message):
        print(f"ERROR: {message}")

# Test configuration
TEST_PREFIX = f"test-{uuid.uuid4().hex[:8]}"
TEST_BRANCH = f"test-branch-{TEST_PREFIX}"

HAS_CREDENTIALS = bool(
    os.environ.get("BITBUCKET_ACCESS_TOKEN")
    or (os.environ.get("BITBUCKET_USERNAME") and os.environ.get("BITBUCKET_APP_PASSWORD"))
)

pytestmark = pytest.mark.skipif(
    not HAS_CREDENTIALS,
    reason="BITBUCKET_USERNAME and BITBUCKET_APP_PASSWORD (or BITBUCKET_ACCESS_TOKEN) must be set in environment"
)

def payload(result):
    assert result.isError is False, result.content[0].text
    return json.loads(result.content[0].text)

@pytest.fixture(scope="module")
def ctx():
    return LiveContext()

@pytest_asyncio.fixture
async def workspace(ctx):
    data = payload(await workspaces.list_workspaces(ctx, page_size=1))
    if not data["items"]:
        pytest.skip("No workspaces available. Create one in Bitbucket before testing.")
    return data["items"][0]["slug"]

@pytest_asyncio.fixture
async def repository(ctx, workspace):
    # Use an existing repository when one is named, so the tests never create repositories
    repo_slug = os.environ.get("BITBUCKET_TEST_REPO")
    if not repo_slug:
        data = payload(await repositories.list_repositories(ctx, workspace, page_size=1))
        if not data["items"]:
            pytest.skip("No repositories in the workspace")
        repo_slug = data["items"][0]["slug"]
    return workspace, repo_slug

@pytest.mark.asyncio
async def test_connection(ctx):
    data = payload(await workspaces.test_connection(ctx))
    assert data["connected"] is True

@pytest.mark.asyncio
async def test_get_current_user(ctx):
    data = payload(await workspaces.get_current_user(ctx))
    assert "uuid" in data
    print(f"Testing as user: {data.get('display_name')}")

@pytest.mark.asyncio
async def test_list_workspaces_pagination(ctx, workspace):
    data = payload(await workspaces.list_workspaces(ctx, page_size=1))
    assert data["count"] == len(data["items"]) == 1
    assert data["has_more"] == ("next_cursor" in data)

@pytest.mark.asyncio
async def test_list_repositories_tabular(ctx, workspace):
    result = await repositories.list_repositories(ctx, workspace, page_size=5, output_mode="tabular")
    assert result.isError is False
    markdown = result.content[0].text
    assert markdown.startswith("## Repositories")

@pytest.mark.asyncio
async def test_get_repository(ctx, repository):
    workspace, repo_slug = repository
    data = payload(await repositories.get_repository(ctx, workspace, repo_slug))
    assert data["slug"] == repo_slug

@pytest.mark.asyncio
async def test_list_branches_and_commits(ctx, repository):
    workspace, repo_slug = repository
    branches = payload(await refs.list_branches(ctx, workspace, repo_slug, page_size=5))
    assert branches["count"] <= 5

    result = await commits.list_commits(ctx, workspace, repo_slug, page_size=3, output_mode="tabular")
    assert result.isError is False
    assert "| Hash | Message | Author | Date |" in result.content[0].text or "_No items found._" in result.content[0].text

@pytest.mark.asyncio
async def test_list_pull_requests(ctx, repository):
    workspace, repo_slug = repository
    data = payload(await pullrequests.list_pull_requests(ctx, workspace, repo_slug, state="MERGED", page_size=5))
    assert all(pr["state"] == "MERGED" for pr in data["items"])

@pytest.mark.asyncio
async def test_list_pipelines(ctx, repository):
    workspace, repo_slug = repository
    result = await pipelines.list_pipelines(ctx, workspace, repo_slug, page_size=5)
    # Repositories without Pipelines enabled answer with an upstream error envelope
    if result.isError:
        assert json.loads(result.content[0].text)["kind"] == "upstream_error"
    else:
        assert "items" in json.loads(result.content[0].text)

@pytest.mark.asyncio
async def test_create_and_delete_branch(ctx, repository):
    workspace, repo_slug = repository
    repo = payload(await repositories.get_repository(ctx, workspace, repo_slug))
    main_branch = (repo.get("mainbranch") or {}).get("name")
    if not main_branch:
        pytest.skip("Repository has no main branch")

    head = payload(await refs.get_branch(ctx, workspace, repo_slug, main_branch))
    created = payload(await refs.create_branch(ctx, workspace, repo_slug, TEST_BRANCH, head["target"]["hash"]))
    try:
        assert created["success"] is True
        assert created["branch"]["name"] == TEST_BRANCH
    finally:
        deleted = payload(await refs.delete_branch(ctx, workspace, repo_slug, TEST_BRANCH))
        assert deleted["success"] is True

@pytest.mark.asyncio
async def test_missing_repository_returns_error(ctx, workspace):
    result = await repositories.get_repository(ctx, workspace, f"{TEST_PREFIX}-does-not-exist")
    assert result.isError is True
    assert json.loads(result.content[0].text)["kind"] in ("upstream_error", "authentication_error")
