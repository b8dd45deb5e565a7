import pytest
import os
import sys
import base64
from unittest.mock import patch, AsyncMock

import httpx

# Add the repository root to the path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from servers.bitbucket_gateway.client import BitbucketClient
from servers.bitbucket_gateway.config import API_BASE_URL
from servers.bitbucket_gateway.errors import AuthenticationError, RateLimitError, TransportError, UpstreamApiError
from servers.bitbucket_gateway.models import (
    Credentials,
    PaginationParams,
    NormalizedPage,
    RepositoryInput,
    PullRequestInput,
    IssueUpdateInput,
    PipelineTarget,
    BranchRestrictionInput,
)

# Test configuration
TEST_USERNAME = "test_user"
TEST_APP_PASSWORD = "test_password"
TEST_ACCESS_TOKEN = "test_token"
TEST_WORKSPACE = "test_workspace"
TEST_REPO_SLUG = "test_repo"
TEST_COMMIT = "1234567890abcdef"

MOCK_USER_RESPONSE = {
    "uuid": "{123e4567-e89b-12d3-a456-426614174000}",
    "display_name": "Test User",
    "username": TEST_USERNAME
}

MOCK_LIST_RESPONSE = {
    "values": [{"name": "main", "target": {"hash": TEST_COMMIT}}],
    "page": 1,
    "size": 1,
    "pagelen": 20,
    "next": None
}

@pytest.fixture
def basic_client():
    return BitbucketClient(Credentials(username=TEST_USERNAME, app_password=TEST_APP_PASSWORD))

@pytest.fixture
def bearer_client():
    return BitbucketClient(Credentials(access_token=TEST_ACCESS_TOKEN))

# Mock the httpx.AsyncClient and record every request
@pytest.fixture
def mock_httpx_client():
    with patch("httpx.AsyncClient") as mock_client:
        mock_instance = AsyncMock()
        mock_client.return_value.__aenter__.return_value = mock_instance
        mock_instance.calls = []
        mock_instance.next_response = httpx.Response(200, json=MOCK_USER_RESPONSE)

        async def mock_request(**kwargs):
            mock_instance.calls.append(kwargs)
            return mock_instance.next_response

        mock_instance.request = mock_request
        yield mock_instance

# === Authentication ===

def test_basic_auth_header(basic_client):
    encoded_auth = base64.b64encode(f"{TEST_USERNAME}:{TEST_APP_PASSWORD}".encode()).decode()
    assert basic_client.get_auth_header() == {"Authorization": f"Basic {encoded_auth}"}

def test_bearer_auth_header(bearer_client):
    assert bearer_client.get_auth_header() == {"Authorization": f"Bearer {TEST_ACCESS_TOKEN}"}

def test_bearer_wins_when_both_modes_present():
    client = BitbucketClient(Credentials(
        username=TEST_USERNAME, app_password=TEST_APP_PASSWORD, access_token=TEST_ACCESS_TOKEN
    ))
    assert client.get_auth_header()["Authorization"].startswith("Bearer ")

@pytest.mark.parametrize("credentials", [
    Credentials(),
    Credentials(username=TEST_USERNAME),
    Credentials(app_password=TEST_APP_PASSWORD),
])
def test_missing_credentials_fail_at_construction(credentials):
    with pytest.raises(AuthenticationError):
        BitbucketClient(credentials)

def test_base_url_override():
    client = BitbucketClient(Credentials(access_token=TEST_ACCESS_TOKEN, base_url="https://bitbucket.internal/api/2.0/"))
    assert client.base_url == "https://bitbucket.internal/api/2.0"

# === Request handling ===

@pytest.mark.asyncio
async def test_get_current_user(basic_client, mock_httpx_client):
    data = await basic_client.get_current_user()
    assert data == MOCK_USER_RESPONSE

    call = mock_httpx_client.calls[0]
    assert call["method"] == "GET"
    assert call["url"] == f"{API_BASE_URL}/user"
    assert call["headers"]["Authorization"].startswith("Basic ")
    assert call["timeout"] == basic_client.timeout

@pytest.mark.asyncio
async def test_list_returns_normalized_page(basic_client, mock_httpx_client):
    mock_httpx_client.next_response = httpx.Response(200, json=MOCK_LIST_RESPONSE)
    page = await basic_client.list_branches(
        TEST_WORKSPACE, TEST_REPO_SLUG, PaginationParams(page_size=500, page=2, query='name ~ "feat"')
    )
    assert isinstance(page, NormalizedPage)
    assert page.count == 1
    assert page.total == 1
    assert page.has_more is False

    url = mock_httpx_client.calls[0]["url"]
    assert url == (
        f"{API_BASE_URL}/repositories/{TEST_WORKSPACE}/{TEST_REPO_SLUG}/refs/branches"
        "?pagelen=100&page=2&q=name%20~%20%22feat%22"
    )

@pytest.mark.asyncio
async def test_list_pull_requests_state_filter(basic_client, mock_httpx_client):
    mock_httpx_client.next_response = httpx.Response(200, json=MOCK_LIST_RESPONSE)
    await basic_client.list_pull_requests(TEST_WORKSPACE, TEST_REPO_SLUG, PaginationParams(), state="MERGED")
    assert mock_httpx_client.calls[0]["url"].endswith("/pullrequests?pagelen=20&state=MERGED")

@pytest.mark.asyncio
async def test_no_content_returns_none(basic_client, mock_httpx_client):
    mock_httpx_client.next_response = httpx.Response(204)
    assert await basic_client.delete_repository(TEST_WORKSPACE, TEST_REPO_SLUG) is None
    assert mock_httpx_client.calls[0]["method"] == "DELETE"

@pytest.mark.asyncio
async def test_text_endpoint_returns_text(basic_client, mock_httpx_client):
    diff = "diff --git a/README.md b/README.md\n+hello\n"
    mock_httpx_client.next_response = httpx.Response(200, text=diff, headers={"content-type": "text/plain"})
    assert await basic_client.get_diff(TEST_WORKSPACE, TEST_REPO_SLUG, "main..feature") == diff
    assert mock_httpx_client.calls[0]["headers"]["Accept"] == "text/plain"

@pytest.mark.asyncio
async def test_branch_names_are_encoded(basic_client, mock_httpx_client):
    await basic_client.get_branch(TEST_WORKSPACE, TEST_REPO_SLUG, "feature/login")
    assert mock_httpx_client.calls[0]["url"].endswith("/refs/branches/feature%2Flogin")

@pytest.mark.asyncio
async def test_repository_segments_are_encoded(basic_client, mock_httpx_client):
    await basic_client.get_repository(TEST_WORKSPACE, "odd?slug#x")
    assert mock_httpx_client.calls[0]["url"] == f"{API_BASE_URL}/repositories/{TEST_WORKSPACE}/odd%3Fslug%23x"

@pytest.mark.asyncio
async def test_uuid_segments_are_encoded(basic_client, mock_httpx_client):
    await basic_client.get_webhook(TEST_WORKSPACE, TEST_REPO_SLUG, "{hook/1}")
    assert mock_httpx_client.calls[0]["url"].endswith("/hooks/%7Bhook%2F1%7D")

@pytest.mark.asyncio
async def test_diff_spec_is_left_raw(basic_client, mock_httpx_client):
    mock_httpx_client.next_response = httpx.Response(200, text="", headers={"content-type": "text/plain"})
    await basic_client.get_diff(TEST_WORKSPACE, TEST_REPO_SLUG, "main..feature")
    assert mock_httpx_client.calls[0]["url"].endswith("/diff/main..feature")

@pytest.mark.asyncio
async def test_file_content_path(basic_client, mock_httpx_client):
    mock_httpx_client.next_response = httpx.Response(200, text="print('hi')\n")
    await basic_client.get_file_content(TEST_WORKSPACE, TEST_REPO_SLUG, "/src/app.py", ref="release/1.0")
    assert mock_httpx_client.calls[0]["url"].endswith("/src/release%2F1.0/src/app.py")

# === Payloads ===

@pytest.mark.asyncio
async def test_create_repository_payload(basic_client, mock_httpx_client):
    await basic_client.create_repository(
        TEST_WORKSPACE, TEST_REPO_SLUG, RepositoryInput(description="demo", project_key="PROJ", mainbranch="main")
    )
    payload = mock_httpx_client.calls[0]["json"]
    assert payload["scm"] == "git"
    assert payload["project"] == {"key": "PROJ"}
    assert payload["mainbranch"] == {"type": "branch", "name": "main"}
    assert payload["is_private"] is True

@pytest.mark.asyncio
async def test_create_pull_request_payload(basic_client, mock_httpx_client):
    await basic_client.create_pull_request(
        TEST_WORKSPACE,
        TEST_REPO_SLUG,
        PullRequestInput(title="Add feature", source_branch="feature/x", destination_branch="main", reviewers=["{abc}"])
    )
    payload = mock_httpx_client.calls[0]["json"]
    assert payload["title"] == "Add feature"
    assert payload["source"] == {"branch": {"name": "feature/x"}}
    assert payload["destination"] == {"branch": {"name": "main"}}
    assert payload["reviewers"] == [{"uuid": "{abc}"}]

@pytest.mark.asyncio
async def test_update_issue_payload(basic_client, mock_httpx_client):
    await basic_client.update_issue(TEST_WORKSPACE, TEST_REPO_SLUG, 5, IssueUpdateInput(state="resolved", content="done"))
    call = mock_httpx_client.calls[0]
    assert call["method"] == "PUT"
    assert call["json"] == {"state": "resolved", "content": {"raw": "done"}}

@pytest.mark.asyncio
async def test_trigger_pipeline_on_branch_with_selector(basic_client, mock_httpx_client):
    target = PipelineTarget(target_type="branch", target_name="main", selector_type="custom", selector_pattern="deploy")
    await basic_client.trigger_pipeline(TEST_WORKSPACE, TEST_REPO_SLUG, target)
    assert mock_httpx_client.calls[0]["json"] == {
        "target": {
            "type": "pipeline_ref_target",
            "ref_type": "branch",
            "ref_name": "main",
            "selector": {"type": "custom", "pattern": "deploy"}
        }
    }

@pytest.mark.asyncio
async def test_trigger_pipeline_on_commit(basic_client, mock_httpx_client):
    await basic_client.trigger_pipeline(
        TEST_WORKSPACE, TEST_REPO_SLUG, PipelineTarget(target_type="commit", target_name=TEST_COMMIT)
    )
    assert mock_httpx_client.calls[0]["json"] == {
        "target": {"type": "pipeline_commit_target", "commit": {"hash": TEST_COMMIT}}
    }

def test_branch_restriction_payload():
    restriction = BranchRestrictionInput(kind="push", pattern="main", users=["{u1}"], groups=["devs"])
    assert restriction.to_payload() == {
        "kind": "push",
        "pattern": "main",
        "branch_match_kind": "glob",
        "users": [{"uuid": "{u1}"}],
        "groups": [{"slug": "devs"}]
    }

# === Failures ===

@pytest.mark.asyncio
async def test_rate_limit_raises_typed_error(basic_client, mock_httpx_client):
    mock_httpx_client.next_response = httpx.Response(429, headers={"Retry-After": "30"})
    with pytest.raises(RateLimitError) as exc_info:
        await basic_client.list_workspaces(PaginationParams())
    assert exc_info.value.retry_after == 30

@pytest.mark.asyncio
async def test_not_found_raises_upstream_error(basic_client, mock_httpx_client):
    mock_httpx_client.next_response = httpx.Response(404, json={"type": "error", "error": {"message": "Not found"}})
    with pytest.raises(UpstreamApiError) as exc_info:
        await basic_client.get_repository(TEST_WORKSPACE, "missing")
    assert exc_info.value.status_code == 404
    assert exc_info.value.message == "Not found"

@pytest.mark.asyncio
async def test_client_follows_redirects(basic_client):
    with patch("httpx.AsyncClient") as mock_client:
        mock_instance = AsyncMock()
        mock_instance.request.return_value = httpx.Response(200, json=MOCK_LIST_RESPONSE)
        mock_client.return_value.__aenter__.return_value = mock_instance

        await basic_client.list_directory(TEST_WORKSPACE, TEST_REPO_SLUG)

    assert mock_client.call_args.kwargs["follow_redirects"] is True

@pytest.mark.asyncio
async def test_unfollowed_redirect_raises_upstream_error(basic_client, mock_httpx_client):
    mock_httpx_client.next_response = httpx.Response(
        302, headers={"Location": f"{API_BASE_URL}/repositories/{TEST_WORKSPACE}/{TEST_REPO_SLUG}/src/abc123/"}
    )
    with pytest.raises(UpstreamApiError) as exc_info:
        await basic_client.list_directory(TEST_WORKSPACE, TEST_REPO_SLUG)
    assert exc_info.value.status_code == 302
    assert exc_info.value.retryable is False

@pytest.mark.asyncio
async def test_network_failure_raises_transport_error(basic_client, mock_httpx_client):
    async def failing_request(**kwargs):
        raise httpx.ConnectTimeout("timed out")

    mock_httpx_client.request = failing_request
    with pytest.raises(TransportError):
        await basic_client.get_current_user()

@pytest.mark.asyncio
async def test_connection_check_reports_failure(basic_client, mock_httpx_client):
    mock_httpx_client.next_response = httpx.Response(401)
    result = await basic_client.test_connection()
    assert result["connected"] is False
    assert "Authentication failed" in result["message"]

@pytest.mark.asyncio
async def test_connection_check_reports_success(basic_client, mock_httpx_client):
    result = await basic_client.test_connection()
    assert result == {"connected": True, "message": "Successfully connected to Bitbucket"}
