"""
Bitbucket Cloud REST API 2.0 client.

A client is built per tool invocation from that tenant's credentials and
opens a fresh ``httpx.AsyncClient`` for every call. Failures are raised as
the typed errors in ``errors.py``; list calls come back as ``NormalizedPage``.
"""
import base64
import logging
from typing import Optional, Dict, Any, Union
from urllib.parse import quote

import httpx

from servers.bitbucket_gateway.config import API_BASE_URL, REQUEST_TIMEOUT
from servers.bitbucket_gateway.errors import AuthenticationError, BitbucketError, error_from_response, TransportError
from servers.bitbucket_gateway.models import (
    Credentials,
    PaginationParams,
    NormalizedPage,
    RepositoryInput,
    RepositoryUpdateInput,
    PullRequestInput,
    PullRequestUpdateInput,
    MergeInput,
    IssueInput,
    IssueUpdateInput,
    CommitStatusInput,
    PipelineTarget,
    PipelineVariableInput,
    WebhookInput,
    WebhookUpdateInput,
    BranchRestrictionInput,
    DeployKeyInput,
)
from servers.bitbucket_gateway.pagination import build_query, normalize

logger = logging.getLogger("bitbucket-gateway-mcp.client")

TEXT_CONTENT_TYPES = ("text/plain", "text/x-diff")


def _segment(value: Union[str, int]) -> str:
    """Encode a single path segment (branch and tag names may contain '/')."""
    return quote(str(value), safe="")


class BitbucketClient:
    """Authenticated access to one tenant's Bitbucket account."""

    def __init__(self, credentials: Credentials, timeout: float = REQUEST_TIMEOUT):
        if credentials.auth_mode is None:
            raise AuthenticationError(
                "No credentials provided. Include X-Bitbucket-Username + X-Bitbucket-App-Password headers, "
                "or X-Bitbucket-Access-Token header."
            )
        self.credentials = credentials
        self.base_url = (credentials.base_url or API_BASE_URL).rstrip("/")
        self.timeout = timeout

    # === HTTP HELPERS ===

    def get_auth_header(self) -> Dict[str, str]:
        if self.credentials.auth_mode == "bearer":
            return {"Authorization": f"Bearer {self.credentials.access_token}"}

        auth_string = f"{self.credentials.username}:{self.credentials.app_password}"
        encoded_auth = base64.b64encode(auth_string.encode()).decode()
        return {"Authorization": f"Basic {encoded_auth}"}

    async def _send(
        self,
        method: str,
        endpoint: str,
        json_data: Optional[Dict[str, Any]] = None,
        accept: Optional[str] = None
    ) -> httpx.Response:
        url = f"{self.base_url}{endpoint}"
        headers = self.get_auth_header()
        headers["Content-Type"] = "application/json"
        if accept:
            headers["Accept"] = accept

        logger.debug(f"{method} {endpoint}")
        try:
            async with httpx.AsyncClient(follow_redirects=True) as client:
                response = await client.request(
                    method=method,
                    url=url,
                    json=json_data,
                    headers=headers,
                    timeout=self.timeout
                )
        except httpx.RequestError as e:
            raise TransportError(str(e) or type(e).__name__) from e

        # Redirects are followed; a 3xx that is left is an error
        if not 200 <= response.status_code < 300:
            raise error_from_response(response)
        return response

    async def _request(
        self,
        method: str,
        endpoint: str,
        json_data: Optional[Dict[str, Any]] = None
    ) -> Any:
        """Make a request and decode the body: None for 204, str for text endpoints, else JSON."""
        response = await self._send(method, endpoint, json_data=json_data)

        if response.status_code == 204 or not response.text:
            return None

        content_type = response.headers.get("content-type", "")
        if any(kind in content_type for kind in TEXT_CONTENT_TYPES):
            return response.text

        try:
            return response.json()
        except ValueError:
            return response.text

    async def _request_text(self, endpoint: str) -> str:
        response = await self._send("GET", endpoint, accept="text/plain")
        return response.text

    async def _list(
        self,
        endpoint: str,
        params: Optional[PaginationParams] = None,
        **filters: Any
    ) -> NormalizedPage:
        data = await self._request("GET", f"{endpoint}{build_query(params, **filters)}")
        return normalize(data)

    @staticmethod
    def _repo(workspace: str, repo_slug: str) -> str:
        return f"/repositories/{_segment(workspace)}/{_segment(repo_slug)}"

    # === CONNECTION AND USER ===

    async def test_connection(self) -> Dict[str, Any]:
        try:
            await self._request("GET", "/user")
            return {"connected": True, "message": "Successfully connected to Bitbucket"}
        except BitbucketError as e:
            return {"connected": False, "message": e.message}

    async def get_current_user(self) -> Dict[str, Any]:
        return await self._request("GET", "/user")

    # === WORKSPACES ===

    async def list_workspaces(self, params: Optional[PaginationParams] = None, role: Optional[str] = None) -> NormalizedPage:
        return await self._list("/workspaces", params, role=role)

    async def get_workspace(self, workspace: str) -> Dict[str, Any]:
        return await self._request("GET", f"/workspaces/{_segment(workspace)}")

    async def list_workspace_members(self, workspace: str, params: Optional[PaginationParams] = None) -> NormalizedPage:
        return await self._list(f"/workspaces/{_segment(workspace)}/members", params)

    # === REPOSITORIES ===

    async def list_repositories(self, workspace: str, params: Optional[PaginationParams] = None, role: Optional[str] = None) -> NormalizedPage:
        return await self._list(f"/repositories/{_segment(workspace)}", params, role=role)

    async def get_repository(self, workspace: str, repo_slug: str) -> Dict[str, Any]:
        return await self._request("GET", self._repo(workspace, repo_slug))

    async def create_repository(self, workspace: str, repo_slug: str, repo_input: RepositoryInput) -> Dict[str, Any]:
        return await self._request("POST", self._repo(workspace, repo_slug), json_data=repo_input.to_payload())

    async def update_repository(self, workspace: str, repo_slug: str, repo_input: RepositoryUpdateInput) -> Dict[str, Any]:
        return await self._request("PUT", self._repo(workspace, repo_slug), json_data=repo_input.to_payload())

    async def delete_repository(self, workspace: str, repo_slug: str) -> None:
        await self._request("DELETE", self._repo(workspace, repo_slug))

    async def list_forks(self, workspace: str, repo_slug: str, params: Optional[PaginationParams] = None) -> NormalizedPage:
        return await self._list(f"{self._repo(workspace, repo_slug)}/forks", params)

    async def fork_repository(
        self,
        workspace: str,
        repo_slug: str,
        target_workspace: str,
        name: Optional[str] = None
    ) -> Dict[str, Any]:
        fork_data: Dict[str, Any] = {"workspace": {"slug": target_workspace}}
        if name:
            fork_data["name"] = name
        return await self._request("POST", f"{self._repo(workspace, repo_slug)}/forks", json_data=fork_data)

    # === BRANCHES AND TAGS ===

    async def list_branches(self, workspace: str, repo_slug: str, params: Optional[PaginationParams] = None) -> NormalizedPage:
        return await self._list(f"{self._repo(workspace, repo_slug)}/refs/branches", params)

    async def get_branch(self, workspace: str, repo_slug: str, branch_name: str) -> Dict[str, Any]:
        return await self._request("GET", f"{self._repo(workspace, repo_slug)}/refs/branches/{_segment(branch_name)}")

    async def create_branch(self, workspace: str, repo_slug: str, name: str, target: str) -> Dict[str, Any]:
        branch_data = {"name": name, "target": {"hash": target}}
        return await self._request("POST", f"{self._repo(workspace, repo_slug)}/refs/branches", json_data=branch_data)

    async def delete_branch(self, workspace: str, repo_slug: str, branch_name: str) -> None:
        await self._request("DELETE", f"{self._repo(workspace, repo_slug)}/refs/branches/{_segment(branch_name)}")

    async def list_tags(self, workspace: str, repo_slug: str, params: Optional[PaginationParams] = None) -> NormalizedPage:
        return await self._list(f"{self._repo(workspace, repo_slug)}/refs/tags", params)

    async def get_tag(self, workspace: str, repo_slug: str, tag_name: str) -> Dict[str, Any]:
        return await self._request("GET", f"{self._repo(workspace, repo_slug)}/refs/tags/{_segment(tag_name)}")

    async def create_tag(
        self,
        workspace: str,
        repo_slug: str,
        name: str,
        target: str,
        message: Optional[str] = None
    ) -> Dict[str, Any]:
        tag_data: Dict[str, Any] = {"name": name, "target": {"hash": target}}
        if message:
            tag_data["message"] = message
        return await self._request("POST", f"{self._repo(workspace, repo_slug)}/refs/tags", json_data=tag_data)

    async def delete_tag(self, workspace: str, repo_slug: str, tag_name: str) -> None:
        await self._request("DELETE", f"{self._repo(workspace, repo_slug)}/refs/tags/{_segment(tag_name)}")

    async def get_branching_model(self, workspace: str, repo_slug: str) -> Dict[str, Any]:
        return await self._request("GET", f"{self._repo(workspace, repo_slug)}/branching-model")

    # === COMMITS ===

    async def list_commits(
        self,
        workspace: str,
        repo_slug: str,
        params: Optional[PaginationParams] = None,
        revision: Optional[str] = None,
        include: Optional[str] = None,
        exclude: Optional[str] = None
    ) -> NormalizedPage:
        return await self._list(
            f"{self._repo(workspace, repo_slug)}/commits",
            params,
            revision=revision,
            include=include,
            exclude=exclude
        )

    async def get_commit(self, workspace: str, repo_slug: str, commit_hash: str) -> Dict[str, Any]:
        return await self._request("GET", f"{self._repo(workspace, repo_slug)}/commit/{_segment(commit_hash)}")

    async def list_commit_statuses(
        self,
        workspace: str,
        repo_slug: str,
        commit_hash: str,
        params: Optional[PaginationParams] = None
    ) -> NormalizedPage:
        return await self._list(f"{self._repo(workspace, repo_slug)}/commit/{_segment(commit_hash)}/statuses", params)

    async def create_commit_status(
        self,
        workspace: str,
        repo_slug: str,
        commit_hash: str,
        status: CommitStatusInput
    ) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"{self._repo(workspace, repo_slug)}/commit/{_segment(commit_hash)}/statuses/build",
            json_data=status.model_dump(exclude_none=True)
        )

    async def get_diff(self, workspace: str, repo_slug: str, spec: str) -> str:
        return await self._request_text(f"{self._repo(workspace, repo_slug)}/diff/{spec}")

    # === PULL REQUESTS ===

    def _pr(self, workspace: str, repo_slug: str, pr_id: Optional[int] = None) -> str:
        endpoint = f"{self._repo(workspace, repo_slug)}/pullrequests"
        return endpoint if pr_id is None else f"{endpoint}/{pr_id}"

    async def list_pull_requests(
        self,
        workspace: str,
        repo_slug: str,
        params: Optional[PaginationParams] = None,
        state: Optional[str] = None
    ) -> NormalizedPage:
        return await self._list(self._pr(workspace, repo_slug), params, state=state)

    async def get_pull_request(self, workspace: str, repo_slug: str, pr_id: int) -> Dict[str, Any]:
        return await self._request("GET", self._pr(workspace, repo_slug, pr_id))

    async def create_pull_request(self, workspace: str, repo_slug: str, pr_input: PullRequestInput) -> Dict[str, Any]:
        return await self._request("POST", self._pr(workspace, repo_slug), json_data=pr_input.to_payload())

    async def update_pull_request(
        self,
        workspace: str,
        repo_slug: str,
        pr_id: int,
        pr_input: PullRequestUpdateInput
    ) -> Dict[str, Any]:
        return await self._request("PUT", self._pr(workspace, repo_slug, pr_id), json_data=pr_input.to_payload())

    async def approve_pull_request(self, workspace: str, repo_slug: str, pr_id: int) -> None:
        await self._request("POST", f"{self._pr(workspace, repo_slug, pr_id)}/approve")

    async def unapprove_pull_request(self, workspace: str, repo_slug: str, pr_id: int) -> None:
        await self._request("DELETE", f"{self._pr(workspace, repo_slug, pr_id)}/approve")

    async def decline_pull_request(self, workspace: str, repo_slug: str, pr_id: int) -> Dict[str, Any]:
        return await self._request("POST", f"{self._pr(workspace, repo_slug, pr_id)}/decline")

    async def merge_pull_request(
        self,
        workspace: str,
        repo_slug: str,
        pr_id: int,
        merge_input: Optional[MergeInput] = None
    ) -> Dict[str, Any]:
        merge_data = merge_input.model_dump(exclude_none=True) if merge_input else {}
        return await self._request("POST", f"{self._pr(workspace, repo_slug, pr_id)}/merge", json_data=merge_data)

    async def list_pull_request_comments(
        self,
        workspace: str,
        repo_slug: str,
        pr_id: int,
        params: Optional[PaginationParams] = None
    ) -> NormalizedPage:
        return await self._list(f"{self._pr(workspace, repo_slug, pr_id)}/comments", params)

    async def create_pull_request_comment(
        self,
        workspace: str,
        repo_slug: str,
        pr_id: int,
        content: str,
        file_path: Optional[str] = None,
        line: Optional[int] = None
    ) -> Dict[str, Any]:
        comment_data: Dict[str, Any] = {"content": {"raw": content}}
        if file_path and line:
            comment_data["inline"] = {"path": file_path, "to": line}
        return await self._request("POST", f"{self._pr(workspace, repo_slug, pr_id)}/comments", json_data=comment_data)

    async def get_pull_request_diff(self, workspace: str, repo_slug: str, pr_id: int) -> str:
        return await self._request_text(f"{self._pr(workspace, repo_slug, pr_id)}/diff")

    # === ISSUES ===

    def _issue(self, workspace: str, repo_slug: str, issue_id: Optional[int] = None) -> str:
        endpoint = f"{self._repo(workspace, repo_slug)}/issues"
        return endpoint if issue_id is None else f"{endpoint}/{issue_id}"

    async def list_issues(self, workspace: str, repo_slug: str, params: Optional[PaginationParams] = None) -> NormalizedPage:
        return await self._list(self._issue(workspace, repo_slug), params)

    async def get_issue(self, workspace: str, repo_slug: str, issue_id: int) -> Dict[str, Any]:
        return await self._request("GET", self._issue(workspace, repo_slug, issue_id))

    async def create_issue(self, workspace: str, repo_slug: str, issue_input: IssueInput) -> Dict[str, Any]:
        return await self._request("POST", self._issue(workspace, repo_slug), json_data=issue_input.to_payload())

    async def update_issue(
        self,
        workspace: str,
        repo_slug: str,
        issue_id: int,
        issue_input: IssueUpdateInput
    ) -> Dict[str, Any]:
        return await self._request("PUT", self._issue(workspace, repo_slug, issue_id), json_data=issue_input.to_payload())

    async def delete_issue(self, workspace: str, repo_slug: str, issue_id: int) -> None:
        await self._request("DELETE", self._issue(workspace, repo_slug, issue_id))

    async def list_issue_comments(
        self,
        workspace: str,
        repo_slug: str,
        issue_id: int,
        params: Optional[PaginationParams] = None
    ) -> NormalizedPage:
        return await self._list(f"{self._issue(workspace, repo_slug, issue_id)}/comments", params)

    async def create_issue_comment(self, workspace: str, repo_slug: str, issue_id: int, content: str) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"{self._issue(workspace, repo_slug, issue_id)}/comments",
            json_data={"content": {"raw": content}}
        )

    # === PIPELINES ===

    def _pipeline(self, workspace: str, repo_slug: str, pipeline_uuid: Optional[str] = None) -> str:
        endpoint = f"{self._repo(workspace, repo_slug)}/pipelines"
        return endpoint if pipeline_uuid is None else f"{endpoint}/{_segment(pipeline_uuid)}"

    async def list_pipelines(self, workspace: str, repo_slug: str, params: Optional[PaginationParams] = None) -> NormalizedPage:
        return await self._list(self._pipeline(workspace, repo_slug), params)

    async def get_pipeline(self, workspace: str, repo_slug: str, pipeline_uuid: str) -> Dict[str, Any]:
        return await self._request("GET", self._pipeline(workspace, repo_slug, pipeline_uuid))

    async def trigger_pipeline(self, workspace: str, repo_slug: str, target: PipelineTarget) -> Dict[str, Any]:
        return await self._request("POST", self._pipeline(workspace, repo_slug), json_data=target.to_payload())

    async def stop_pipeline(self, workspace: str, repo_slug: str, pipeline_uuid: str) -> None:
        await self._request("POST", f"{self._pipeline(workspace, repo_slug, pipeline_uuid)}/stopPipeline")

    async def list_pipeline_steps(
        self,
        workspace: str,
        repo_slug: str,
        pipeline_uuid: str,
        params: Optional[PaginationParams] = None
    ) -> NormalizedPage:
        return await self._list(f"{self._pipeline(workspace, repo_slug, pipeline_uuid)}/steps", params)

    async def get_pipeline_step_log(self, workspace: str, repo_slug: str, pipeline_uuid: str, step_uuid: str) -> str:
        return await self._request_text(f"{self._pipeline(workspace, repo_slug, pipeline_uuid)}/steps/{_segment(step_uuid)}/log")

    async def list_pipeline_variables(self, workspace: str, repo_slug: str, params: Optional[PaginationParams] = None) -> NormalizedPage:
        return await self._list(f"{self._repo(workspace, repo_slug)}/pipelines_config/variables", params)

    async def create_pipeline_variable(self, workspace: str, repo_slug: str, variable: PipelineVariableInput) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"{self._repo(workspace, repo_slug)}/pipelines_config/variables",
            json_data=variable.model_dump()
        )

    async def delete_pipeline_variable(self, workspace: str, repo_slug: str, variable_uuid: str) -> None:
        await self._request("DELETE", f"{self._repo(workspace, repo_slug)}/pipelines_config/variables/{_segment(variable_uuid)}")

    # === DEPLOYMENTS AND ENVIRONMENTS ===

    async def list_deployments(self, workspace: str, repo_slug: str, params: Optional[PaginationParams] = None) -> NormalizedPage:
        return await self._list(f"{self._repo(workspace, repo_slug)}/deployments", params)

    async def get_deployment(self, workspace: str, repo_slug: str, deployment_uuid: str) -> Dict[str, Any]:
        return await self._request("GET", f"{self._repo(workspace, repo_slug)}/deployments/{_segment(deployment_uuid)}")

    async def list_environments(self, workspace: str, repo_slug: str, params: Optional[PaginationParams] = None) -> NormalizedPage:
        return await self._list(f"{self._repo(workspace, repo_slug)}/environments", params)

    async def get_environment(self, workspace: str, repo_slug: str, environment_uuid: str) -> Dict[str, Any]:
        return await self._request("GET", f"{self._repo(workspace, repo_slug)}/environments/{_segment(environment_uuid)}")

    # === WEBHOOKS ===

    async def list_webhooks(self, workspace: str, repo_slug: str, params: Optional[PaginationParams] = None) -> NormalizedPage:
        return await self._list(f"{self._repo(workspace, repo_slug)}/hooks", params)

    async def get_webhook(self, workspace: str, repo_slug: str, webhook_uuid: str) -> Dict[str, Any]:
        return await self._request("GET", f"{self._repo(workspace, repo_slug)}/hooks/{_segment(webhook_uuid)}")

    async def create_webhook(self, workspace: str, repo_slug: str, webhook: WebhookInput) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"{self._repo(workspace, repo_slug)}/hooks",
            json_data=webhook.model_dump(exclude_none=True)
        )

    async def update_webhook(self, workspace: str, repo_slug: str, webhook_uuid: str, webhook: WebhookUpdateInput) -> Dict[str, Any]:
        return await self._request(
            "PUT",
            f"{self._repo(workspace, repo_slug)}/hooks/{_segment(webhook_uuid)}",
            json_data=webhook.model_dump(exclude_none=True)
        )

    async def delete_webhook(self, workspace: str, repo_slug: str, webhook_uuid: str) -> None:
        await self._request("DELETE", f"{self._repo(workspace, repo_slug)}/hooks/{_segment(webhook_uuid)}")

    # === BRANCH RESTRICTIONS ===

    async def list_branch_restrictions(self, workspace: str, repo_slug: str, params: Optional[PaginationParams] = None) -> NormalizedPage:
        return await self._list(f"{self._repo(workspace, repo_slug)}/branch-restrictions", params)

    async def get_branch_restriction(self, workspace: str, repo_slug: str, restriction_id: int) -> Dict[str, Any]:
        return await self._request("GET", f"{self._repo(workspace, repo_slug)}/branch-restrictions/{restriction_id}")

    async def create_branch_restriction(self, workspace: str, repo_slug: str, restriction: BranchRestrictionInput) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"{self._repo(workspace, repo_slug)}/branch-restrictions",
            json_data=restriction.to_payload()
        )

    async def update_branch_restriction(
        self,
        workspace: str,
        repo_slug: str,
        restriction_id: int,
        restriction: BranchRestrictionInput
    ) -> Dict[str, Any]:
        return await self._request(
            "PUT",
            f"{self._repo(workspace, repo_slug)}/branch-restrictions/{restriction_id}",
            json_data=restriction.to_payload()
        )

    async def delete_branch_restriction(self, workspace: str, repo_slug: str, restriction_id: int) -> None:
        await self._request("DELETE", f"{self._repo(workspace, repo_slug)}/branch-restrictions/{restriction_id}")

    # === DEPLOY KEYS ===

    async def list_deploy_keys(self, workspace: str, repo_slug: str, params: Optional[PaginationParams] = None) -> NormalizedPage:
        return await self._list(f"{self._repo(workspace, repo_slug)}/deploy-keys", params)

    async def get_deploy_key(self, workspace: str, repo_slug: str, key_id: int) -> Dict[str, Any]:
        return await self._request("GET", f"{self._repo(workspace, repo_slug)}/deploy-keys/{key_id}")

    async def create_deploy_key(self, workspace: str, repo_slug: str, deploy_key: DeployKeyInput) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"{self._repo(workspace, repo_slug)}/deploy-keys",
            json_data=deploy_key.model_dump()
        )

    async def delete_deploy_key(self, workspace: str, repo_slug: str, key_id: int) -> None:
        await self._request("DELETE", f"{self._repo(workspace, repo_slug)}/deploy-keys/{key_id}")

    # === DOWNLOADS AND SOURCE ===

    async def list_downloads(self, workspace: str, repo_slug: str, params: Optional[PaginationParams] = None) -> NormalizedPage:
        return await self._list(f"{self._repo(workspace, repo_slug)}/downloads", params)

    async def delete_download(self, workspace: str, repo_slug: str, filename: str) -> None:
        await self._request("DELETE", f"{self._repo(workspace, repo_slug)}/downloads/{_segment(filename)}")

    @staticmethod
    def _src_path(path: str, ref: Optional[str]) -> str:
        ref_path = f"/{_segment(ref)}" if ref else ""
        return f"{ref_path}/{quote(path.lstrip('/'))}"

    async def get_file_content(self, workspace: str, repo_slug: str, path: str, ref: Optional[str] = None) -> str:
        return await self._request_text(f"{self._repo(workspace, repo_slug)}/src{self._src_path(path, ref)}")

    async def list_directory(
        self,
        workspace: str,
        repo_slug: str,
        path: str = "",
        ref: Optional[str] = None,
        params: Optional[PaginationParams] = None
    ) -> NormalizedPage:
        return await self._list(f"{self._repo(workspace, repo_slug)}/src{self._src_path(path, ref)}", params)
