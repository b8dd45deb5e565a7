from typing import Optional, List, Dict, Any, Literal
from pydantic import BaseModel, ConfigDict, Field, computed_field

from servers.bitbucket_gateway.config import DEFAULT_PAGE_SIZE

OutputMode = Literal["structured", "tabular"]

# Base Models
class PaginationParams(BaseModel):
    """Pagination, filtering and sorting for a single list call."""
    model_config = ConfigDict(frozen=True)

    page_size: int = Field(default=DEFAULT_PAGE_SIZE, description="Number of items per page")
    page: Optional[int] = Field(default=None, ge=1, description="Page number (1-based)")
    query: Optional[str] = Field(default=None, description="Bitbucket query language filter")
    sort: Optional[str] = Field(default=None, description="Sort field, '-' prefix for descending")

class NormalizedPage(BaseModel):
    """Uniform list result. count and has_more are derived, never stored."""
    model_config = ConfigDict(frozen=True)

    items: List[Any] = Field(default_factory=list)
    total: Optional[int] = None
    next_cursor: Optional[str] = None

    @computed_field
    @property
    def count(self) -> int:
        return len(self.items)

    @computed_field
    @property
    def has_more(self) -> bool:
        return self.next_cursor is not None

class Credentials(BaseModel):
    """Per-tenant credentials taken from request headers or the environment."""
    model_config = ConfigDict(frozen=True)

    username: Optional[str] = None
    app_password: Optional[str] = Field(default=None, repr=False)
    access_token: Optional[str] = Field(default=None, repr=False)
    base_url: Optional[str] = None

    @property
    def auth_mode(self) -> Optional[str]:
        if self.access_token:
            return "bearer"
        if self.username and self.app_password:
            return "basic"
        return None

    def secrets(self) -> List[str]:
        return [value for value in (self.app_password, self.access_token) if value]

# Input Models
class RepositoryInput(BaseModel):
    description: Optional[str] = None
    is_private: Optional[bool] = True
    fork_policy: Optional[str] = None
    language: Optional[str] = None
    has_issues: Optional[bool] = False
    has_wiki: Optional[bool] = False
    project_key: Optional[str] = None
    mainbranch: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = self.model_dump(exclude_none=True, exclude={"project_key", "mainbranch"})
        payload["scm"] = "git"
        if self.project_key:
            payload["project"] = {"key": self.project_key}
        if self.mainbranch:
            payload["mainbranch"] = {"type": "branch", "name": self.mainbranch}
        return payload

class RepositoryUpdateInput(RepositoryInput):
    name: Optional[str] = None
    is_private: Optional[bool] = None
    has_issues: Optional[bool] = None
    has_wiki: Optional[bool] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload.pop("scm", None)
        return payload

class PullRequestInput(BaseModel):
    title: str
    source_branch: str
    destination_branch: Optional[str] = None
    description: Optional[str] = None
    close_source_branch: bool = False
    reviewers: Optional[List[str]] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "title": self.title,
            "source": {"branch": {"name": self.source_branch}},
            "close_source_branch": self.close_source_branch,
        }
        if self.destination_branch:
            payload["destination"] = {"branch": {"name": self.destination_branch}}
        if self.description is not None:
            payload["description"] = self.description
        if self.reviewers:
            payload["reviewers"] = [{"uuid": uuid} for uuid in self.reviewers]
        return payload

class PullRequestUpdateInput(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    destination_branch: Optional[str] = None
    reviewers: Optional[List[str]] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = self.model_dump(exclude_none=True, exclude={"destination_branch", "reviewers"})
        if self.destination_branch:
            payload["destination"] = {"branch": {"name": self.destination_branch}}
        if self.reviewers is not None:
            payload["reviewers"] = [{"uuid": uuid} for uuid in self.reviewers]
        return payload

class MergeInput(BaseModel):
    message: Optional[str] = None
    close_source_branch: Optional[bool] = None
    merge_strategy: Optional[Literal["merge_commit", "squash", "fast_forward"]] = None

class IssueInput(BaseModel):
    title: str
    content: Optional[str] = None
    kind: Optional[Literal["bug", "enhancement", "proposal", "task"]] = "bug"
    priority: Optional[Literal["trivial", "minor", "major", "critical", "blocker"]] = "major"
    assignee: Optional[str] = Field(None, description="Assignee account UUID")

    def to_payload(self) -> Dict[str, Any]:
        payload = self.model_dump(exclude_none=True, exclude={"content", "assignee"})
        if self.content is not None:
            payload["content"] = {"raw": self.content}
        if self.assignee:
            payload["assignee"] = {"uuid": self.assignee}
        return payload

class IssueUpdateInput(IssueInput):
    title: Optional[str] = None
    kind: Optional[Literal["bug", "enhancement", "proposal", "task"]] = None
    priority: Optional[Literal["trivial", "minor", "major", "critical", "blocker"]] = None
    state: Optional[Literal["new", "open", "resolved", "on hold", "invalid", "duplicate", "wontfix", "closed"]] = None

class CommitStatusInput(BaseModel):
    state: Literal["SUCCESSFUL", "FAILED", "INPROGRESS", "STOPPED"]
    key: str
    url: str
    name: Optional[str] = None
    description: Optional[str] = None

class PipelineTarget(BaseModel):
    target_type: Literal["branch", "tag", "commit"]
    target_name: str
    selector_type: Optional[Literal["custom", "branches", "tags", "pull-requests", "default"]] = None
    selector_pattern: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        if self.target_type == "commit":
            return {"target": {"type": "pipeline_commit_target", "commit": {"hash": self.target_name}}}
        target: Dict[str, Any] = {
            "type": "pipeline_ref_target",
            "ref_type": self.target_type,
            "ref_name": self.target_name,
        }
        if self.selector_type:
            selector = {"type": self.selector_type}
            if self.selector_pattern:
                selector["pattern"] = self.selector_pattern
            target["selector"] = selector
        return {"target": target}

class PipelineVariableInput(BaseModel):
    key: str
    value: str
    secured: bool = False

class WebhookInput(BaseModel):
    url: str
    description: Optional[str] = None
    events: List[str] = Field(..., min_length=1)
    active: bool = True

class WebhookUpdateInput(BaseModel):
    url: Optional[str] = None
    description: Optional[str] = None
    events: Optional[List[str]] = None
    active: Optional[bool] = None

class BranchRestrictionInput(BaseModel):
    kind: Optional[str] = Field(None, description="Restriction kind (push, force, delete, restrict_merges, require_approvals_to_merge, ...)")
    pattern: Optional[str] = Field(None, description="Branch glob pattern")
    branch_match_kind: Optional[Literal["glob", "branching_model"]] = None
    branch_type: Optional[str] = None
    value: Optional[int] = None
    users: Optional[List[str]] = Field(None, description="User UUIDs exempt from the restriction")
    groups: Optional[List[str]] = Field(None, description="Group slugs exempt from the restriction")

    def to_payload(self) -> Dict[str, Any]:
        payload = self.model_dump(exclude_none=True, exclude={"users", "groups"})
        if self.pattern and "branch_match_kind" not in payload:
            payload["branch_match_kind"] = "glob"
        if self.users is not None:
            payload["users"] = [{"uuid": uuid} for uuid in self.users]
        if self.groups is not None:
            payload["groups"] = [{"slug": slug} for slug in self.groups]
        return payload

class DeployKeyInput(BaseModel):
    key: str = Field(..., description="The SSH public key content")
    label: str = Field(..., description="A label for the deploy key")
