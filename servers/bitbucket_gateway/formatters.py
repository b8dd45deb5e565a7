"""
Response formatting for Bitbucket tools.

Every tool answers with a ``CallToolResult`` holding one text block. In
``structured`` mode the text is pretty-printed JSON; in ``tabular`` mode it
is a markdown summary with a fixed column layout per entity kind. Rendering
never raises: shapes it does not recognize are coerced to strings.
"""
import json
import re
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from mcp.types import CallToolResult, TextContent
from pydantic import BaseModel

from servers.bitbucket_gateway.config import CHARACTER_LIMIT
from servers.bitbucket_gateway.models import NormalizedPage

MISSING = "-"
EMPTY_PLACEHOLDER = "_No items found._"
HASH_LENGTH = 7
SUMMARY_LENGTH = 50
GENERIC_COLUMN_COUNT = 5

KIND_ALIASES = {
    "workspace": "workspaces",
    "repository": "repositories",
    "repo": "repositories",
    "branch": "branches",
    "tag": "tags",
    "commit": "commits",
    "pullrequest": "pullrequests",
    "pull_request": "pullrequests",
    "pull_requests": "pullrequests",
    "pull-request": "pullrequests",
    "pull-requests": "pullrequests",
    "issue": "issues",
    "pipeline": "pipelines",
    "webhook": "webhooks",
    "comment": "comments",
}

KIND_TITLES = {
    "workspaces": ("Workspaces", "Workspace"),
    "repositories": ("Repositories", "Repository"),
    "branches": ("Branches", "Branch"),
    "tags": ("Tags", "Tag"),
    "commits": ("Commits", "Commit"),
    "pullrequests": ("Pull Requests", "Pull Request"),
    "issues": ("Issues", "Issue"),
    "pipelines": ("Pipelines", "Pipeline"),
    "webhooks": ("Webhooks", "Webhook"),
    "comments": ("Comments", "Comment"),
}


# Cell rendering

def _get(item: Any, *path: str) -> Any:
    """Walk nested mappings, returning None as soon as a step is missing."""
    for key in path:
        if not isinstance(item, Mapping):
            return None
        item = item.get(key)
    return item


def _cell(value: Any) -> str:
    if value is None or value == "":
        return MISSING
    if isinstance(value, (dict, list)):
        text = json.dumps(value, default=str)
    else:
        text = str(value)
    return text.replace("\r", " ").replace("\n", " ").replace("|", "\\|")


def _date(value: Any) -> str:
    if not value:
        return MISSING
    try:
        return datetime.fromisoformat(str(value)).strftime("%x")
    except ValueError:
        return _cell(value)


def _short_hash(value: Any) -> str:
    if not value:
        return MISSING
    return _cell(str(value)[:HASH_LENGTH])


def _summary(value: Any) -> str:
    if not value:
        return MISSING
    return _cell(str(value).split("\n")[0][:SUMMARY_LENGTH])


def _user(value: Any) -> str:
    if isinstance(value, str):
        return _cell(value)
    if not isinstance(value, Mapping):
        return MISSING
    for key in ("display_name", "username", "nickname"):
        if value.get(key):
            return _cell(value[key])
    nested = value.get("user")
    if isinstance(nested, Mapping):
        rendered = _user(nested)
        if rendered != MISSING:
            return rendered
    return _cell(value.get("raw"))


def _yes_no(value: Any) -> str:
    if value is None:
        return MISSING
    return "Yes" if value else "No"


def _duration(seconds: Any) -> str:
    if isinstance(seconds, bool) or not isinstance(seconds, (int, float)) or not seconds:
        return MISSING
    seconds = int(seconds)
    return f"{seconds // 60}m {seconds % 60}s"


def _ref(value: Any, prefix: str = "") -> str:
    if value is None or value == "":
        return MISSING
    return _cell(f"{prefix}{value}")


def _branches(item: Any) -> str:
    source = _get(item, "source", "branch", "name") or MISSING
    destination = _get(item, "destination", "branch", "name") or MISSING
    return _cell(f"{source} -> {destination}")


def _events(value: Any) -> str:
    if not isinstance(value, list) or not value:
        return MISSING
    return _cell(", ".join(str(event) for event in value))


Column = Tuple[str, Callable[[Any], str]]

COLUMN_LAYOUTS: Dict[str, List[Column]] = {
    "workspaces": [
        ("Slug", lambda item: _cell(_get(item, "slug"))),
        ("Name", lambda item: _cell(_get(item, "name"))),
        ("UUID", lambda item: _cell(_get(item, "uuid"))),
    ],
    "repositories": [
        ("Name", lambda item: _cell(_get(item, "name"))),
        ("Full Name", lambda item: _cell(_get(item, "full_name"))),
        ("Private", lambda item: _yes_no(_get(item, "is_private"))),
        ("Language", lambda item: _cell(_get(item, "language"))),
        ("Updated", lambda item: _date(_get(item, "updated_on"))),
    ],
    "branches": [
        ("Name", lambda item: _cell(_get(item, "name"))),
        ("Target Commit", lambda item: _short_hash(_get(item, "target", "hash"))),
    ],
    "commits": [
        ("Hash", lambda item: _short_hash(_get(item, "hash"))),
        ("Message", lambda item: _summary(_get(item, "message"))),
        ("Author", lambda item: _user(_get(item, "author"))),
        ("Date", lambda item: _date(_get(item, "date"))),
    ],
    "pullrequests": [
        ("ID", lambda item: _ref(_get(item, "id"), "#")),
        ("Title", lambda item: _cell(_get(item, "title"))),
        ("State", lambda item: _cell(_get(item, "state"))),
        ("Author", lambda item: _user(_get(item, "author"))),
        ("Source->Dest", _branches),
    ],
    "issues": [
        ("ID", lambda item: _ref(_get(item, "id"), "#")),
        ("Title", lambda item: _cell(_get(item, "title"))),
        ("State", lambda item: _cell(_get(item, "state"))),
        ("Priority", lambda item: _cell(_get(item, "priority"))),
        ("Kind", lambda item: _cell(_get(item, "kind"))),
        ("Assignee", lambda item: _user(_get(item, "assignee"))),
    ],
    "pipelines": [
        ("Build #", lambda item: _ref(_get(item, "build_number"), "#")),
        ("State", lambda item: _cell(_get(item, "state", "name"))),
        ("Target", lambda item: _cell(_get(item, "target", "ref_name"))),
        ("Duration", lambda item: _duration(_get(item, "duration_in_seconds"))),
        ("Created", lambda item: _date(_get(item, "created_on"))),
    ],
    "webhooks": [
        ("UUID", lambda item: _cell(_get(item, "uuid"))),
        ("URL", lambda item: _cell(_get(item, "url"))),
        ("Active", lambda item: _yes_no(_get(item, "active"))),
        ("Events", lambda item: _events(_get(item, "events"))),
    ],
    "comments": [
        ("ID", lambda item: _cell(_get(item, "id"))),
        ("Author", lambda item: _user(_get(item, "user"))),
        ("Content", lambda item: _summary(_get(item, "content", "raw"))),
        ("Created", lambda item: _date(_get(item, "created_on"))),
    ],
}
COLUMN_LAYOUTS["tags"] = COLUMN_LAYOUTS["branches"]


# Markdown rendering

def canonical_kind(entity_kind: str) -> str:
    kind = (entity_kind or "").strip().lower()
    return KIND_ALIASES.get(kind, kind)


def kind_title(entity_kind: str, singular: bool = False) -> str:
    kind = canonical_kind(entity_kind)
    if kind in KIND_TITLES:
        return KIND_TITLES[kind][1 if singular else 0]
    words = re.sub(r"[_\-]+", " ", kind).strip()
    if singular and words.endswith("s"):
        words = words[:-1]
    return words[:1].upper() + words[1:] if words else "Result"


def format_key(key: str) -> str:
    """snake_case / camelCase to a display label."""
    label = re.sub(r"([A-Z])", r" \1", str(key).replace("_", " ")).strip()
    return label[:1].upper() + label[1:]


def _table(headers: List[str], rows: List[List[str]]) -> str:
    lines = [
        f"| {' | '.join(headers)} |",
        f"|{'|'.join('---' for _ in headers)}|",
    ]
    for row in rows:
        lines.append(f"| {' | '.join(row)} |")
    return "\n".join(lines)


def _layout_table(items: List[Any], layout: List[Column]) -> str:
    headers = [header for header, _ in layout]
    rows = [[render(item) for _, render in layout] for item in items]
    return _table(headers, rows)


def _generic_table(items: List[Any]) -> str:
    if not items:
        return EMPTY_PLACEHOLDER

    first = items[0]
    if not isinstance(first, Mapping):
        return _table(["Value"], [[_cell(item)] for item in items])

    keys = list(first.keys())[:GENERIC_COLUMN_COUNT]
    rows = [[_cell(_get(item, key)) for key in keys] for item in items]
    return _table([_cell(key) for key in keys], rows)


def _page_fields(data: Any) -> Optional[Dict[str, Any]]:
    if isinstance(data, NormalizedPage):
        return {"items": data.items, "count": data.count, "total": data.total, "has_more": data.has_more}
    if isinstance(data, Mapping) and isinstance(data.get("items"), list):
        items = data["items"]
        return {
            "items": items,
            "count": data.get("count", len(items)),
            "total": data.get("total"),
            "has_more": bool(data.get("has_more") or data.get("hasMore")),
        }
    return None


def _format_page(page: Dict[str, Any], entity_kind: str) -> str:
    lines = [f"## {kind_title(entity_kind)}", ""]

    if page["total"] is not None:
        lines.append(f"**Total:** {page['total']} | **Showing:** {page['count']}")
    else:
        lines.append(f"**Showing:** {page['count']}")
    if page["has_more"]:
        lines.append("**More available:** Yes")
    lines.append("")

    items = page["items"]
    if not items:
        lines.append(EMPTY_PLACEHOLDER)
        return "\n".join(lines)

    layout = COLUMN_LAYOUTS.get(canonical_kind(entity_kind))
    lines.append(_layout_table(items, layout) if layout else _generic_table(items))
    return "\n".join(lines)


def _format_object(data: Mapping, entity_kind: str) -> str:
    lines = [f"## {kind_title(entity_kind, singular=True)}", ""]

    for key, value in data.items():
        if value is None:
            continue
        if isinstance(value, (dict, list)):
            lines.append(f"**{format_key(key)}:**")
            lines.append("```json")
            lines.append(json.dumps(value, indent=2, default=str))
            lines.append("```")
        else:
            lines.append(f"**{format_key(key)}:** {value}")

    return "\n".join(lines)


def format_markdown(data: Any, entity_kind: str) -> str:
    page = _page_fields(data)
    if page is not None:
        return _format_page(page, entity_kind)

    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json", exclude_none=True)

    if isinstance(data, list):
        return _generic_table(data)

    if isinstance(data, Mapping):
        return _format_object(data, entity_kind)

    return MISSING if data is None else str(data)


# Tool responses

def _json_default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", exclude_none=True)
    return str(value)


def to_json(data: Any) -> str:
    return json.dumps(data, indent=2, default=_json_default)


def truncate(text: str, limit: int = CHARACTER_LIMIT) -> str:
    if limit <= 0 or len(text) <= limit:
        return text
    return f"{text[:limit]}\n\n... [truncated {len(text) - limit} characters]"


def text_response(text: str) -> CallToolResult:
    return CallToolResult(content=[TextContent(type="text", text=text)])


def format_response(data: Any, output_mode: str = "structured", entity_kind: str = "") -> CallToolResult:
    """
    Render a tool result.

    Args:
        data: A NormalizedPage, a single entity, a list or any JSON-like value
        output_mode: "structured" for JSON, "tabular" for markdown
        entity_kind: Picks the markdown column layout (e.g. "pullrequests")

    Returns:
        A CallToolResult with a single text block.
    """
    if output_mode == "tabular":
        try:
            text = format_markdown(data, entity_kind)
        except Exception:  # tabular rendering never fails the call
            text = str(data)
        return text_response(truncate(text))
    return text_response(to_json(data))


def format_success(message: str, result: Any = None, key: Optional[str] = None) -> CallToolResult:
    """Envelope for mutations: {"success": true, "message": ..., <key>: result}."""
    payload: Dict[str, Any] = {"success": True, "message": message}
    if key and result is not None:
        payload[key] = result
    return text_response(to_json(payload))


def format_text(text: Any) -> CallToolResult:
    """Raw text endpoints (diffs, logs, file contents)."""
    if text is None:
        text = ""
    elif not isinstance(text, str):
        text = to_json(text)
    return text_response(truncate(text))
