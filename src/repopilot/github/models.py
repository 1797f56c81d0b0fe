"""GitHub domain models parsed from REST API responses.

Each model exposes a ``from_github_response`` factory that picks the
fields RepoPilot needs out of the (much larger) GitHub payload. Raw JSON
dictionaries never travel past the client boundary.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class RepositoryRef(BaseModel):
    """Identifies the target repository for one operation.

    Attributes:
        owner: Repository owner (user or organization login).
        name: Repository name without owner prefix.
        default_branch: Branch fixes are based on and merged into.
    """

    owner: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    default_branch: str = Field(default="main", min_length=1)
    html_url: Optional[str] = None
    description: Optional[str] = None

    @property
    def full_name(self) -> str:
        """Repository path in format "{owner}/{name}"."""
        return f"{self.owner}/{self.name}"

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "RepositoryRef":
        return cls(
            owner=data["owner"]["login"],
            name=data["name"],
            default_branch=data.get("default_branch") or "main",
            html_url=data.get("html_url"),
            description=data.get("description"),
        )


class Issue(BaseModel):
    """An open or closed GitHub issue (never a pull request)."""

    number: int = Field(..., gt=0)
    title: str
    body: str = ""
    state: str = "open"
    author: str
    labels: List[str] = Field(default_factory=list)
    html_url: Optional[str] = None

    def has_label(self, label_name: str) -> bool:
        """Check if the issue carries a label (case-sensitive)."""
        return label_name in self.labels

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "Issue":
        return cls(
            number=data["number"],
            title=data.get("title") or "",
            body=data.get("body") or "",
            state=data.get("state") or "open",
            author=(data.get("user") or {}).get("login", ""),
            labels=[label["name"] for label in data.get("labels", []) if label.get("name")],
            html_url=data.get("html_url"),
        )


class IssueComment(BaseModel):
    """A comment on an issue."""

    id: int
    author: str
    body: str = ""
    created_at: Optional[str] = None

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "IssueComment":
        return cls(
            id=data["id"],
            author=(data.get("user") or {}).get("login", ""),
            body=data.get("body") or "",
            created_at=data.get("created_at"),
        )


class PullRequest(BaseModel):
    """Pull request metadata used as review context."""

    number: int = Field(..., gt=0)
    title: str
    body: str = ""
    state: str = "open"
    author: str = ""
    html_url: Optional[str] = None
    diff_url: Optional[str] = None
    head_ref: str
    head_sha: Optional[str] = None
    base_ref: str

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "PullRequest":
        head = data.get("head") or {}
        base = data.get("base") or {}
        return cls(
            number=data["number"],
            title=data.get("title") or "",
            body=data.get("body") or "",
            state=data.get("state") or "open",
            author=(data.get("user") or {}).get("login", ""),
            html_url=data.get("html_url"),
            diff_url=data.get("diff_url"),
            head_ref=head.get("ref", ""),
            head_sha=head.get("sha"),
            base_ref=base.get("ref", ""),
        )


class CreatedPullRequest(BaseModel):
    """Result of opening a pull request."""

    number: int = Field(..., gt=0)
    html_url: str

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "CreatedPullRequest":
        return cls(number=data["number"], html_url=data["html_url"])


class WorkflowRun(BaseModel):
    """A GitHub Actions workflow run."""

    id: int
    name: Optional[str] = None
    head_branch: Optional[str] = None
    head_sha: Optional[str] = None
    status: Optional[str] = None
    conclusion: Optional[str] = None
    run_number: Optional[int] = None
    event: Optional[str] = None
    html_url: Optional[str] = None

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "WorkflowRun":
        return cls(
            id=data["id"],
            name=data.get("name"),
            head_branch=data.get("head_branch"),
            head_sha=data.get("head_sha"),
            status=data.get("status"),
            conclusion=data.get("conclusion"),
            run_number=data.get("run_number"),
            event=data.get("event"),
            html_url=data.get("html_url"),
        )


class WorkflowJob(BaseModel):
    """A single job within a workflow run."""

    id: int
    name: Optional[str] = None
    status: Optional[str] = None
    conclusion: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.conclusion == "failure"

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "WorkflowJob":
        return cls(
            id=data["id"],
            name=data.get("name"),
            status=data.get("status"),
            conclusion=data.get("conclusion"),
        )


class FileContent(BaseModel):
    """Decoded file content plus the blob sha it was read from.

    An absent file is represented by empty content and an empty sha.
    """

    content: str = ""
    sha: str = ""

    @property
    def exists(self) -> bool:
        return bool(self.sha)


class TreeEntry(BaseModel):
    """One entry of a recursive tree listing.

    ``type`` is the only discriminator between directories (``tree``) and
    files (``blob``); ``path`` is never inspected for that purpose.
    """

    path: str
    type: str
    sha: str

    @property
    def is_directory(self) -> bool:
        return self.type == "tree"


class GitObject(BaseModel):
    """A Git Data API object reference (blob, tree or commit)."""

    sha: str
    url: Optional[str] = None

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "GitObject":
        return cls(sha=data["sha"], url=data.get("url"))


class TreeItem(BaseModel):
    """An entry submitted when creating a tree on top of a base tree."""

    path: str = Field(..., min_length=1)
    mode: str = "100644"
    type: str = "blob"
    sha: str

    def to_github_payload(self) -> Dict[str, str]:
        return {"path": self.path, "mode": self.mode, "type": self.type, "sha": self.sha}
