"""Context bundle assembled for a single analysis call.

A ContextBundle is built fresh per call, owned by the pipeline invocation
that created it, and discarded afterwards. Every text field has a fixed
character cap applied when it is serialized into a prompt; truncation is
silent and deterministic.

Source:
- src/repopilot/github/models.py (Issue, PullRequest, TreeEntry)
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from src.repopilot.github.models import Issue, PullRequest, RepositoryRef, TreeEntry


# Character caps per context field
ISSUE_STRUCTURE_LIMIT = 30_000
DIFF_LIMIT = 30_000
FILE_CONTEXT_LIMIT = 80_000
LOGS_LIMIT = 50_000
CI_STRUCTURE_LIMIT = 20_000
DOCS_CONTEXT_LIMIT = 50_000

NO_DIFF_PLACEHOLDER = "Diff content could not be loaded or is too large."
NO_FILES_PLACEHOLDER = "No file content available."
NO_README_PLACEHOLDER = "No README found."


def truncate(text: Optional[str], limit: int) -> str:
    """Cut ``text`` to at most ``limit`` characters."""
    if not text:
        return ""
    return text[:limit]


def render_structure(entries: List[TreeEntry]) -> str:
    """Render a tree listing as ``[DIR] path`` / ``[FILE] path`` lines.

    Directories are recognised solely by ``type == "tree"``.
    """
    return "\n".join(
        f"{'[DIR]' if entry.is_directory else '[FILE]'} {entry.path}"
        for entry in entries
    )


class FileContext(BaseModel):
    """Content of one changed file, or an inline error string."""

    file_path: str
    content: str


class ContextBundle(BaseModel):
    """Repository state gathered for one analysis.

    Only the subset relevant to the task is populated.
    """

    repository: RepositoryRef
    issue: Optional[Issue] = None
    pull_request: Optional[PullRequest] = None
    diff: Optional[str] = None
    files: List[FileContext] = Field(default_factory=list)
    logs: Optional[str] = None
    structure: Optional[str] = None
    readme: Optional[str] = None
    feedback: Optional[str] = None

    def structure_text(self, limit: int) -> str:
        return truncate(self.structure, limit)

    def diff_text(self) -> str:
        return truncate(self.diff or NO_DIFF_PLACEHOLDER, DIFF_LIMIT)

    def file_context_text(self) -> str:
        """Concatenate changed files, then cap the whole block."""
        if not self.files:
            return NO_FILES_PLACEHOLDER
        block = "\n".join(
            f"\n--- File: {f.file_path} ---\n{f.content}\n---\n" for f in self.files
        )
        return truncate(block, FILE_CONTEXT_LIMIT)

    def logs_text(self) -> str:
        return truncate(self.logs, LOGS_LIMIT)

    def readme_text(self) -> str:
        return truncate(self.readme or NO_README_PLACEHOLDER, DOCS_CONTEXT_LIMIT)
