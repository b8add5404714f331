"""GitHub pull and conflict resolution schemas."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field, model_validator

from locsync.services.merge_service import ConflictStrategy


class Resolution(StrEnum):
    """Human decision for one pending conflict."""

    ACCEPT_REMOTE = "accept_remote"
    ACCEPT_LOCAL = "accept_local"
    EDIT = "edit"
    SKIP = "skip"

    @classmethod
    def _missing_(cls, value: object) -> Resolution | None:
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower().replace("-", "_")
        for member in cls:
            if member.value == normalized:
                return member
        aliases = {"github": cls.ACCEPT_REMOTE, "cloud": cls.ACCEPT_LOCAL}
        return aliases.get(normalized)


class ConflictItem(BaseModel):
    """A pending conflict or needs-review item."""

    key: str
    language_code: str
    plural_form: str = ""
    conflict_type: str
    remote_value: str | None = None
    local_value: str | None = None
    local_modified_at: str | None = None
    remote_commit_sha: str | None = None


class ConflictSummary(BaseModel):
    """Pending conflicts of a project with totals per type."""

    total_conflicts: int = Field(default=0, ge=0)
    both_modified_count: int = Field(default=0, ge=0)
    deleted_in_github_count: int = Field(default=0, ge=0)
    deleted_in_cloud_count: int = Field(default=0, ge=0)
    needs_review_count: int = Field(default=0, ge=0)
    conflicts: list[ConflictItem] = Field(default_factory=list)


class FileParseFailure(BaseModel):
    """A remote file skipped because it could not be parsed."""

    file_path: str
    message: str


class PullResult(BaseModel):
    """Outcome of a pull or a pull preview."""

    preview: bool = False
    strategy: ConflictStrategy = ConflictStrategy.PROMPT
    entries_applied: int = 0
    entries_added: int = 0
    entries_deleted: int = 0
    entries_unchanged: int = 0
    entries_needs_review: int = 0
    conflicts: list[ConflictItem] = Field(default_factory=list)
    commit_sha: str | None = None
    processed_files: list[str] = Field(default_factory=list)
    failed_files: list[FileParseFailure] = Field(default_factory=list)


class PullRequest(BaseModel):
    """Request to pull from GitHub."""

    strategy: ConflictStrategy = ConflictStrategy.PROMPT


class ConflictResolution(BaseModel):
    """Resolution for one pending conflict."""

    key: str = Field(min_length=1)
    language_code: str = Field(min_length=1)
    plural_form: str = ""
    resolution: Resolution
    edited_value: str | None = None

    @model_validator(mode="after")
    def edit_requires_value(self) -> ConflictResolution:
        """An edit resolution must carry the edited value."""
        if self.resolution is Resolution.EDIT and self.edited_value is None:
            raise ValueError("edited_value is required for the 'edit' resolution")
        return self


class ResolveConflictsRequest(BaseModel):
    """Request to resolve pending conflicts."""

    resolutions: list[ConflictResolution] = Field(min_length=1)


class ApplyResult(BaseModel):
    """Outcome of a conflict resolution batch."""

    applied: int = 0
    deleted: int = 0
    skipped: int = 0
    stale: list[str] = Field(
        default_factory=list,
        description="Resolutions that matched no pending conflict (superseded by a newer pull)",
    )


class SyncStatus(BaseModel):
    """GitHub connection and pull state of a project."""

    connected: bool
    repository: str | None = None
    branch: str | None = None
    base_path: str | None = None
    format: str
    last_pull_at: str | None = None
    last_pull_commit: str | None = None
    tracked_entries: int = Field(default=0, ge=0)
    pending_conflicts: int = Field(default=0, ge=0)
    status: str = Field(description="not_connected, never_pulled, conflicts or synced")
