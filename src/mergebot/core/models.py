"""Value types shared by the resolver, merge executor and reports."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, RootModel, field_validator


class Namespace(str, Enum):
    """Revision namespace tag in a merge-source expression."""

    EXTERNAL = "svn"
    NATIVE = "git"


class StageState(str, Enum):
    """Why a path could not be merged automatically."""

    BOTH_DELETED = "BOTH_DELETED"
    ADDED_BY_US = "ADDED_BY_US"
    DELETED_BY_THEM = "DELETED_BY_THEM"
    ADDED_BY_THEM = "ADDED_BY_THEM"
    DELETED_BY_US = "DELETED_BY_US"
    BOTH_ADDED = "BOTH_ADDED"
    BOTH_MODIFIED = "BOTH_MODIFIED"

    @classmethod
    def from_porcelain(cls, code: str) -> StageState | None:
        """Map a two-letter `git status --porcelain` code.

        Returns None for codes that are not unmerged states.
        """
        return _PORCELAIN_CODES.get(code)

    @property
    def is_mergeable(self) -> bool:
        """Both sides carry content that can be line-attributed."""
        return self in (StageState.BOTH_ADDED, StageState.BOTH_MODIFIED)


_PORCELAIN_CODES = {
    "DD": StageState.BOTH_DELETED,
    "AU": StageState.ADDED_BY_US,
    "UD": StageState.DELETED_BY_THEM,
    "UA": StageState.ADDED_BY_THEM,
    "DU": StageState.DELETED_BY_US,
    "AA": StageState.BOTH_ADDED,
    "UU": StageState.BOTH_MODIFIED,
}


class RevisionExpression(BaseModel):
    """Parsed merge-source expression.

    namespace and ref are both None for a bare branch name.
    """

    model_config = ConfigDict(frozen=True)

    branch: str
    namespace: Namespace | None = None
    ref: str | None = None


class ResolvedMergeSource(BaseModel):
    """Concrete merge source computed once per run."""

    model_config = ConfigDict(frozen=True)

    branch: str = Field(description="Branch the source belongs to")
    commit_id: str | None = Field(
        default=None,
        description="Fixed commit to merge; None merges the branch tip",
    )
    external_revision: str = Field(
        description="External revision (r<digits>) for messages and reports"
    )

    @property
    def target(self) -> str:
        """Revision handed to the merge engine."""
        return self.commit_id or self.branch


class ConflictRecord(RootModel[dict[str, StageState]]):
    """Conflicting paths and their stage states, ordered by path."""

    model_config = ConfigDict(frozen=True)

    root: dict[str, StageState] = Field(default_factory=dict)

    @field_validator("root")
    @classmethod
    def _order_by_path(cls, value: dict[str, StageState]):
        return dict(sorted(value.items()))

    def __iter__(self):
        return iter(self.root)

    def __len__(self) -> int:
        return len(self.root)

    def __contains__(self, path) -> bool:
        return path in self.root

    def __getitem__(self, path: str) -> StageState:
        return self.root[path]

    def items(self):
        return self.root.items()


class MergeStatus(str, Enum):
    SUCCESS = "success"
    CONFLICTING = "conflicting"
    FAILED = "failed"


class MergeOutcome(BaseModel):
    """Terminal result of one merge attempt."""

    model_config = ConfigDict(frozen=True)

    status: MergeStatus
    conflicts: ConflictRecord = Field(default_factory=ConflictRecord)
    commit: str | None = None
    reason: str | None = None

    @classmethod
    def success(cls, commit: str) -> MergeOutcome:
        return cls(status=MergeStatus.SUCCESS, commit=commit)

    @classmethod
    def conflicting(
        cls, conflicts: ConflictRecord, commit: str
    ) -> MergeOutcome:
        return cls(
            status=MergeStatus.CONFLICTING,
            conflicts=conflicts,
            commit=commit,
        )

    @classmethod
    def failed(cls, reason: str) -> MergeOutcome:
        return cls(status=MergeStatus.FAILED, reason=reason)


@dataclass
class BlameLine:
    """Attribution of one line of a file's current content."""

    source_commit: str
    source_author_name: str
    source_author_timestamp: datetime
    source_line_number: int
    current_line_index: int
    content: str


@dataclass
class FetchUpdate:
    """One ref updated by a fetch."""

    flag: str
    old: str
    new: str
    ref: str

    @property
    def summary(self) -> str:
        return (
            f"{'[' + self.flag + ']':<20} "
            f"{self.old[:7]}..{self.new[:7]} {self.ref:>25}"
        )
