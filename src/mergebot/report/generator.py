"""Blame reports for the files a merge left in conflict."""

from __future__ import annotations

from pathlib import Path, PurePosixPath

from mergebot.core.log import logger
from mergebot.core.models import ConflictRecord
from mergebot.git.repository import Repository, is_metadata_file
from mergebot.report import archive, blame

REPORT_DIR = "blame"
DEFAULT_ARCHIVE_NAME = "blame.zip"


class ReportGenerator:
    """Write one blame file per eligible conflict and zip them.

    A conflict is eligible when both sides carry content
    (BOTH_ADDED or BOTH_MODIFIED), it is not a .gitattributes or
    .gitignore file and its extension, compared case-insensitively,
    is not excluded.
    """

    def __init__(
        self,
        repository: Repository,
        scratch_dir: Path,
        excludes: list[str] | None = None,
        enabled: bool = True,
        archive_name: str = DEFAULT_ARCHIVE_NAME,
        date_format: str = blame.DEFAULT_DATE_FORMAT,
    ):
        self.repository = repository
        self.scratch_dir = Path(scratch_dir)
        self.excludes = [
            e.strip().lstrip(".").lower() for e in excludes or [] if e.strip()
        ]
        self.enabled = enabled
        self.archive_name = archive_name
        self.date_format = date_format

    @property
    def report_dir(self) -> Path:
        return self.scratch_dir / REPORT_DIR

    @property
    def archive_path(self) -> Path:
        return self.scratch_dir / self.archive_name

    def is_excluded(self, path: str) -> bool:
        path = path.lower()
        return any(path.endswith(f".{ext}") for ext in self.excludes)

    def eligible(self, conflicts: ConflictRecord) -> list[str]:
        return [
            path
            for path, state in conflicts.items()
            if state.is_mergeable
            and not is_metadata_file(path)
            and not self.is_excluded(path)
        ]

    def report(self, conflicts: ConflictRecord) -> Path | None:
        """Blame eligible conflicting files at HEAD and pack the reports.

        Running it twice for the same conflicts produces the same
        report files and archive.

        Returns:
            Path to the archive, or None when nothing was packed
        """
        if not self.enabled:
            logger.warning("Blame report skipped: disabled in configuration")
            return None
        if not conflicts:
            return None

        blamed = []
        with logger.span("Blaming conflicting files", count=len(conflicts)):
            for path in self.eligible(conflicts):
                lines = blame.parse_porcelain(self.repository.blame(path))
                target = self.report_dir.joinpath(*PurePosixPath(path).parts)
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(
                    blame.render(lines, self.date_format), encoding="utf-8"
                )
                blamed.append(path)

        if self.archive_path.exists():
            self.archive_path.unlink()
        if not archive.pack(self.report_dir, self.archive_path):
            logger.info("No conflicting file was eligible for blame")
            return None

        logger.info(
            "Blamed conflicting files",
            files="\n".join(blamed),
            archive=str(self.archive_path),
        )
        return self.archive_path
