"""Run git merge as a supervised subprocess and commit the result.

Every merge attempt that does not fail ends in exactly one new
commit on the destination branch. A conflicting merge is committed
with its conflict markers and a conflict table in the message so the
conflict can be resolved by a human later.
"""

from __future__ import annotations

import re

from mergebot.core.errors import ConsistencyError
from mergebot.core.log import logger
from mergebot.core.models import (
    ConflictRecord,
    MergeOutcome,
    ResolvedMergeSource,
)
from mergebot.git.repository import Repository

EXIT_SUCCESS = 0
EXIT_CONFLICTING = 1

CHECKOUT_FAILED = "failed to checkout branch"

PLACEHOLDER_PATTERN = re.compile(r"%(from|to|rev)")


def render_commit_message(
    template: str, source: ResolvedMergeSource, destination: str
) -> str:
    """Substitute %from, %to and %rev in a commit message template.

    Substitution is literal and single-pass: values are inserted as
    they are and never expanded again.
    """
    values = {
        "from": source.branch,
        "to": destination,
        "rev": source.external_revision,
    }
    return PLACEHOLDER_PATTERN.sub(lambda m: values[m.group(1)], template)


def render_conflict_table(conflicts: ConflictRecord) -> str:
    return "\n".join(
        f"{state.value:<20}{path}" for path, state in conflicts.items()
    )


class MergeExecutor:
    """Merge a resolved source into a destination branch."""

    def __init__(self, repository: Repository):
        self.repository = repository

    def merge(
        self,
        source: ResolvedMergeSource,
        destination: str,
        template: str,
    ) -> MergeOutcome:
        """Merge source into destination and commit the result.

        Args:
            source: Resolved merge source
            destination: Branch receiving the merge
            template: Commit message template (%from, %to, %rev)

        Returns:
            MergeOutcome: success or conflicting with the new commit,
            or failed with no new commit

        Raises:
            ConsistencyError: If the working tree still has changes
                after the merge commit
        """
        repository = self.repository

        if not repository.checkout(destination):
            return MergeOutcome.failed(
                f"{CHECKOUT_FAILED} {destination}"
            )
        logger.info(f"Checked out branch {destination}")

        with logger.span(
            "Merging", target=source.target, destination=destination
        ):
            exit_code = repository.stream("merge", target=source.target)

        message = render_commit_message(template, source, destination)

        if exit_code == EXIT_SUCCESS:
            conflicts = ConflictRecord()
            logger.info("Merge completed", status="success")
        elif exit_code == EXIT_CONFLICTING:
            # Metadata files are filtered out, so the table may be empty
            conflicts = repository.conflicts()
            table = render_conflict_table(conflicts)
            message = f"{message}\n\nConflicts:\n\n{table}"
            logger.warning(
                "Merge completed with conflicts",
                status="conflicting",
                conflicts=table,
            )
        else:
            logger.error(
                "Merge failed",
                target=source.target,
                destination=destination,
                exit_code=exit_code,
            )
            repository.abort_merge()
            return MergeOutcome.failed(f"exit code {exit_code}")

        repository.add_all()
        commit = repository.commit(message)
        logger.info(
            "Merge committed",
            commit=commit,
            summary=repository.describe(commit),
        )

        if not repository.is_clean():
            raise ConsistencyError(
                "Working tree has pending changes after committing "
                "the merge"
            )

        if exit_code == EXIT_CONFLICTING:
            return MergeOutcome.conflicting(conflicts, commit)
        return MergeOutcome.success(commit)
