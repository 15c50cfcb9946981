"""Merge command - runs the merge workflow."""

from __future__ import annotations

import shutil
import tempfile
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic_graph import End

from mergebot.core.errors import MergebotError
from mergebot.core.log import logger
from mergebot.services.lock import LockService


class MergeCommand(BaseModel):
    """Merge a branch, or a fixed revision of it, into another branch.

    Locks the destination branch, fetches, fast-forwards both
    branches, merges and commits (conflict markers included), unlocks,
    pushes, blames conflicting files and mails a summary.

    --from takes a branch name, branch:git:<commit> or
    branch:svn:<revision>. --message may use %from, %to and %rev.
    """

    model_config = ConfigDict(populate_by_name=True)

    from_: str = Field(
        alias="from",
        description="Merge source: branch, branch:git:<commit> or branch:svn:<rev>",
    )
    to: str = Field(description="Destination branch")
    message: str = Field(
        default="Merge %from (%rev) into %to",
        description="Commit message template (%from, %to, %rev)",
    )
    mail_to: list[str] = Field(
        default_factory=list,
        alias="mail-to",
        description="Summary mail recipients; bare names get the default domain",
    )

    async def run_workflow(self, state: "State") -> int:
        """Run merge workflow.

        Args:
            state: State instance with config loaded and runtime initialized

        Returns:
            Exit code (0 for a successful or conflicting merge)

        Raises:
            MergebotError: If any step of the run fails
        """
        merge = state.runtime.merge
        merge.source = self.from_
        merge.destination = self.to
        merge.message = self.message
        merge.mail_to = self.mail_to

        owns_scratch_dir = merge.scratch_dir is None
        if owns_scratch_dir:
            merge.scratch_dir = Path(tempfile.mkdtemp(prefix="mergebot-"))

        logger.info(f"Starting merge of {self.from_} into {self.to}")

        from mergebot.workflow.graph import create_workflow
        from mergebot.workflow.nodes.prepare import Prepare

        workflow = create_workflow()

        try:
            async with workflow.iter(Prepare(), state=state) as run:
                async for node in run:
                    if isinstance(node, End):
                        outcome = node.data
                        logger.info(
                            f"Merge {outcome.status.value}",
                            commit=outcome.commit,
                        )
                        return 0
        except MergebotError:
            merge.status = "failed"
            self._release_lock(state)
            raise
        finally:
            if owns_scratch_dir:
                shutil.rmtree(merge.scratch_dir, ignore_errors=True)

        logger.error("Merge failed - workflow ended unexpectedly")
        return 1

    @staticmethod
    def _release_lock(state: "State") -> None:
        """Unlock a branch the failed run left locked, if configured to."""
        merge = state.runtime.merge
        if not merge.locked_branch:
            return
        if not state.config.lock.release_on_failure:
            logger.warning(
                f"Branch {merge.locked_branch} is left locked after the failure"
            )
            return

        service = LockService.from_config(state.config.lock)
        try:
            service.unlock(merge.locked_branch)
            merge.locked_branch = None
        except MergebotError as e:
            logger.error(
                f"Failed to release lock on {merge.locked_branch}: {e}"
            )
        finally:
            service.close()
