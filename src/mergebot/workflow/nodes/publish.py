"""Publish node - release the branch lock and push the merge commit."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic_graph import BaseNode, GraphRunContext

from mergebot.core.config import State
from mergebot.core.errors import SubprocessFailure
from mergebot.core.log import logger
from mergebot.core.models import MergeOutcome, ResolvedMergeSource
from mergebot.services import transport
from mergebot.services.lock import LockService


@dataclass
class Publish(BaseNode[State]):
    """Unlock the destination, then push it."""

    source: ResolvedMergeSource
    outcome: MergeOutcome

    async def run(self, ctx: GraphRunContext[State]) -> "Report":
        """Unlock and push.

        The push is refused by the server while the branch is
        locked, so the unlock always comes first.

        Raises:
            ExternalServiceFailure: If unlocking fails
            SubprocessFailure: If git push exits non-zero
        """
        config = ctx.state.config
        merge = ctx.state.runtime.merge

        if merge.locked_branch:
            service = LockService.from_config(config.lock)
            try:
                with logger.span("Unlocking branch", branch=merge.locked_branch):
                    service.unlock(merge.locked_branch)
            finally:
                service.close()
            merge.locked_branch = None
        else:
            logger.warning(f"Unlocking branch {merge.destination} skipped")

        exit_code = transport.push(
            merge.repository, merge.destination, config.git.remote
        )
        if exit_code != 0:
            raise SubprocessFailure(
                f"Push of {merge.destination} to {config.git.remote} "
                f"failed with exit code {exit_code}",
                exit_code=exit_code,
            )

        from mergebot.workflow.nodes.report import Report
        return Report(source=self.source, outcome=self.outcome)
