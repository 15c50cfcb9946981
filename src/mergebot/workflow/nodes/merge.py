"""Merge node - merge the resolved source into the destination."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic_graph import BaseNode, GraphRunContext

from mergebot.core.config import State
from mergebot.core.errors import CheckoutFailed, SubprocessFailure
from mergebot.core.models import MergeStatus, ResolvedMergeSource
from mergebot.git.merge import CHECKOUT_FAILED, MergeExecutor


@dataclass
class Merge(BaseNode[State]):
    """Run the merge executor and stop the run if the merge failed."""

    source: ResolvedMergeSource

    async def run(self, ctx: GraphRunContext[State]) -> "Publish":
        """Merge and commit.

        Raises:
            CheckoutFailed: If the destination could not be checked out
            SubprocessFailure: If git merge exited with an unexpected code
        """
        merge = ctx.state.runtime.merge

        outcome = MergeExecutor(merge.repository).merge(
            self.source, merge.destination, merge.message
        )

        if outcome.status is MergeStatus.FAILED:
            if outcome.reason.startswith(CHECKOUT_FAILED):
                raise CheckoutFailed(
                    f"Failed to checkout branch {merge.destination}"
                )
            raise SubprocessFailure(
                f"Merge of {self.source.target} into {merge.destination} "
                f"failed: {outcome.reason}"
            )

        from mergebot.workflow.nodes.publish import Publish
        return Publish(source=self.source, outcome=outcome)
