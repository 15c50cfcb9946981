"""ResolveSource node - turn the merge-source expression into a target."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic_graph import BaseNode, GraphRunContext

from mergebot.core.config import State
from mergebot.core.log import logger
from mergebot.git import revision


@dataclass
class ResolveSource(BaseNode[State]):

    async def run(self, ctx: GraphRunContext[State]) -> "Synchronize":
        merge = ctx.state.runtime.merge

        with logger.span("Resolving merge source", expression=merge.source):
            source = revision.resolve(
                merge.source,
                ctx.state.config.git.remote,
                merge.repository,
            )

        logger.info(
            "Merge source resolved",
            branch=source.branch,
            commit=source.commit_id,
            revision=source.external_revision,
        )

        from mergebot.workflow.nodes.synchronize import Synchronize
        return Synchronize(source=source)
