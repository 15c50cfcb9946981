"""Synchronize node - fast-forward source and destination branches."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic_graph import BaseNode, GraphRunContext

from mergebot.core.config import State
from mergebot.core.models import ResolvedMergeSource
from mergebot.git.sync import synchronize


@dataclass
class Synchronize(BaseNode[State]):
    """Update both branches from the remote.

    Both are synchronized even when the source is a fixed commit.
    """

    source: ResolvedMergeSource

    async def run(self, ctx: GraphRunContext[State]) -> "Merge":
        merge = ctx.state.runtime.merge
        remote = ctx.state.config.git.remote

        synchronize(merge.repository, self.source.branch, remote)
        synchronize(merge.repository, merge.destination, remote)

        from mergebot.workflow.nodes.merge import Merge
        return Merge(source=self.source)
