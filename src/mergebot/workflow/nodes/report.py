"""Report node - blame conflicting files into a zip archive."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic_graph import BaseNode, GraphRunContext

from mergebot.core.config import State
from mergebot.core.models import MergeOutcome, ResolvedMergeSource
from mergebot.report.generator import ReportGenerator


@dataclass
class Report(BaseNode[State]):

    source: ResolvedMergeSource
    outcome: MergeOutcome

    async def run(self, ctx: GraphRunContext[State]) -> "Notify":
        merge = ctx.state.runtime.merge
        report = ctx.state.config.report

        archive = None
        if self.outcome.conflicts:
            generator = ReportGenerator(
                merge.repository,
                merge.scratch_dir,
                excludes=report.excludes,
                enabled=report.enabled,
                archive_name=report.archive_name,
                date_format=report.date_format,
            )
            archive = generator.report(self.outcome.conflicts)

        from mergebot.workflow.nodes.notify import Notify
        return Notify(source=self.source, outcome=self.outcome, archive=archive)
