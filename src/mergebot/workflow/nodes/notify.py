"""Notify node - mail the run summary and end the workflow."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from pydantic_graph import BaseNode, End, GraphRunContext

from mergebot.core.config import State
from mergebot.core.log import logger
from mergebot.core.models import MergeOutcome, ResolvedMergeSource
from mergebot.services.mail import Mailer, render_summary


@dataclass
class Notify(BaseNode[State, None, MergeOutcome]):
    """Send the summary mail and finish with the merge outcome."""

    source: ResolvedMergeSource
    outcome: MergeOutcome
    archive: Path | None = None

    async def run(self, ctx: GraphRunContext[State]) -> End[MergeOutcome]:
        """Mail the summary if mail is enabled and recipients were given.

        Returns:
            End[MergeOutcome]: Workflow completion with the merge outcome
        """
        config = ctx.state.config
        merge = ctx.state.runtime.merge

        if config.mail.enabled and merge.mail_to:
            html = render_summary(
                self.outcome,
                self.source,
                merge.destination,
                self.archive,
                config.mail.templates,
            )
            Mailer.from_config(config.mail).send(
                merge.mail_to, config.mail.subject, html, self.archive
            )
        else:
            logger.warning("Sending summary mail skipped")

        merge.outcome = self.outcome
        merge.archive = self.archive
        merge.status = "complete"
        logger.info(
            f"Merge of {self.source.branch} ({self.source.external_revision}) "
            f"into {merge.destination} complete",
            status=self.outcome.status.value,
            commit=self.outcome.commit,
            conflicts=len(self.outcome.conflicts),
        )
        return End(self.outcome)
