"""Prepare node - check the working tree, lock the destination, fetch."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic_graph import BaseNode, GraphRunContext

from mergebot.core.config import State
from mergebot.core.errors import InvalidInput, PreconditionViolation
from mergebot.core.log import logger
from mergebot.git.repository import Repository
from mergebot.services import transport
from mergebot.services.lock import LockService


@dataclass
class Prepare(BaseNode[State]):
    """Open the repository and bring remote refs up to date."""

    async def run(self, ctx: GraphRunContext[State]) -> "ResolveSource":
        """Clean check, lock the destination branch, then fetch.

        Raises:
            InvalidInput: If no working tree or destination is configured
            PreconditionViolation: If the working tree has pending changes
        """
        config = ctx.state.config
        merge = ctx.state.runtime.merge

        if config.git.workdir is None:
            raise InvalidInput("config.git.workdir is required")
        if not merge.destination:
            raise InvalidInput("A destination branch is required")

        repository = Repository.from_config(config.git)
        merge.repository = repository
        merge.status = "running"

        logger.info("Checking working tree cleanliness", workdir=str(repository.workdir))
        if not repository.is_clean():
            raise PreconditionViolation(
                f"Working tree {repository.workdir} is not clean"
            )

        if config.lock.enabled:
            service = LockService.from_config(config.lock)
            try:
                with logger.span("Locking branch", branch=merge.destination):
                    service.lock(merge.destination)
            finally:
                service.close()
            merge.locked_branch = merge.destination
        else:
            logger.warning(f"Locking branch {merge.destination} skipped")

        transport.fetch(repository, config.git.remote, config.git.fetch_refspecs)

        from mergebot.workflow.nodes.resolve import ResolveSource
        return ResolveSource()
