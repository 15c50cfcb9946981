"""Resolve command - show what a merge-source expression refers to."""

from pydantic import BaseModel, ConfigDict, Field

from mergebot.core.errors import InvalidInput
from mergebot.core.log import logger
from mergebot.git import revision
from mergebot.git.repository import Repository


class ResolveCommand(BaseModel):
    """Resolve a merge-source expression without merging anything.

    Uses the refs and notes already present in the working tree;
    nothing is fetched, locked or changed.
    """

    model_config = ConfigDict(populate_by_name=True)

    from_: str = Field(
        alias="from",
        description="Merge source: branch, branch:git:<commit> or branch:svn:<rev>",
    )

    async def run_workflow(self, state: "State") -> int:
        """Resolve and print branch, target and external revision.

        Returns:
            Exit code (0=success)
        """
        git = state.config.git
        if git.workdir is None:
            raise InvalidInput("config.git.workdir is required")

        repository = Repository.from_config(git)
        source = revision.resolve(self.from_, git.remote, repository)

        logger.info(
            "Merge source resolved",
            branch=source.branch,
            commit=source.commit_id,
            revision=source.external_revision,
        )
        print(f"branch:   {source.branch}")
        print(f"target:   {source.target}")
        print(f"revision: {source.external_revision}")
        return 0
