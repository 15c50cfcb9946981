"""Fetch from and push to the remote by invoking git."""

from __future__ import annotations

from mergebot.core.errors import ExternalServiceFailure
from mergebot.core.log import logger
from mergebot.core.models import FetchUpdate
from mergebot.git.repository import Repository

NULL_SHA = "0" * 40


def diff_refs(
    before: dict[str, str],
    after: dict[str, str],
    repository: Repository | None = None,
) -> list[FetchUpdate]:
    """Ref updates between two ref snapshots, ordered by ref name.

    Moved refs are reported as fast-forwards when the old object is
    an ancestor of the new one (or no repository is given to check),
    and as forced updates otherwise.
    """
    updates = []
    for ref in sorted(before.keys() | after.keys()):
        old = before.get(ref, NULL_SHA)
        new = after.get(ref, NULL_SHA)
        if old == new:
            continue
        if ref not in before:
            flag = "new"
        elif ref not in after:
            flag = "pruned"
        elif repository is None or repository.is_ancestor(old, new):
            flag = "fast-forward"
        else:
            flag = "forced update"
        updates.append(FetchUpdate(flag=flag, old=old, new=new, ref=ref))
    return updates


def fetch(
    repository: Repository, remote: str, refspecs: list[str]
) -> list[FetchUpdate]:
    """Fetch refspecs from remote and return the refs it updated.

    Raises:
        ExternalServiceFailure: If git fetch fails
    """
    with logger.span("Fetching", remote=remote):
        before = repository.refs()
        result = repository.run(
            "fetch",
            check=False,
            options=repository.transport_options(),
            remote=remote,
            refspecs=refspecs,
        )
        if result.exited != 0:
            raise ExternalServiceFailure(
                f"Failed to fetch from {remote}: {result.stderr.strip()}"
            )

        updates = diff_refs(before, repository.refs(), repository)
        logger.info(
            f"Fetched from {remote}",
            updates="\n".join(u.summary for u in updates) or "up to date",
        )
        return updates


def push(repository: Repository, branch: str, remote: str) -> int:
    """Push branch to remote, echoing git's output, and return its exit status."""
    with logger.span("Pushing", branch=branch, remote=remote):
        exit_code = repository.stream(
            "push",
            echo_stderr=True,
            options=repository.transport_options(),
            remote=remote,
            refspec=f"refs/heads/{branch}:refs/heads/{branch}",
        )
        logger.info(f"Pushed {branch} to {remote}", exit_code=exit_code)
        return exit_code
