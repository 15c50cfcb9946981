"""Fast-forward local branches to their remote counterparts."""

from mergebot.core.errors import CheckoutFailed, NonFastForward
from mergebot.core.log import logger
from mergebot.git.repository import Repository


def synchronize(repository: Repository, branch: str, remote: str) -> str:
    """Fast-forward branch to remote/branch and return the new head.

    Never creates a merge commit or rewrites history: a local branch
    with commits that are not upstream is an error.

    Raises:
        CheckoutFailed: If branch cannot be checked out cleanly
        NonFastForward: If branch has diverged from remote/branch
    """
    upstream = f"{remote}/{branch}"

    with logger.span("Updating local branch", branch=branch, remote=remote):
        if not repository.checkout(branch):
            raise CheckoutFailed(f"Failed to checkout branch {branch}")

        if not repository.fast_forward(upstream):
            raise NonFastForward(
                f"Failed to update branch {branch} with {upstream}: "
                f"not a fast-forward"
            )

        head = repository.head()
        logger.info(
            f"Branch {branch} updated",
            head=head,
            commit=repository.describe(head),
        )
        return head
