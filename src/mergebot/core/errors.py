"""Exception hierarchy for merge runs.

Every fatal condition raises a subclass of MergebotError. A merge that
ends with conflicts is not an error: it is reported through
MergeOutcome.
"""


class MergebotError(Exception):
    """Base class for all fatal merge run errors."""


class InvalidInput(MergebotError):
    """Malformed user input or missing configuration value."""


class InvalidExpression(InvalidInput):
    """Merge-source expression matches neither grammar form."""


class UnresolvableRevision(InvalidInput):
    """Native revision does not name an existing commit."""


class RevisionNotFound(InvalidInput):
    """No external revision could be found or extracted."""


class PreconditionViolation(MergebotError):
    """Working tree is not in the state a step requires."""


class CheckoutFailed(PreconditionViolation):
    """Switching the working tree to a branch did not complete."""


class ConsistencyError(PreconditionViolation):
    """Working tree still has pending changes after the merge commit."""


class ExternalServiceFailure(MergebotError):
    """Lock service, remote transport or mail delivery failed."""


class NonFastForward(ExternalServiceFailure):
    """Local branch has commits that are not on its remote counterpart."""


class GitCommandError(MergebotError):
    """A git query or bookkeeping command exited non-zero."""

    def __init__(self, command: str, exit_code: int, stderr: str = ""):
        detail = stderr.strip() or "no output"
        super().__init__(
            f"git command failed ({exit_code}): {command}: {detail}"
        )
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr


class SubprocessFailure(MergebotError):
    """Merge or push subprocess exited with an unexpected status."""

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        self.exit_code = exit_code


__all__ = [
    "MergebotError",
    "InvalidInput",
    "InvalidExpression",
    "UnresolvableRevision",
    "RevisionNotFound",
    "PreconditionViolation",
    "CheckoutFailed",
    "ConsistencyError",
    "ExternalServiceFailure",
    "NonFastForward",
    "GitCommandError",
    "SubprocessFailure",
]
