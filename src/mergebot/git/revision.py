"""Resolve merge-source expressions to a branch or a fixed commit.

Two forms are accepted:

    release                 merge the tip of release
    release:git:<commit>    merge a native commit of release
    release:svn:<rev>       merge the commit annotated with r<rev>

External revisions (r<digits>) live in git notes attached to the
commits they were synchronized from. A note reads
"r<digits> <description>", optionally preceded by whitespace.
"""

from __future__ import annotations

import re

from mergebot.core.errors import (
    InvalidExpression,
    RevisionNotFound,
    UnresolvableRevision,
)
from mergebot.core.log import logger
from mergebot.core.models import (
    Namespace,
    ResolvedMergeSource,
    RevisionExpression,
)
from mergebot.git.repository import Repository

EXPRESSION_PATTERN = re.compile(
    r"^\s*([^\s:]+)\s*:\s*(svn|git)\s*:\s*([^\s:]+)\s*$",
    re.IGNORECASE,
)
BRANCH_PATTERN = re.compile(r"^\s*([^\s:]+)\s*$")
REVISION_PATTERN = re.compile(r"^\s*(r\d+)\s+.+", re.IGNORECASE)


def parse_expression(text: str) -> RevisionExpression:
    """Parse a merge-source expression.

    Raises:
        InvalidExpression: If text is neither a bare branch name nor
            branch:namespace:ref with namespace svn or git
    """
    match = EXPRESSION_PATTERN.match(text or "")
    if match:
        branch, namespace, ref = match.groups()
        return RevisionExpression(
            branch=branch,
            namespace=Namespace(namespace.lower()),
            ref=ref,
        )

    match = BRANCH_PATTERN.match(text or "")
    if match:
        return RevisionExpression(branch=match.group(1))

    raise InvalidExpression(
        f"Invalid merge-source expression {text!r}: expected "
        f"'branch' or 'branch:svn|git:ref'"
    )


def normalize_external_revision(ref: str) -> str:
    """Canonical external revision: lower case with an r prefix.

    >>> normalize_external_revision("42")
    'r42'
    >>> normalize_external_revision("R42")
    'r42'
    """
    ref = ref.strip().lower()
    return ref if ref.startswith("r") else f"r{ref}"


def extract_external_revision(note: str) -> str | None:
    """Leading r<digits> token of a note, or None if it has none."""
    match = REVISION_PATTERN.match(note or "")
    return match.group(1).lower() if match else None


def find_commit_for_revision(repository: Repository, revision: str) -> str:
    """Commit whose note starts with revision.

    Every annotated commit is scanned in listing order and the first
    match wins.

    Raises:
        RevisionNotFound: If no note matches
    """
    pattern = re.compile(
        rf"^\s*{re.escape(revision)}\s+.+", re.IGNORECASE
    )
    scanned = 0
    for commit, note in repository.notes():
        scanned += 1
        if pattern.match(note):
            logger.debug(
                "External revision found",
                revision=revision,
                commit=commit,
                scanned=scanned,
            )
            return commit

    raise RevisionNotFound(
        f"No commit is annotated with external revision {revision} "
        f"({scanned} notes scanned)"
    )


def _revision_of(repository: Repository, rev: str) -> str:
    revision = extract_external_revision(repository.note(rev))
    if revision is None:
        raise RevisionNotFound(
            f"No external revision recorded in the notes of {rev}"
        )
    return revision


def resolve(
    expression: str | RevisionExpression,
    remote: str,
    repository: Repository,
) -> ResolvedMergeSource:
    """Resolve a merge-source expression.

    Args:
        expression: Expression text or an already parsed expression
        remote: Remote whose branch tip a bare branch name refers to
        repository: Repository to resolve against

    Returns:
        ResolvedMergeSource with the external revision filled in

    Raises:
        InvalidExpression: Expression is malformed
        UnresolvableRevision: Native revision or remote branch does
            not exist
        RevisionNotFound: No matching or parseable note
    """
    if isinstance(expression, str):
        expression = parse_expression(expression)

    if expression.namespace is Namespace.NATIVE:
        commit = repository.resolve(expression.ref)
        if commit is None:
            raise UnresolvableRevision(
                f"Invalid git revision {expression.ref!r}"
            )
        return ResolvedMergeSource(
            branch=expression.branch,
            commit_id=commit,
            external_revision=_revision_of(repository, commit),
        )

    if expression.namespace is Namespace.EXTERNAL:
        revision = normalize_external_revision(expression.ref)
        return ResolvedMergeSource(
            branch=expression.branch,
            commit_id=find_commit_for_revision(repository, revision),
            external_revision=revision,
        )

    tip = f"{remote}/{expression.branch}"
    if repository.resolve(tip) is None:
        raise UnresolvableRevision(f"Remote branch {tip} does not exist")
    return ResolvedMergeSource(
        branch=expression.branch,
        external_revision=_revision_of(repository, tip),
    )
