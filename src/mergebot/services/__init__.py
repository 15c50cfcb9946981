"""Collaborators around the merge: branch locks, remote transport, mail."""

from mergebot.services.lock import LockService, TeamForgeClient
from mergebot.services.mail import Mailer, render_summary, resolve_recipients
from mergebot.services.transport import fetch, push

__all__ = [
    "LockService",
    "TeamForgeClient",
    "Mailer",
    "render_summary",
    "resolve_recipients",
    "fetch",
    "push",
]
