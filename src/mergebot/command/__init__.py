"""CLI command modules for mergebot."""

from mergebot.command.merge import MergeCommand
from mergebot.command.resolve import ResolveCommand

__all__ = ["MergeCommand", "ResolveCommand"]
