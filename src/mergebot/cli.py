#!/usr/bin/env python3
"""Mergebot CLI - unattended git branch merges."""

import asyncio
import sys

from pydantic_settings import CliApp, CliSubCommand, get_subcommand

from mergebot.command.merge import MergeCommand
from mergebot.command.resolve import ResolveCommand
from mergebot.core.config import State
from mergebot.core.errors import MergebotError
from mergebot.core.log import logger


class CliState(State):
    """Merge one branch, or a fixed revision of it, into another.

    Merge sources can name legacy external revisions (r<digits>)
    recorded in git notes: release:svn:1234. Conflicting merges are
    committed with their markers, blamed and mailed.

    Configuration sources (in priority order):
    1. Command-line arguments (--config.git.remote value)
    2. mergebot.yaml files and --include FILE
    3. .env file for secrets
    4. Environment variables
       (MERGEBOT_CONFIG__GIT__REMOTE=value)
    """

    merge: CliSubCommand[MergeCommand]
    resolve: CliSubCommand[ResolveCommand]

    def cli_cmd(self):
        """Dispatch to active subcommand, or show help if none
        provided."""
        subcommand = get_subcommand(self, is_required=False)

        if subcommand is None:
            CliApp.run(CliState, cli_args=['--help'])
            sys.exit(1)

        # Use logger as context manager to ensure files are closed on exit
        with logger:
            try:
                exit_code = asyncio.run(subcommand.run_workflow(self))
            except MergebotError as e:
                logger.error(f"{type(e).__name__}: {e}")
                exit_code = 1
            raise SystemExit(exit_code)


def main():
    """Main entry point for CLI."""
    CliApp.run(CliState)


if __name__ == "__main__":
    main()
