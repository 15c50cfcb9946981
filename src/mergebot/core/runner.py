"""Command execution using invoke."""

import io
import sys
from pathlib import Path

from invoke import Context, Result

from mergebot.core.log import logger


class Runner(Context):
    """invoke.Context with the two execution modes git needs.

    execute() captures output for commands whose result is parsed.
    stream() supervises long-running commands (merge, push) whose
    output is only shown to the operator.
    """

    def execute(
        self,
        command: str,
        cwd: Path | None = None,
        stdin: str | None = None,
        check: bool = True,
    ) -> Result:
        """Execute a command and capture its output.

        Args:
            command: Command string to execute
            cwd: Working directory for command execution
            stdin: Text to send to the command's stdin
            check: If True, raise on non-zero exit code

        Returns:
            invoke.Result with stdout, stderr, exited

        Raises:
            invoke.UnexpectedExit: If check=True and command
                returns non-zero
        """
        kwargs = {
            "hide": True,
            "warn": not check,
            "in_stream": False,
        }

        if stdin is not None:
            kwargs["in_stream"] = io.StringIO(stdin)

        logger.spew("Executing command", command=command, cwd=str(cwd))

        if cwd:
            with self.cd(str(cwd)):
                result = self.run(command, **kwargs)
        else:
            result = self.run(command, **kwargs)

        return result

    def stream(
        self,
        command: str,
        cwd: Path | None = None,
        echo_stderr: bool = False,
        out_stream=None,
    ) -> int:
        """Run a command to completion while its output streams drain.

        invoke reads stdout and stderr on two dedicated worker
        threads for the whole lifetime of the process, while this
        thread blocks on process exit. A full pipe can therefore
        never stall the child. stdout is echoed to the operator as
        it arrives; stderr is echoed only when echo_stderr is set and
        otherwise drained and discarded. No timeout is applied.

        Args:
            command: Command string to execute
            cwd: Working directory for command execution
            echo_stderr: Echo stderr instead of discarding it
            out_stream: Stream receiving echoed output
                (defaults to sys.stdout)

        Returns:
            Process exit status
        """
        out_stream = out_stream or sys.stdout
        kwargs = {
            "hide": None if echo_stderr else "stderr",
            "warn": True,
            "in_stream": False,
            "out_stream": out_stream,
            "err_stream": out_stream,
        }

        logger.debug("Starting supervised command", command=command)

        if cwd:
            with self.cd(str(cwd)):
                result = self.run(command, **kwargs)
        else:
            result = self.run(command, **kwargs)

        logger.debug(
            "Supervised command finished",
            command=command,
            exit_code=result.exited,
        )
        return result.exited
