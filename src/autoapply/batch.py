"""
Batch execution under an error policy.

A batch is an ordered list of commands run one after another in the same
working directory. The error policy decides what happens when a command
fails:

- fail: re-raise, aborting the batch (and the program)
- ignore: log and carry on with the next command
- continue: log and abandon the rest of the batch, reporting success
"""

import logging
from typing import IO, Optional, Sequence

from .command import Command
from .errors import CommandError, SpawnFailure
from .models import BatchResult, ErrorPolicy


def describe_failure(error: CommandError) -> str:
    """Short, user-facing description of a failed command."""
    if isinstance(error, SpawnFailure) and error.not_found:
        return f"Command not found: {error.command.display}"
    return str(error) or "Command failed!"


class BatchRunner:
    """Runs a batch of commands under one error policy.

    Example:
        runner = BatchRunner(ErrorPolicy.CONTINUE)
        result = runner.run(commands, cwd="/tmp/work")
        logger.info(result.summary)
    """

    def __init__(
        self,
        policy=ErrorPolicy.FAIL,
        logger: Optional[logging.Logger] = None,
        debug: bool = False,
        stdout: Optional[IO] = None,
        stderr: Optional[IO] = None,
    ):
        """Initialize the batch runner.

        Args:
            policy: ErrorPolicy or its string value
            logger: Logger to report progress and failures on
            debug: Log tracebacks for failed commands
            stdout: Target for piped command stdout (default: sys.stdout)
            stderr: Target for piped command stderr (default: sys.stderr)

        Raises:
            InvalidPolicy: If the policy is not fail/continue/ignore
        """
        self.policy = ErrorPolicy.parse(policy, ErrorPolicy.FAIL)
        self.logger = logger or logging.getLogger(__name__)
        self.debug = debug
        self.stdout = stdout
        self.stderr = stderr

    def run(self, commands: Sequence[Command], cwd: str) -> BatchResult:
        """Run ``commands`` in order in ``cwd``.

        Returns:
            BatchResult describing what ran and what was tolerated

        Raises:
            CommandError: Under the fail policy, the first failure
        """
        self.logger.debug(f"Executing in directory: {cwd}")
        result = BatchResult(policy=self.policy, total=len(commands))

        for command in commands:
            try:
                result.results.append(
                    command.run(cwd, log=self.logger, stdout=self.stdout, stderr=self.stderr)
                )
            except CommandError as e:
                if self.policy == ErrorPolicy.FAIL:
                    raise

                result.failures.append(e)
                self._log_failure(e)

                if self.policy == ErrorPolicy.CONTINUE:
                    # Rest of the batch is skipped; the loop moves on.
                    result.abandoned = True
                    break

        self.logger.debug(result.summary)
        return result

    def _log_failure(self, error: CommandError) -> None:
        if self.debug:
            self.logger.error(f"Command failed: {error}", exc_info=error)
        else:
            self.logger.error(describe_failure(error))
