"""
The autoapply iteration loop.

Runs the init batch once in the current directory, then runs the loop
batch over and over, each time in a fresh scratch directory that is
removed when the iteration ends, sleeping between iterations.

Loop phase:
    PREPARE_DIR -> RUN_BATCH -> CLEANUP_DIR -> CHECK_LIMIT -> DONE
                                                           -> SLEEP -> PREPARE_DIR
"""

import logging
import shutil
import tempfile
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from .batch import BatchRunner
from .config import AutoapplyConfig
from .errors import InvalidConfig
from .models import LoopPhase, LoopState
from .server import LivenessServer

logger = logging.getLogger(__name__)

SCRATCH_PREFIX = "autoapply-"


@contextmanager
def scratch_directory(log: Optional[logging.Logger] = None) -> Iterator[str]:
    """Create an empty scratch directory and remove it on exit.

    Removal errors are logged and never replace an error raised inside
    the block.
    """
    log = log or logger
    path = tempfile.mkdtemp(prefix=SCRATCH_PREFIX)
    try:
        yield path
    finally:
        log.debug("Deleting directory...")
        try:
            shutil.rmtree(path)
        except OSError as e:
            log.warning(f"Could not delete directory {path}: {e}")


class IterationLoop:
    """Drives the init batch and the repeated loop batch.

    Example:
        config = load_config("autoapply.yaml")
        IterationLoop(config).run()
    """

    def __init__(
        self,
        config: AutoapplyConfig,
        logger: Optional[logging.Logger] = None,
        debug: bool = False,
        sleep: Callable[[float], None] = time.sleep,
        server_factory: Callable[..., LivenessServer] = LivenessServer,
    ):
        """Initialize the loop.

        Args:
            config: Validated configuration
            logger: Logger for loop progress; passed down to batches
            debug: Log tracebacks for tolerated command failures
            sleep: Function used to wait between iterations
            server_factory: Builds the liveness server from port and logger
        """
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.debug = debug
        self._sleep = sleep
        self._server_factory = server_factory
        self.server: Optional[LivenessServer] = None
        self.state: Optional[LoopState] = None

    def run(self, max_iterations: Optional[int] = None) -> LoopState:
        """Run init once, then the loop until the iteration cap is reached.

        Without a cap (from the argument or ``loop.loops``) this only
        returns by raising.

        Raises:
            InvalidConfig: If there are no loop commands
            CommandError: On a command failure under the fail policy
            ServerStartupError: If the liveness server cannot start
        """
        if not self.config.loop.commands:
            raise InvalidConfig("no loop commands given in the configuration file!")

        if max_iterations is None:
            max_iterations = self.config.loop.loops
        if max_iterations is not None and max_iterations < 1:
            raise InvalidConfig(f"invalid loops value: {max_iterations}")

        self.state = LoopState(
            sleep_seconds=self.config.loop.sleep,
            max_iterations=max_iterations,
        )

        try:
            if self.config.server.enabled:
                self.server = self._server_factory(
                    port=self.config.server.port, logger=self.logger
                )
                self.server.start()

            self._run_init()
            self.logger.info("Running loop commands...")
            while not self.state.is_done:
                self._step()
        finally:
            if self.server is not None:
                self.server.stop()
                self.server = None

        return self.state

    def _run_init(self) -> None:
        init = self.config.init
        if not init.commands:
            self.logger.info("No init commands.")
            return
        self.logger.info("Running init commands...")
        runner = BatchRunner(init.onerror, logger=self.logger, debug=self.debug)
        runner.run(init.commands, ".")

    def _step(self) -> None:
        """Advance the loop state machine by one iteration."""
        state = self.state
        runner = BatchRunner(self.config.loop.onerror, logger=self.logger, debug=self.debug)

        state.phase = LoopPhase.PREPARE_DIR
        with scratch_directory(self.logger) as cwd:
            state.phase = LoopPhase.RUN_BATCH
            self.logger.debug(f"Iteration {state.iteration}")
            try:
                runner.run(self.config.loop.commands, cwd)
            finally:
                state.phase = LoopPhase.CLEANUP_DIR
        state.completed += 1

        state.phase = LoopPhase.CHECK_LIMIT
        if state.limit_reached:
            state.phase = LoopPhase.DONE
            return

        state.iteration += 1
        if state.sleep_seconds > 0:
            state.phase = LoopPhase.SLEEP
            self.logger.info(f"Sleeping for {state.sleep_seconds:g}s...")
            self._sleep(state.sleep_seconds)
        else:
            self.logger.debug("Not sleeping (sleep = 0)")
        state.phase = LoopPhase.PREPARE_DIR
