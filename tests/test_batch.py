"""
Tests for BatchRunner error policies.

Tests:
1. Sequential execution
2. fail / ignore / continue semantics with a failing middle command
3. Policy validation
4. Failure logging
"""

import io
import os
import sys
import tempfile
import unittest

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from autoapply.batch import BatchRunner, describe_failure
from autoapply.command import Command
from autoapply.errors import InvalidPolicy, NonZeroExit, SpawnFailure
from autoapply.models import ErrorPolicy


def recording_command(label: str, exit_code: int = 0) -> Command:
    """A command that appends ``label`` to ./ran.log, then exits."""
    code = (
        "import sys; "
        f"open('ran.log', 'a').write({label!r} + '\\n'); "
        f"sys.exit({exit_code})"
    )
    return Command([sys.executable, "-c", code])


class BatchTestCase(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.cwd = self._tmp.name
        self.commands = [
            recording_command("1"),
            recording_command("2", exit_code=4),
            recording_command("3"),
        ]

    def tearDown(self):
        self._tmp.cleanup()

    def ran(self) -> list:
        path = os.path.join(self.cwd, "ran.log")
        if not os.path.exists(path):
            return []
        with open(path) as f:
            return f.read().split()

    def runner(self, policy, **kwargs) -> BatchRunner:
        return BatchRunner(policy, stdout=io.StringIO(), stderr=io.StringIO(), **kwargs)


class TestBatchPolicies(BatchTestCase):
    """Tests for the three error policies."""

    def test_all_succeed(self):
        """Test a clean batch runs every command in order."""
        commands = [recording_command("a"), recording_command("b"), recording_command("c")]
        result = self.runner(ErrorPolicy.FAIL).run(commands, self.cwd)
        self.assertEqual(self.ran(), ["a", "b", "c"])
        self.assertEqual(len(result.results), 3)
        self.assertFalse(result.abandoned)
        self.assertEqual(result.skipped, 0)

    def test_ignore_runs_everything(self):
        """Test ignore skips only the failed command."""
        with self.assertLogs("autoapply.batch", level="ERROR"):
            result = self.runner(ErrorPolicy.IGNORE).run(self.commands, self.cwd)
        self.assertEqual(self.ran(), ["1", "2", "3"])
        self.assertEqual(len(result.results), 2)
        self.assertEqual(len(result.failures), 1)
        self.assertFalse(result.abandoned)

    def test_continue_abandons_rest_of_batch(self):
        """Test continue stops the batch but reports success."""
        with self.assertLogs("autoapply.batch", level="ERROR"):
            result = self.runner(ErrorPolicy.CONTINUE).run(self.commands, self.cwd)
        self.assertEqual(self.ran(), ["1", "2"])
        self.assertTrue(result.abandoned)
        self.assertEqual(result.executed, 2)
        self.assertEqual(result.skipped, 1)
        self.assertIn("ABANDONED", result.summary)

    def test_fail_propagates_error(self):
        """Test fail aborts and raises the failing command's error."""
        with self.assertRaises(NonZeroExit) as ctx:
            self.runner(ErrorPolicy.FAIL).run(self.commands, self.cwd)
        self.assertEqual(self.ran(), ["1", "2"])
        self.assertIs(ctx.exception.command, self.commands[1])
        self.assertEqual(ctx.exception.returncode, 4)

    def test_policy_from_string(self):
        """Test string policies are accepted."""
        self.assertEqual(self.runner("ignore").policy, ErrorPolicy.IGNORE)
        self.assertEqual(self.runner("continue").policy, ErrorPolicy.CONTINUE)
        self.assertEqual(self.runner("fail").policy, ErrorPolicy.FAIL)

    def test_invalid_policy(self):
        """Test unknown policies are rejected at construction."""
        with self.assertRaises(InvalidPolicy):
            BatchRunner("retry")

    def test_empty_batch(self):
        """Test an empty batch is a no-op."""
        result = self.runner(ErrorPolicy.FAIL).run([], self.cwd)
        self.assertEqual(result.total, 0)
        self.assertEqual(self.ran(), [])


class TestBatchLogging(BatchTestCase):
    """Tests for failure logging."""

    def test_not_found_message(self):
        """Test a missing executable is logged as not found."""
        commands = [Command(["autoapply-no-such-program-xyz"]), recording_command("after")]
        with self.assertLogs("autoapply.batch", level="ERROR") as logs:
            self.runner(ErrorPolicy.IGNORE).run(commands, self.cwd)
        self.assertIn("Command not found", logs.output[0])
        self.assertEqual(self.ran(), ["after"])

    def test_exit_code_message(self):
        """Test a non-zero exit is logged with its code."""
        with self.assertLogs("autoapply.batch", level="ERROR") as logs:
            self.runner(ErrorPolicy.CONTINUE).run(self.commands, self.cwd)
        self.assertIn("exit code 4", logs.output[0])

    def test_injected_logger(self):
        """Test failures go to the injected logger."""
        import logging

        custom = logging.getLogger("test.batch.injected")
        with self.assertLogs(custom, level="INFO") as logs:
            self.runner(ErrorPolicy.IGNORE, logger=custom).run(self.commands, self.cwd)
        messages = "\n".join(logs.output)
        self.assertIn("Executing command:", messages)
        self.assertIn("exit code 4", messages)

    def test_debug_logs_traceback(self):
        """Test debug mode attaches the exception to the log record."""
        with self.assertLogs("autoapply.batch", level="ERROR") as logs:
            self.runner(ErrorPolicy.CONTINUE, debug=True).run(self.commands, self.cwd)
        self.assertIsNotNone(logs.records[0].exc_info)

    def test_describe_failure(self):
        """Test describe_failure for both failure kinds."""
        cmd = Command(["prog"])
        self.assertEqual(
            describe_failure(SpawnFailure(cmd, FileNotFoundError(2, "No such file"))),
            "Command not found: prog",
        )
        self.assertIn("exit code 2", describe_failure(NonZeroExit(cmd, 2)))


if __name__ == "__main__":
    unittest.main()
