"""
Command execution for reading from a live cluster.

The kubectl fetcher runs every command through a CommandExecutor so that
tests can replace it with a mock and so that each invocation is logged the
same way. Output is always captured as text.
"""

import subprocess
import logging
from typing import Optional, List, Any

from gwinspect.config import Config
from gwinspect.output import get_output

logger = logging.getLogger(__name__)


class CommandExecutor:
    """Runs external commands with captured output and an optional timeout."""

    def __init__(self, timeout: Optional[float] = None):
        """
        Initialize the command executor.

        Args:
            timeout: Seconds before a command is abandoned (defaults to GWINSPECT_KUBECTL_TIMEOUT)
        """
        self.timeout = timeout if timeout is not None else Config.command_timeout()

    def run(self, cmd: List[str], check: bool = False, **kwargs: Any) -> subprocess.CompletedProcess:
        """
        Execute a command and return the result.

        Args:
            cmd: Command to execute as a list of strings
            check: If True, raise CalledProcessError on non-zero exit codes
            **kwargs: Additional arguments to pass to subprocess.run

        Returns:
            CompletedProcess with text stdout, stderr and returncode

        Raises:
            subprocess.CalledProcessError: If check=True and the command fails
            subprocess.TimeoutExpired: If the command outlives the timeout
            FileNotFoundError: If the executable is not found
        """
        command = " ".join(cmd)
        logger.debug(f"Executing command: {command}")
        get_output().verbose(f"Executing: {command}")

        try:
            result = subprocess.run(
                cmd,
                check=check,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                **kwargs,
            )
        except subprocess.CalledProcessError as e:
            logger.debug(f"Command failed with return code {e.returncode}: {e.stderr}")
            raise
        except FileNotFoundError:
            logger.debug(f"Command not found: {cmd[0]}")
            raise

        logger.debug(f"Command completed with return code: {result.returncode}")
        return result

    def run_silent(self, cmd: List[str], **kwargs: Any) -> subprocess.CompletedProcess:
        """Execute a command without raising on a non-zero exit code."""
        return self.run(cmd, check=False, **kwargs)


_default_executor: Optional[CommandExecutor] = None


def get_executor() -> CommandExecutor:
    """
    Get the default command executor instance.

    Returns:
        Default CommandExecutor instance
    """
    global _default_executor
    if _default_executor is None:
        _default_executor = CommandExecutor()
    return _default_executor
