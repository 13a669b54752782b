"""
Single dispatch point for every state-mutating operation.

In dry-run mode operations are rendered and recorded, never executed. In live
mode commands run synchronously and any failure raises ExecutionError.
"""

import logging
import os
import shlex
import subprocess
from typing import Any, Callable, Dict, List, Optional, Sequence

from xui_installer.console import print_dry_run
from xui_installer.errors import ExecutionError

logger = logging.getLogger(__name__)

MASK = "********"


class CommandRunner:
    """Runs or renders installer operations."""

    def __init__(self, dry_run: bool = False, timeout: Optional[int] = None) -> None:
        self.dry_run = dry_run
        self.timeout = timeout
        self.history: List[str] = []

    def render(self, rendered: str) -> None:
        """Echo and record an operation without performing it."""
        self.history.append(rendered)
        print_dry_run(rendered)
        logger.debug("DRY-RUN: %s", rendered)

    def run(
        self,
        cmd: Sequence[str],
        check: bool = True,
        input_text: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        secret_args: Sequence[int] = (),
    ) -> Optional[subprocess.CompletedProcess]:
        """
        Execute a mutating command.

        Args:
            cmd: Command and arguments
            check: Raise ExecutionError on a non-zero exit
            input_text: Data sent on stdin; never rendered or logged
            env: Extra environment variables merged over os.environ
            secret_args: Positions in cmd masked wherever the command is shown

        Returns:
            The completed process, or None in dry-run mode
        """
        cmd_str = " ".join(
            MASK if i in secret_args else shlex.quote(arg)
            for i, arg in enumerate(cmd)
        )
        if self.dry_run:
            self.render(cmd_str)
            return None

        logger.debug("Executing: %s", cmd_str)
        full_env = None
        if env:
            full_env = os.environ.copy()
            full_env.update(env)

        try:
            result = subprocess.run(
                list(cmd),
                input=input_text,
                env=full_env,
                text=True,
                capture_output=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            if not check:
                logger.debug("Command not found: %s", cmd_str)
                return subprocess.CompletedProcess(list(cmd), 127, "", str(e))
            raise ExecutionError(f"Command not found: {cmd[0]}") from e
        except subprocess.TimeoutExpired as e:
            raise ExecutionError(
                f"Command timed out after {self.timeout} seconds: {cmd_str}"
            ) from e

        if result.returncode != 0 and check:
            error_msg = f"Command failed (code {result.returncode}): {cmd_str}"
            if result.stderr and result.stderr.strip():
                error_msg += f"\nError: {result.stderr.strip()}"
            raise ExecutionError(error_msg)

        return result

    def apply(self, description: str, action: Callable[[], Any]) -> Any:
        """
        Perform an in-process mutation such as a file write or a download.

        OSError raised by the action becomes ExecutionError.
        """
        if self.dry_run:
            self.render(description)
            return None

        logger.debug("Applying: %s", description)
        try:
            return action()
        except OSError as e:
            raise ExecutionError(f"Failed to {description}: {e}") from e

    def probe(self, cmd: Sequence[str]) -> subprocess.CompletedProcess:
        """
        Run a read-only query in both modes. Never raises; a missing
        executable is reported as exit code 127.
        """
        try:
            return subprocess.run(
                list(cmd),
                text=True,
                capture_output=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug("Probe failed: %s: %s", shlex.join(cmd), e)
            return subprocess.CompletedProcess(list(cmd), 127, "", str(e))

    def succeeds(self, cmd: Sequence[str]) -> bool:
        return self.probe(cmd).returncode == 0


def write_file(path, content: str, mode: int) -> None:
    """Write text to path, creating parent directories, then set its mode."""
    os.makedirs(os.path.dirname(os.fspath(path)) or ".", exist_ok=True)
    with open(path, "w") as f:
        f.write(content)
    os.chmod(path, mode)
