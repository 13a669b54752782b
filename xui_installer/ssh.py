"""
Guarantees that sshd permits password authentication, so the provisioned
account can log in.
"""

import datetime
import logging
import re
import shutil
from pathlib import Path
from typing import List

from xui_installer.config import SSH_RELOAD_CASCADE, AppConfig
from xui_installer.errors import ExecutionError
from xui_installer.executor import CommandRunner, write_file

logger = logging.getLogger(__name__)

DIRECTIVE = "PasswordAuthentication"
DIRECTIVE_RE = re.compile(
    r"^[ \t]*PasswordAuthentication[ \t]+(\S+)", re.IGNORECASE | re.MULTILINE
)
DENY_RE = re.compile(
    r"^([ \t]*)PasswordAuthentication([ \t]+)no(?=[ \t#]|$)",
    re.IGNORECASE | re.MULTILINE,
)


def password_auth_values(text: str) -> List[str]:
    """
    Return every PasswordAuthentication value set in a config file, lowercased,
    in file order. Commented-out directives are ignored.
    """
    return [m.group(1).lower() for m in DIRECTIVE_RE.finditer(text)]


def enable_password_auth(text: str) -> str:
    """Rewrite each denying directive to permit, keeping indentation and comments."""
    return DENY_RE.sub(r"\1PasswordAuthentication\2yes", text)


def backup_file(path: Path) -> Path:
    """
    Copy a file next to itself with a timestamp suffix. An existing backup is
    never overwritten.
    """
    ts = datetime.datetime.now().strftime("%Y%m%d%H%M%S")
    backup = path.with_name(f"{path.name}.bak.{ts}")
    counter = 1
    while backup.exists():
        backup = path.with_name(f"{path.name}.bak.{ts}.{counter}")
        counter += 1
    shutil.copy2(path, backup)
    logger.info("Backed up %s to %s", path, backup)
    return backup


class SshPasswordAuthEnforcer:
    """Scans sshd_config and its drop-ins and enables password logins."""

    def __init__(self, config: AppConfig, runner: CommandRunner) -> None:
        self.config = config
        self.runner = runner

    def config_files(self) -> List[Path]:
        """The primary config followed by *.conf drop-ins in name order."""
        files = []
        if self.config.sshd_config.is_file():
            files.append(self.config.sshd_config)
        if self.config.sshd_config_dir.is_dir():
            files.extend(
                sorted(
                    p for p in self.config.sshd_config_dir.glob("*.conf") if p.is_file()
                )
            )
        return files

    def _rewrite(self, path: Path, text: str) -> None:
        backup_file(path)
        path.write_text(enable_password_auth(text))

    def ensure(self) -> bool:
        """
        Converge the SSH config.

        Returns:
            True if any file was (or, in dry-run mode, would be) changed
        """
        logger.info("Ensuring SSH password authentication is enabled")
        found_yes = False
        changed = False

        for path in self.config_files():
            try:
                text = path.read_text()
            except OSError as e:
                if not self.runner.dry_run:
                    raise ExecutionError(f"Cannot read {path}: {e}") from e
                logger.warning("Cannot read %s, skipping (dry-run): %s", path, e)
                continue

            values = password_auth_values(text)
            if "yes" in values:
                found_yes = True
            if "no" in values:
                self.runner.apply(
                    f"back up {path} and set {DIRECTIVE} yes",
                    lambda path=path, text=text: self._rewrite(path, text),
                )
                changed = True
                found_yes = True

        if not found_yes:
            dropin = self.config.ssh_dropin
            self.runner.apply(
                f"create {dropin} with {DIRECTIVE} yes (mode 644)",
                lambda: write_file(dropin, f"{DIRECTIVE} yes\n", 0o644),
            )
            changed = True

        if not changed:
            logger.info(
                "SSH password authentication is already enabled; "
                "no SSH config changes needed"
            )
            return False

        self.validate_and_reload()
        return True

    def validate_and_reload(self) -> None:
        """
        Test the new config, then reload sshd. A broken config is fatal; failing
        to reload only warns since the files on disk are already correct.
        """
        if shutil.which("sshd") is not None:
            try:
                self.runner.run(["sshd", "-t"])
            except ExecutionError as e:
                raise ExecutionError(
                    f"sshd config validation failed after updating {DIRECTIVE}: {e}"
                ) from e

        for cmd in SSH_RELOAD_CASCADE:
            result = self.runner.run(cmd, check=False)
            if result is None:
                return
            if result.returncode == 0:
                logger.info("%s %s service succeeded", cmd[1].capitalize(), cmd[2])
                return

        logger.warning(
            "Could not reload/restart SSH service automatically; "
            "please run: systemctl restart ssh"
        )
