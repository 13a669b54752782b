"""
Host-level convergence steps: preflight checks, OS packages and the
privileged system account.
"""

import logging
import os
import pwd
import shutil

from xui_installer.config import PACKAGES, AppConfig
from xui_installer.errors import ExecutionError, PlatformError, PrivilegeError
from xui_installer.executor import CommandRunner, write_file
from xui_installer.models import InstallRequest

logger = logging.getLogger(__name__)

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


# ----------------------------------------------------------------
# Preflight
# ----------------------------------------------------------------
class PreflightChecker:
    """Checks that the host can be provisioned at all."""

    def __init__(self, config: AppConfig) -> None:
        self.config = config

    def check_root(self) -> None:
        """
        Ensure the installer runs as root.

        Raises:
            PrivilegeError: If not running as root
        """
        if os.geteuid() != 0:
            raise PrivilegeError("This installer must run as root")
        logger.debug("Root privileges confirmed.")

    def check_platform(self) -> None:
        """
        Ensure the Debian/Ubuntu tooling the installer drives is present.

        Raises:
            PlatformError: If apt-get or systemctl is missing
        """
        for cmd in self.config.required_commands:
            if shutil.which(cmd) is None:
                if cmd == "apt-get":
                    raise PlatformError(
                        "This installer currently supports Debian/Ubuntu only "
                        "(apt-get is required)"
                    )
                raise PlatformError(f"{cmd} is required")

    def run(self, request: InstallRequest) -> None:
        """Run all checks; a dry run only warns since it mutates nothing."""
        for check in (self.check_root, self.check_platform):
            try:
                check()
            except (PrivilegeError, PlatformError) as e:
                if not request.dry_run:
                    raise
                logger.warning("%s (ignored in dry-run mode)", e)


# ----------------------------------------------------------------
# OS Packages
# ----------------------------------------------------------------
class DependencyInstaller:
    """Installs the fixed package set through apt-get."""

    def __init__(self, runner: CommandRunner) -> None:
        self.runner = runner

    def install(self, request: InstallRequest) -> None:
        logger.info("Running apt update and installing dependencies")
        self.runner.run(["apt-get", "update"], env=APT_ENV)
        self.runner.run(
            ["apt-get", "install", "-y", "--no-install-recommends", *PACKAGES],
            env=APT_ENV,
        )


# ----------------------------------------------------------------
# System Account
# ----------------------------------------------------------------
def user_exists(username: str) -> bool:
    try:
        pwd.getpwnam(username)
    except KeyError:
        return False
    return True


class AccountProvisioner:
    """
    Creates or updates the Linux account and grants it passwordless sudo.

    Absent accounts are created with a home directory and the default shell.
    Both paths then set the password, add the admin group and install a
    validated sudoers drop-in, so repeated runs converge on the same state.
    """

    def __init__(self, config: AppConfig, runner: CommandRunner) -> None:
        self.config = config
        self.runner = runner

    def provision(self, request: InstallRequest) -> None:
        username = request.system_username
        logger.info("Creating/updating Linux user '%s' with root-like sudo access", username)

        if user_exists(username):
            logger.info(
                "Linux user '%s' already exists, updating password and privileges",
                username,
            )
        else:
            self.runner.run(
                ["useradd", "-m", "-s", self.config.default_shell, username]
            )

        self.runner.run(
            ["chpasswd"], input_text=f"{username}:{request.system_password}\n"
        )
        self.runner.run(["usermod", "-aG", self.config.admin_group, username])
        self.install_sudoers_rule(username)

    def install_sudoers_rule(self, username: str) -> None:
        """
        Stage the drop-in under a name sudo ignores, validate it with visudo
        and only then move it into place.
        """
        target = self.config.sudoers_file(username)
        staged = target.with_name(f"{target.name}.tmp")
        rule = f"{username} ALL=(ALL:ALL) NOPASSWD:ALL\n"

        self.runner.apply(
            f"write NOPASSWD sudo rule to {staged} (mode 440)",
            lambda: write_file(staged, rule, 0o440),
        )
        try:
            self.runner.run(["visudo", "-cf", str(staged)])
        except ExecutionError:
            self.runner.apply(
                f"remove {staged}", lambda: staged.unlink(missing_ok=True)
            )
            raise
        self.runner.apply(
            f"move {staged} to {target}", lambda: os.replace(staged, target)
        )
        logger.debug("Installed sudoers drop-in %s", target)
