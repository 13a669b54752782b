"""
Orchestrates the ordered convergence steps of an installation run.

Steps execute strictly in sequence; the first SetupError stops the run with
no rollback. The health check may end the run early when the panel is
already working and no reinstall was forced.
"""

import atexit
import datetime
import logging
import shutil
import signal
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import requests

from xui_installer.config import AppConfig
from xui_installer.console import console, create_header, print_section, status_report
from xui_installer.errors import SetupError
from xui_installer.executor import CommandRunner
from xui_installer.models import InstallContext, InstallRequest, StepStatus
from xui_installer.panel import PanelManager, SummaryReporter
from xui_installer.release import (
    ArtifactInstaller,
    Downloader,
    ReleaseResolver,
    create_session,
    detect_arch,
)
from xui_installer.ssh import SshPasswordAuthEnforcer
from xui_installer.system import AccountProvisioner, DependencyInstaller, PreflightChecker

logger = logging.getLogger(__name__)

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGHUP)


@dataclass
class StepResult:
    message: str = ""
    halt: bool = False


@dataclass
class Step:
    name: str
    description: str
    action: Callable[[], Optional[StepResult]]


class PanelInstaller:
    """Main orchestration class for a 3x-ui installation run."""

    def __init__(
        self,
        request: InstallRequest,
        config: Optional[AppConfig] = None,
        runner: Optional[CommandRunner] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.request = request
        self.config = config or AppConfig()
        self.runner = runner or CommandRunner(dry_run=request.dry_run)
        self.session = session or create_session()
        self.ctx = InstallContext(request=request)

        self.preflight = PreflightChecker(self.config)
        self.dependencies = DependencyInstaller(self.runner)
        self.accounts = AccountProvisioner(self.config, self.runner)
        self.ssh = SshPasswordAuthEnforcer(self.config, self.runner)
        self.panel = PanelManager(self.config, self.runner)
        self.releases = ReleaseResolver(self.config, self.runner, self.session)
        self.artifacts = ArtifactInstaller(
            self.config,
            self.runner,
            Downloader(self.session, self.config.download_timeout),
        )
        self.reporter = SummaryReporter(self.panel)
        self._payload: Optional[Path] = None

        self.steps: List[Step] = [
            Step("preflight", "Pre-flight checks", self.check_preflight),
            Step("dependencies", "Install dependencies", self.install_dependencies),
            Step("account", "Provision system account", self.provision_account),
            Step("ssh", "Enable SSH password authentication", self.enable_ssh_passwords),
            Step("health", "Check existing installation", self.check_health),
            Step("release", "Resolve release", self.resolve_release),
            Step("download", "Download and unpack", self.download),
            Step("install", "Install panel files", self.install_files),
            Step("service", "Register service", self.register_service),
            Step("configure", "Configure panel", self.configure_panel),
            Step("start", "Start and verify", self.start_panel),
            Step("summary", "Summary", self.report),
        ]
        self.status: Dict[str, StepStatus] = {
            step.name: StepStatus(step.description) for step in self.steps
        }

    # ------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------
    def check_preflight(self) -> StepResult:
        self.preflight.run(self.request)
        return StepResult("root and platform checks passed")

    def install_dependencies(self) -> StepResult:
        self.dependencies.install(self.request)
        return StepResult("packages installed")

    def provision_account(self) -> StepResult:
        self.accounts.provision(self.request)
        return StepResult(f"user '{self.request.system_username}' ready")

    def enable_ssh_passwords(self) -> StepResult:
        if self.ssh.ensure():
            return StepResult("SSH config updated")
        return StepResult("already enabled")

    def check_health(self) -> StepResult:
        if self.request.force_reinstall:
            return StepResult("reinstall forced")
        if self.panel.is_healthy():
            logger.info("3x-ui is already installed and running healthy; skipping reinstall.")
            logger.info("Use --force if you want to reinstall anyway.")
            return StepResult("healthy install found; skipped", halt=True)
        return StepResult("no healthy install found")

    def resolve_release(self) -> StepResult:
        self.ctx.version = self.releases.resolve_version(self.request.version)
        self.ctx.arch = detect_arch()
        if self.runner.dry_run:
            self.ctx.work_dir = self.config.dry_run_dir
        else:
            self.ctx.work_dir = Path(tempfile.mkdtemp(prefix=self.config.temp_prefix))

        logger.info("Installing 3x-ui version: %s", self.ctx.version)
        logger.info("Using panel path: %s", self.request.panel_path)
        logger.info("Using panel port: %s", self.request.panel_port)
        logger.info("Using panel username: %s", self.request.panel_username)
        logger.info("Using server username: %s", self.request.system_username)
        return StepResult(f"{self.ctx.version} ({self.ctx.arch})")

    def download(self) -> StepResult:
        self._payload = self.artifacts.download_and_unpack(self.ctx)
        return StepResult(self.config.archive_name(self.ctx.arch))

    def install_files(self) -> StepResult:
        self.artifacts.install_files(self.ctx, self._payload)
        return StepResult(str(self.config.install_dir))

    def register_service(self) -> StepResult:
        self.artifacts.register_service()
        return StepResult(str(self.config.service_file))

    def configure_panel(self) -> StepResult:
        self.panel.configure(self.request)
        return StepResult(
            f"port {self.request.panel_port}, path {self.request.panel_path}"
        )

    def start_panel(self) -> StepResult:
        self.panel.start()
        return StepResult("service active")

    def report(self) -> StepResult:
        self.reporter.report(self.request)
        return StepResult()

    # ------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------
    def cleanup(self) -> None:
        """Remove the download directory. Safe to call more than once."""
        work_dir = self.ctx.work_dir
        if work_dir is None or self.runner.dry_run:
            return
        if work_dir.exists():
            shutil.rmtree(work_dir, ignore_errors=True)
            logger.debug("Removed work directory %s", work_dir)

    def _signal_handler(self, signum: int, frame: Optional[Any]) -> None:
        sig_name = signal.Signals(signum).name
        logger.error("Interrupted by %s. Exiting.", sig_name)
        self.cleanup()
        sys.exit(128 + signum)

    def _install_signal_handlers(self) -> Dict[int, Any]:
        previous = {}
        for sig in HANDLED_SIGNALS:
            try:
                previous[sig] = signal.signal(sig, self._signal_handler)
            except (AttributeError, ValueError):
                pass
        return previous

    def run(self) -> int:
        """
        Run every step in order.

        Returns:
            int: Exit code (0 for success or skip, 1 for failure)
        """
        now = datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        console.print(create_header())
        logger.info("Starting 3x-ui installation at %s", now)
        if self.request.dry_run:
            logger.info("Dry-run mode: commands are printed, not executed")

        atexit.register(self.cleanup)
        previous_handlers = self._install_signal_handlers()
        try:
            return self._run_steps()
        finally:
            self.cleanup()
            atexit.unregister(self.cleanup)
            for sig, handler in previous_handlers.items():
                signal.signal(sig, handler)
            status_report(
                [(s.description, s.status, s.message) for s in self.status.values()]
            )

    def _run_steps(self) -> int:
        for index, step in enumerate(self.steps):
            status = self.status[step.name]
            status.status = "in_progress"
            print_section(step.description)
            try:
                result = step.action() or StepResult()
            except SetupError as e:
                status.status = "failed"
                status.message = (str(e).splitlines() or [type(e).__name__])[0]
                logger.error("%s", e)
                return 1
            status.status = "success"
            status.message = result.message

            if result.halt:
                for remaining in self.steps[index + 1:]:
                    self.status[remaining.name].status = "skipped"
                return 0
        return 0
