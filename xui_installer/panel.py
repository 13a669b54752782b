"""
Everything that talks to the installed panel binary: health probing,
configuration through its own subcommands, start-up and the final summary.
"""

import logging
import os
import re
from typing import Dict, List, Optional

from rich.box import ROUNDED
from rich.panel import Panel
from rich.style import Style
from rich.text import Text

from xui_installer.config import ROOT_PATH, SERVICE_NAME, AppConfig
from xui_installer.console import NordColors, console
from xui_installer.errors import ExecutionError
from xui_installer.executor import CommandRunner
from xui_installer.models import InstallRequest, PanelSettings

logger = logging.getLogger(__name__)

SETTING_LINE_RE = re.compile(r"^\s*([A-Za-z][A-Za-z0-9_]*):\s+(\S.*?)\s*$")

PORT_PLACEHOLDER = "<panel-port>"
HOST_PLACEHOLDER = "<server-ip>"


def parse_key_values(text: str) -> Dict[str, str]:
    """
    Parse 'key: value' lines. Lines that do not fit the grammar are skipped;
    the first occurrence of a key wins.
    """
    values: Dict[str, str] = {}
    for line in text.splitlines():
        match = SETTING_LINE_RE.match(line)
        if match and match.group(1) not in values:
            values[match.group(1)] = match.group(2)
    return values


def parse_panel_settings(text: str) -> PanelSettings:
    """Extract port and webBasePath from `x-ui setting -show true` output."""
    values = parse_key_values(text)
    return PanelSettings(
        port=values.get("port"),
        web_base_path=values.get("webBasePath"),
    )


def panel_url(host: str, port: str, base_path: str) -> str:
    if not base_path.startswith("/"):
        base_path = f"/{base_path}"
    return f"http://{host}:{port}{base_path}"


class PanelManager:
    """Drives the panel binary's CLI and the systemd unit."""

    def __init__(self, config: AppConfig, runner: CommandRunner) -> None:
        self.config = config
        self.runner = runner

    @property
    def binary(self) -> str:
        return str(self.config.panel_binary)

    def show_settings_cmd(self) -> List[str]:
        return [self.binary, "setting", "-show", "true"]

    def is_healthy(self) -> bool:
        """
        True iff the binary is executable, the service is active and the
        binary's status subcommand succeeds.
        """
        binary = self.config.panel_binary
        if not (binary.is_file() and os.access(binary, os.X_OK)):
            logger.debug("Panel binary %s missing or not executable", binary)
            return False
        if not self.runner.succeeds(["systemctl", "is-active", "--quiet", SERVICE_NAME]):
            logger.debug("Service %s is not active", SERVICE_NAME)
            return False
        if not self.runner.succeeds(self.show_settings_cmd()):
            logger.debug("Panel status subcommand failed")
            return False
        return True

    def configure(self, request: InstallRequest) -> None:
        logger.info("Configuring panel credentials, path, and port")
        cmd = [
            self.binary,
            "setting",
            "-username",
            request.panel_username,
            "-password",
            request.panel_password,
            "-port",
            str(request.panel_port),
            "-webBasePath",
            request.panel_path,
            "-resetTwoFactor",
            "true",
        ]
        # cmd[5] is the -password value
        self.runner.run(cmd, secret_args=(5,))

        logger.info("Disabling panel SSL certificate configuration (HTTP-only by default)")
        self.runner.run([self.binary, "cert", "-reset"])

        logger.info("Running 3x-ui database migration")
        self.runner.run([self.binary, "migrate"])

    def start(self) -> None:
        self.runner.run(["systemctl", "start", SERVICE_NAME])
        if self.runner.dry_run:
            return
        if not self.runner.succeeds(["systemctl", "is-active", "--quiet", SERVICE_NAME]):
            raise ExecutionError(f"{SERVICE_NAME} service is not active after start")
        logger.info("%s service is active", SERVICE_NAME)

    def current_settings(self) -> PanelSettings:
        result = self.runner.probe(self.show_settings_cmd())
        if result.returncode != 0:
            return PanelSettings()
        return parse_panel_settings(result.stdout or "")

    def host_address(self) -> Optional[str]:
        result = self.runner.probe(["hostname", "-I"])
        if result.returncode != 0:
            return None
        addresses = (result.stdout or "").split()
        return addresses[0] if addresses else None


class SummaryReporter:
    """Prints the final report with credentials and the panel URL."""

    def __init__(self, panel: PanelManager) -> None:
        self.panel = panel

    def report(self, request: InstallRequest) -> None:
        if request.dry_run:
            logger.info("Dry run complete")
            return

        settings = self.panel.current_settings()
        port = settings.port or PORT_PLACEHOLDER
        base_path = settings.web_base_path or ROOT_PATH
        host = self.panel.host_address() or HOST_PLACEHOLDER

        lines = [
            ("Panel Username", request.panel_username),
            ("Panel Password", request.panel_password),
            ("Server Username", request.system_username),
            ("Server Password", request.system_password),
            ("SSL", "disabled by default"),
            ("Panel URL", panel_url(host, port, base_path)),
        ]
        body = Text()
        for label, value in lines:
            body.append(f"{label}: ", style=f"bold {NordColors.FROST_2}")
            body.append(f"{value}\n", style=NordColors.SNOW_STORM_1)

        console.print()
        console.print(
            Panel(
                body,
                title=f"[bold {NordColors.GREEN}]3x-ui installation completed.[/]",
                border_style=Style(color=NordColors.FROST_1),
                box=ROUNDED,
                padding=(1, 2),
            )
        )
        logger.info("Panel URL: %s", panel_url(host, port, base_path))
