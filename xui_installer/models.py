"""
Value types shared by the installer steps.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from xui_installer.config import DEFAULT_PANEL_PORT, ROOT_PATH


@dataclass(frozen=True)
class InstallRequest:
    """Resolved and validated installer arguments."""

    panel_username: str
    panel_password: str = field(repr=False)
    system_username: str
    system_password: str = field(repr=False)
    panel_path: str = ROOT_PATH
    panel_port: int = DEFAULT_PANEL_PORT
    version: Optional[str] = None
    force_reinstall: bool = False
    dry_run: bool = False


@dataclass(frozen=True)
class PanelSettings:
    """Settings reported by the panel's own status subcommand."""

    port: Optional[str] = None
    web_base_path: Optional[str] = None


@dataclass
class StepStatus:
    description: str
    status: str = "pending"
    message: str = ""


@dataclass
class InstallContext:
    """Per-run state handed to every step."""

    request: InstallRequest
    version: Optional[str] = None
    arch: Optional[str] = None
    work_dir: Optional[Path] = None
