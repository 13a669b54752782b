"""
Turns raw command line values into a validated InstallRequest.
"""

from dataclasses import dataclass
from typing import Optional, Tuple, Union

from xui_installer.config import DEFAULT_PANEL_PORT
from xui_installer.errors import ConfigurationError
from xui_installer.models import InstallRequest
from xui_installer.validators import (
    normalize_panel_path,
    validate_port,
    validate_system_username,
)


@dataclass(frozen=True)
class CredentialFlags:
    """Credential flags exactly as given on the command line."""

    username: Optional[str] = None
    password: Optional[str] = None
    panel_username: Optional[str] = None
    panel_password: Optional[str] = None
    server_username: Optional[str] = None
    server_password: Optional[str] = None


def _pick(explicit: Optional[str], shared: Optional[str]) -> str:
    return explicit or shared or ""


def resolve_credentials(flags: CredentialFlags) -> Tuple[str, str, str, str]:
    """
    Merge shared and per-target credentials. Explicit panel/server values win
    over the shared --username/--password.

    Returns:
        (panel_username, panel_password, system_username, system_password)

    Raises:
        ConfigurationError: naming the flag to supply for the first missing value
    """
    panel_username = _pick(flags.panel_username, flags.username)
    panel_password = _pick(flags.panel_password, flags.password)
    system_username = _pick(flags.server_username, flags.username)
    system_password = _pick(flags.server_password, flags.password)

    required = [
        (panel_username, "panel username", "--panel-username", "--username"),
        (panel_password, "panel password", "--panel-password", "--password"),
        (system_username, "server username", "--server-username", "--username"),
        (system_password, "server password", "--server-password", "--password"),
    ]
    for value, label, split_flag, shared_flag in required:
        if not value:
            raise ConfigurationError(
                f"Missing {label}. Use {split_flag} or {shared_flag}"
            )

    return panel_username, panel_password, system_username, system_password


def resolve_request(
    flags: CredentialFlags,
    path: Optional[str] = None,
    port: Union[int, str] = DEFAULT_PANEL_PORT,
    version: Optional[str] = None,
    force_reinstall: bool = False,
    dry_run: bool = False,
) -> InstallRequest:
    """Build the immutable request every step receives."""
    panel_user, panel_pass, system_user, system_pass = resolve_credentials(flags)
    validate_system_username(system_user)

    return InstallRequest(
        panel_username=panel_user,
        panel_password=panel_pass,
        system_username=system_user,
        system_password=system_pass,
        panel_path=normalize_panel_path(path or ""),
        panel_port=validate_port(port),
        version=version or None,
        force_reinstall=force_reinstall,
        dry_run=dry_run,
    )
