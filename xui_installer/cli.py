"""
Command line entry point for the 3x-ui installer.
"""

import sys
from pathlib import Path
from typing import List, Optional

import click
from rich.traceback import install as install_rich_traceback

from xui_installer.config import DEFAULT_PANEL_PORT, AppConfig
from xui_installer.console import console, setup_logging
from xui_installer.errors import ConfigurationError
from xui_installer.installer import PanelInstaller
from xui_installer.resolver import CredentialFlags, resolve_request

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"], "max_content_width": 100}


@click.command(context_settings=CONTEXT_SETTINGS)
@click.option("--username", help="Shared username for both panel and Linux user")
@click.option("--password", help="Shared password for both panel and Linux user")
@click.option("--panel-username", help="Panel username (can differ from Linux user)")
@click.option("--panel-password", help="Panel password (can differ from Linux user)")
@click.option("--server-username", help="Linux username with sudo privileges")
@click.option("--server-password", help="Linux user password")
@click.option("--path", "panel_path", help="Panel URL path (e.g. panel or admin/panel). Default: root path")
@click.option("--port", default=str(DEFAULT_PANEL_PORT), show_default=True, help="Panel port")
@click.option("--version", "version", help="3x-ui release tag (e.g. v2.6.5). Default: latest release")
@click.option("--force", is_flag=True, help="Force reinstall even if 3x-ui is already healthy")
@click.option("--dry-run", is_flag=True, help="Print commands without executing them")
@click.option("--verbose", is_flag=True, help="Show debug output on the console")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=str(AppConfig.log_file),
    show_default=True,
    help="Installer log file (not written in dry-run mode)",
)
@click.pass_context
def cli(
    ctx: click.Context,
    username: Optional[str],
    password: Optional[str],
    panel_username: Optional[str],
    panel_password: Optional[str],
    server_username: Optional[str],
    server_password: Optional[str],
    panel_path: Optional[str],
    port: str,
    version: Optional[str],
    force: bool,
    dry_run: bool,
    verbose: bool,
    log_file: Path,
) -> None:
    """
    Install and configure the 3x-ui panel on Debian/Ubuntu.

    Use shared credentials via --username/--password, or set panel and Linux
    credentials separately. Explicit panel/server values take precedence.
    """
    config = AppConfig(log_file=log_file)
    logger = setup_logging(None, verbose=verbose)

    flags = CredentialFlags(
        username=username,
        password=password,
        panel_username=panel_username,
        panel_password=panel_password,
        server_username=server_username,
        server_password=server_password,
    )
    try:
        request = resolve_request(
            flags,
            path=panel_path,
            port=port,
            version=version,
            force_reinstall=force,
            dry_run=dry_run,
        )
    except ConfigurationError as e:
        logger.error("%s", e)
        ctx.exit(1)

    if not dry_run:
        setup_logging(config.log_file, verbose=verbose, max_size=config.max_log_size)
    ctx.exit(PanelInstaller(request, config=config).run())


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run the installer and return its exit code. Usage errors exit with 1
    rather than click's default 2.
    """
    install_rich_traceback(show_locals=False)
    try:
        rv = cli.main(
            args=argv, prog_name="x-ui-installer", standalone_mode=False
        )
    except click.ClickException as e:
        e.show()
        return 1
    except (click.Abort, KeyboardInterrupt):
        console.print()
        console.print("[warning]Process interrupted by user[/warning]")
        return 130
    return rv if isinstance(rv, int) else 0


if __name__ == "__main__":
    sys.exit(main())
