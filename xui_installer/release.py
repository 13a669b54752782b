"""
Release artifact pipeline: version and architecture resolution, download and
unpack, installation of the payload and registration of the systemd unit.
"""

import logging
import os
import platform
import shutil
import tarfile
from pathlib import Path
from typing import Optional

import requests
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TimeRemainingColumn,
)

from xui_installer import __version__
from xui_installer.config import (
    ARCH_MAP,
    ARM_FAMILY,
    FALLBACK_SERVICE_UNIT,
    SERVICE_NAME,
    SERVICE_UNIT_CANDIDATES,
    AppConfig,
)
from xui_installer.console import console
from xui_installer.errors import (
    ExecutionError,
    NetworkError,
    NotFoundError,
    UnsupportedPlatformError,
)
from xui_installer.executor import CommandRunner
from xui_installer.models import InstallContext

logger = logging.getLogger(__name__)

LATEST_PLACEHOLDER = "<latest>"
PAYLOAD_DIR = "x-ui"


def create_session() -> requests.Session:
    session = requests.Session()
    session.headers.update({"User-Agent": f"x-ui-installer/{__version__}"})
    return session


def detect_arch(machine: Optional[str] = None) -> str:
    """
    Map the kernel machine type to a release architecture.

    Raises:
        UnsupportedPlatformError: For machine types without a release
    """
    machine = machine if machine is not None else platform.machine()
    arch = ARCH_MAP.get(machine)
    if arch is None:
        raise UnsupportedPlatformError(f"Unsupported CPU architecture: {machine}")
    return arch


def safe_extract(archive: Path, dest: Path) -> None:
    """Extract a gzip tarball, refusing members that escape dest."""
    root = dest.resolve()
    try:
        with tarfile.open(archive, "r:gz") as tar:
            for member in tar.getmembers():
                target = (root / member.name).resolve()
                if target != root and root not in target.parents:
                    raise ExecutionError(
                        f"Refusing to extract {member.name}: outside {dest}"
                    )
            if hasattr(tarfile, "data_filter"):
                tar.extractall(dest, filter="data")
            else:
                tar.extractall(dest)
    except tarfile.TarError as e:
        raise ExecutionError(f"Failed to extract {archive}: {e}") from e


class Downloader:
    """Streams upstream files to disk with a progress bar."""

    def __init__(self, session: requests.Session, timeout: int) -> None:
        self.session = session
        self.timeout = timeout

    def fetch(self, url: str, destination: Path) -> Path:
        logger.debug("Downloading %s to %s", url, destination)
        try:
            with self.session.get(url, stream=True, timeout=self.timeout) as response:
                response.raise_for_status()
                total_length = int(response.headers.get("content-length", 0))
                with (
                    open(destination, "wb") as out,
                    Progress(
                        TextColumn("[progress.description]{task.description}"),
                        BarColumn(),
                        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
                        " • ",
                        DownloadColumn(),
                        TimeRemainingColumn(),
                        console=console,
                        transient=True,
                    ) as progress,
                ):
                    task = progress.add_task(
                        f"Downloading {destination.name}", total=total_length or None
                    )
                    for chunk in response.iter_content(chunk_size=8192):
                        if chunk:
                            out.write(chunk)
                            progress.update(task, advance=len(chunk))
        except requests.RequestException as e:
            raise NetworkError(f"Download failed: {url}: {e}") from e
        return destination


# ----------------------------------------------------------------
# Version Resolution
# ----------------------------------------------------------------
class ReleaseResolver:
    """Finds the release tag to install."""

    def __init__(
        self, config: AppConfig, runner: CommandRunner, session: requests.Session
    ) -> None:
        self.config = config
        self.runner = runner
        self.session = session

    def resolve_version(self, pinned: Optional[str]) -> str:
        if pinned:
            return pinned
        if self.runner.dry_run:
            self.runner.render(f"GET {self.config.latest_release_url}")
            return LATEST_PLACEHOLDER
        return self.latest_version()

    def latest_version(self) -> str:
        """
        Query the release API for the newest tag.

        Raises:
            NetworkError: On transport failures or error statuses
            NotFoundError: If the response carries no tag
        """
        url = self.config.latest_release_url
        try:
            response = self.session.get(
                url,
                headers={"Accept": "application/vnd.github+json"},
                timeout=self.config.request_timeout,
            )
            response.raise_for_status()
            data = response.json()
        except ValueError as e:
            raise NotFoundError(f"Release metadata is not valid JSON: {e}") from e
        except requests.RequestException as e:
            raise NetworkError(f"Failed to query {url}: {e}") from e

        tag = data.get("tag_name") if isinstance(data, dict) else None
        if not isinstance(tag, str) or not tag.strip():
            raise NotFoundError("Failed to resolve latest 3x-ui release tag")
        return tag.strip()


# ----------------------------------------------------------------
# Download, Install, Register
# ----------------------------------------------------------------
class ArtifactInstaller:
    """Places a release on disk and registers its service unit."""

    def __init__(
        self, config: AppConfig, runner: CommandRunner, downloader: Downloader
    ) -> None:
        self.config = config
        self.runner = runner
        self.downloader = downloader

    def download_and_unpack(self, ctx: InstallContext) -> Path:
        """
        Fetch the release archive into the work directory and extract it.

        Returns:
            The extracted payload directory
        """
        archive_url = self.config.archive_url(ctx.version, ctx.arch)
        archive_file = ctx.work_dir / self.config.archive_name(ctx.arch)
        payload = ctx.work_dir / PAYLOAD_DIR

        logger.info("Downloading 3x-ui %s (%s)", ctx.version, ctx.arch)
        self.runner.apply(
            f"download {archive_url} to {archive_file}",
            lambda: self.downloader.fetch(archive_url, archive_file),
        )

        logger.info("Extracting package")
        self.runner.apply(
            f"extract {archive_file} into {ctx.work_dir}",
            lambda: safe_extract(archive_file, ctx.work_dir),
        )

        if not self.runner.dry_run and not payload.is_dir():
            raise ExecutionError(f"Unexpected archive structure: {payload} not found")
        return payload

    def _replace_tree(self, payload: Path, install_dir: Path) -> None:
        if install_dir.exists():
            shutil.rmtree(install_dir)
        shutil.copytree(payload, install_dir, symlinks=True)

    def _fetch_executable(self, url: str, destination: Path) -> None:
        os.makedirs(destination.parent, exist_ok=True)
        self.downloader.fetch(url, destination)
        os.chmod(destination, 0o755)

    def install_files(self, ctx: InstallContext, payload: Path) -> None:
        install_dir = self.config.install_dir
        logger.info("Installing files to %s", install_dir)

        # absent or stopped service is fine
        self.runner.run(["systemctl", "stop", SERVICE_NAME], check=False)

        self.runner.apply(
            f"replace {install_dir} with {payload}",
            lambda: self._replace_tree(payload, install_dir),
        )
        for path in (self.config.panel_binary, self.config.panel_script):
            self.runner.apply(f"chmod +x {path}", lambda path=path: make_executable(path))

        bin_dir = install_dir / "bin"
        xray = bin_dir / f"xray-linux-{ctx.arch}"
        if ctx.arch in ARM_FAMILY:
            # the panel looks for the family-generic binary name
            arm_binary = bin_dir / "xray-linux-arm"
            if self.runner.dry_run or xray.is_file():
                self.runner.apply(
                    f"rename {xray} to {arm_binary}", lambda: os.replace(xray, arm_binary)
                )
                self.runner.apply(
                    f"chmod +x {arm_binary}", lambda: make_executable(arm_binary)
                )
        else:
            self.runner.apply(f"chmod +x {xray}", lambda: make_executable(xray))

        cli_url = self.config.raw_url("x-ui.sh")
        cli_script = self.config.cli_script
        self.runner.apply(
            f"download {cli_url} to {cli_script} (mode 755)",
            lambda: self._fetch_executable(cli_url, cli_script),
        )
        self.runner.apply(
            f"create directory {self.config.panel_log_dir}",
            lambda: os.makedirs(self.config.panel_log_dir, exist_ok=True),
        )

    def find_service_unit(self) -> Optional[Path]:
        for name in SERVICE_UNIT_CANDIDATES:
            candidate = self.config.install_dir / name
            if candidate.is_file():
                return candidate
        return None

    def register_service(self) -> None:
        service_file = self.config.service_file
        candidate = self.find_service_unit()

        if candidate is not None:
            self.runner.apply(
                f"copy {candidate} to {service_file}",
                lambda: shutil.copyfile(candidate, service_file),
            )
        else:
            logger.warning(
                "Service file not found in extracted package, downloading Debian unit file"
            )
            unit_url = self.config.raw_url(FALLBACK_SERVICE_UNIT)
            self.runner.apply(
                f"download {unit_url} to {service_file}",
                lambda: self.downloader.fetch(unit_url, service_file),
            )

        self.runner.run(["chown", "root:root", str(service_file)])
        self.runner.apply(
            f"chmod 644 {service_file}", lambda: os.chmod(service_file, 0o644)
        )
        self.runner.run(["systemctl", "daemon-reload"])
        self.runner.run(["systemctl", "enable", SERVICE_NAME])


def make_executable(path: Path) -> None:
    mode = os.stat(path).st_mode
    os.chmod(path, mode | 0o111)
