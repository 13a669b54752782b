"""
Installer configuration: filesystem locations, upstream endpoints and the
fixed package and architecture tables.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Tuple

# ----------------------------------------------------------------
# Upstream & Defaults
# ----------------------------------------------------------------
REPO_OWNER: str = "MHSanaei"
REPO_NAME: str = "3x-ui"
SERVICE_NAME: str = "x-ui"
DEFAULT_PANEL_PORT: int = 2053
ROOT_PATH: str = "/"

# Packages required on the host
PACKAGES: List[str] = [
    # Archive and transfer tools
    "curl",
    "tar",
    # Certificate store
    "ca-certificates",
    # Privilege escalation
    "sudo",
    # Auxiliary CLI utilities
    "nload",
    "fzf",
    "figlet",
]

# uname -m value -> release architecture
ARCH_MAP: Dict[str, str] = {
    "x86_64": "amd64",
    "x64": "amd64",
    "amd64": "amd64",
    "i386": "386",
    "i486": "386",
    "i586": "386",
    "i686": "386",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "armv7",
    "armv7": "armv7",
    "armhf": "armv7",
    "arm": "armv7",
    "armv6l": "armv6",
    "armv6": "armv6",
    "armv5tel": "armv5",
    "armv5": "armv5",
    "s390x": "s390x",
}

# Architectures whose xray binary is shipped under the family name
ARM_FAMILY: Tuple[str, ...] = ("armv5", "armv6", "armv7")

# Unit files looked up in the release payload, in priority order
SERVICE_UNIT_CANDIDATES: Tuple[str, ...] = (
    "x-ui.service",
    "x-ui.service.debian",
    "x-ui.service.rhel",
)
FALLBACK_SERVICE_UNIT: str = "x-ui.service.debian"

# SSH reload attempts, tried in order until one succeeds
SSH_RELOAD_CASCADE: List[List[str]] = [
    ["systemctl", "reload", "ssh"],
    ["systemctl", "restart", "ssh"],
    ["systemctl", "reload", "sshd"],
    ["systemctl", "restart", "sshd"],
]


@dataclass(frozen=True)
class AppConfig:
    """Paths, endpoints and timeouts used by every installer step."""

    # Panel installation
    install_dir: Path = Path("/usr/local/x-ui")
    service_file: Path = Path("/etc/systemd/system/x-ui.service")
    cli_script: Path = Path("/usr/bin/x-ui")
    panel_log_dir: Path = Path("/var/log/x-ui")

    # System account
    sudoers_dir: Path = Path("/etc/sudoers.d")
    admin_group: str = "sudo"
    default_shell: str = "/bin/bash"

    # SSH daemon
    sshd_config: Path = Path("/etc/ssh/sshd_config")
    sshd_config_dir: Path = Path("/etc/ssh/sshd_config.d")
    ssh_dropin_name: str = "99-enable-password-auth.conf"

    # Installer runtime
    log_file: Path = Path("/var/log/x-ui-installer.log")
    max_log_size: int = 10 * 1024 * 1024  # 10MB
    dry_run_dir: Path = Path("/tmp/3x-ui-dry-run")
    temp_prefix: str = "x-ui-install-"

    # Upstream endpoints
    api_base: str = "https://api.github.com"
    download_base: str = "https://github.com"
    raw_base: str = "https://raw.githubusercontent.com"
    request_timeout: int = 30  # seconds
    download_timeout: int = 120  # seconds

    required_commands: Tuple[str, ...] = field(
        default_factory=lambda: ("apt-get", "systemctl")
    )

    @property
    def panel_binary(self) -> Path:
        return self.install_dir / SERVICE_NAME

    @property
    def panel_script(self) -> Path:
        return self.install_dir / "x-ui.sh"

    @property
    def ssh_dropin(self) -> Path:
        return self.sshd_config_dir / self.ssh_dropin_name

    @property
    def latest_release_url(self) -> str:
        return f"{self.api_base}/repos/{REPO_OWNER}/{REPO_NAME}/releases/latest"

    def sudoers_file(self, username: str) -> Path:
        return self.sudoers_dir / f"90-{username}"

    def archive_name(self, arch: str) -> str:
        return f"x-ui-linux-{arch}.tar.gz"

    def archive_url(self, version: str, arch: str) -> str:
        return (
            f"{self.download_base}/{REPO_OWNER}/{REPO_NAME}/releases/download/"
            f"{version}/{self.archive_name(arch)}"
        )

    def raw_url(self, filename: str) -> str:
        return f"{self.raw_base}/{REPO_OWNER}/{REPO_NAME}/main/{filename}"
