import io
import subprocess
import tarfile
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest
import requests

from xui_installer.config import AppConfig
from xui_installer.models import InstallRequest

SETTINGS_OUTPUT = (
    "current panel settings as follows:\n"
    "hasDefaultCredential: false\n"
    "port: 2053\n"
    "webBasePath: /panel/\n"
)


def make_config(root: Path, **overrides) -> AppConfig:
    """AppConfig with every host path moved under root."""
    values = dict(
        install_dir=root / "usr/local/x-ui",
        service_file=root / "etc/systemd/system/x-ui.service",
        cli_script=root / "usr/bin/x-ui",
        panel_log_dir=root / "var/log/x-ui",
        sudoers_dir=root / "etc/sudoers.d",
        sshd_config=root / "etc/ssh/sshd_config",
        sshd_config_dir=root / "etc/ssh/sshd_config.d",
        log_file=root / "var/log/x-ui-installer.log",
        dry_run_dir=root / "tmp/3x-ui-dry-run",
    )
    values.update(overrides)
    return AppConfig(**values)


def make_request(**overrides) -> InstallRequest:
    values = dict(
        panel_username="paneladmin",
        panel_password="panel-secret",
        system_username="opsuser",
        system_password="system-secret",
    )
    values.update(overrides)
    return InstallRequest(**values)


def build_release_archive(arch: str = "amd64", units=("x-ui.service",)) -> bytes:
    """A gzip tarball shaped like an upstream x-ui-linux-<arch> release."""
    files = {
        "x-ui/x-ui": b"#!/bin/sh\n",
        "x-ui/x-ui.sh": b"#!/bin/sh\n",
        f"x-ui/bin/xray-linux-{arch}": b"\x7fELF",
    }
    for unit in units:
        files[f"x-ui/{unit}"] = f"[Unit]\nDescription={unit}\n".encode()

    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


class FakeRun:
    """Stand-in for subprocess.run that records calls and returns canned results."""

    def __init__(self) -> None:
        self.calls: List[List[str]] = []
        self.inputs: List[Optional[str]] = []
        self.results: List[Tuple[Tuple[str, ...], int, str]] = []

    def respond(self, prefix: Tuple[str, ...], returncode: int = 0, stdout: str = "") -> None:
        """Calls whose argv starts with prefix get this result; later rules win."""
        self.results.insert(0, (prefix, returncode, stdout))

    def __call__(self, cmd, input=None, **kwargs):
        cmd = [str(part) for part in cmd]
        self.calls.append(cmd)
        self.inputs.append(input)
        for prefix, returncode, stdout in self.results:
            if tuple(cmd[: len(prefix)]) == prefix:
                return subprocess.CompletedProcess(cmd, returncode, stdout, "")
        return subprocess.CompletedProcess(cmd, 0, "", "")

    def commands(self) -> List[str]:
        return [" ".join(cmd) for cmd in self.calls]


class FakeResponse:
    def __init__(self, status_code: int = 200, content: bytes = b"", json_data=None):
        self.status_code = status_code
        self.content = content
        self._json = json_data
        self.headers = {"content-length": str(len(content))}

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)

    def json(self):
        if self._json is None:
            raise ValueError("No JSON object could be decoded")
        return self._json

    def iter_content(self, chunk_size: int = 8192):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i : i + chunk_size]

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False


class FakeSession:
    """Serves canned responses by URL and records requested URLs."""

    def __init__(self, routes: Optional[Dict[str, FakeResponse]] = None) -> None:
        self.routes = routes or {}
        self.requested: List[str] = []

    def get(self, url, **kwargs):
        self.requested.append(url)
        response = self.routes.get(url)
        if isinstance(response, Exception):
            raise response
        if response is None:
            return FakeResponse(status_code=404)
        return response


def release_routes(config: AppConfig, version: str = "v2.6.5", arch: str = "amd64", **kwargs):
    return {
        config.latest_release_url: FakeResponse(json_data={"tag_name": version}),
        config.archive_url(version, arch): FakeResponse(
            content=build_release_archive(arch, **kwargs)
        ),
        config.raw_url("x-ui.sh"): FakeResponse(content=b"#!/bin/bash\necho x-ui\n"),
        config.raw_url("x-ui.service.debian"): FakeResponse(
            content=b"[Unit]\nDescription=x-ui fallback\n"
        ),
    }


@pytest.fixture
def config(tmp_path) -> AppConfig:
    cfg = make_config(tmp_path)
    cfg.service_file.parent.mkdir(parents=True)
    cfg.sshd_config_dir.mkdir(parents=True)
    return cfg


@pytest.fixture
def fake_run(monkeypatch) -> FakeRun:
    fake = FakeRun()
    monkeypatch.setattr(subprocess, "run", fake)
    return fake
