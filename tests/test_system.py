import logging
import os

import pytest

from xui_installer import system
from xui_installer.config import PACKAGES
from xui_installer.errors import ExecutionError, PlatformError, PrivilegeError
from xui_installer.executor import CommandRunner
from xui_installer.system import AccountProvisioner, DependencyInstaller, PreflightChecker

from conftest import make_request


@pytest.fixture
def user_absent(monkeypatch):
    monkeypatch.setattr(system, "user_exists", lambda name: False)


@pytest.fixture
def user_present(monkeypatch):
    monkeypatch.setattr(system, "user_exists", lambda name: True)


def test_dependencies_installed_noninteractively(fake_run):
    DependencyInstaller(CommandRunner()).install(make_request())
    assert fake_run.calls == [
        ["apt-get", "update"],
        ["apt-get", "install", "-y", "--no-install-recommends", *PACKAGES],
    ]


def test_dependency_failure_is_fatal(fake_run):
    fake_run.respond(("apt-get", "update"), returncode=100)
    with pytest.raises(ExecutionError):
        DependencyInstaller(CommandRunner()).install(make_request())
    assert len(fake_run.calls) == 1


def test_absent_user_is_created(config, fake_run, user_absent):
    AccountProvisioner(config, CommandRunner()).provision(make_request())

    assert fake_run.commands()[:3] == [
        "useradd -m -s /bin/bash opsuser",
        "chpasswd",
        "usermod -aG sudo opsuser",
    ]
    assert "opsuser:system-secret\n" in fake_run.inputs
    sudoers = config.sudoers_file("opsuser")
    assert sudoers.read_text() == "opsuser ALL=(ALL:ALL) NOPASSWD:ALL\n"
    assert sudoers.stat().st_mode & 0o777 == 0o440
    assert not sudoers.with_name("90-opsuser.tmp").exists()


def test_present_user_is_updated(config, fake_run, user_present, caplog):
    with caplog.at_level(logging.INFO):
        AccountProvisioner(config, CommandRunner()).provision(make_request())

    assert not any(cmd[0] == "useradd" for cmd in fake_run.calls)
    assert ["chpasswd"] in fake_run.calls
    assert "already exists" in caplog.text


def test_sudoers_validated_before_install(config, fake_run, user_present):
    AccountProvisioner(config, CommandRunner()).provision(make_request())
    staged = config.sudoers_dir / "90-opsuser.tmp"
    assert ["visudo", "-cf", str(staged)] in fake_run.calls


def test_invalid_sudoers_is_not_left_in_place(config, fake_run, user_present):
    fake_run.respond(("visudo",), returncode=1)

    with pytest.raises(ExecutionError):
        AccountProvisioner(config, CommandRunner()).provision(make_request())

    assert not config.sudoers_file("opsuser").exists()
    assert list(config.sudoers_dir.iterdir()) == []


def test_rerun_converges_to_same_state(config, fake_run, user_present):
    provisioner = AccountProvisioner(config, CommandRunner())
    provisioner.provision(make_request())
    first = config.sudoers_file("opsuser").read_text()
    provisioner.provision(make_request())
    assert config.sudoers_file("opsuser").read_text() == first
    assert len(list(config.sudoers_dir.iterdir())) == 1


def test_dry_run_hides_password(config, fake_run, user_absent):
    runner = CommandRunner(dry_run=True)
    AccountProvisioner(config, runner).provision(make_request())

    assert fake_run.calls == []
    assert not config.sudoers_dir.exists()
    assert "useradd -m -s /bin/bash opsuser" in runner.history
    assert not any("system-secret" in line for line in runner.history)


def test_preflight_requires_root(config, monkeypatch):
    monkeypatch.setattr(os, "geteuid", lambda: 1000)
    with pytest.raises(PrivilegeError):
        PreflightChecker(config).run(make_request())


def test_preflight_requires_apt(config, monkeypatch):
    monkeypatch.setattr(os, "geteuid", lambda: 0)
    monkeypatch.setattr(system.shutil, "which", lambda name: None)
    with pytest.raises(PlatformError, match="apt-get is required"):
        PreflightChecker(config).run(make_request())


def test_preflight_only_warns_in_dry_run(config, monkeypatch, caplog):
    monkeypatch.setattr(os, "geteuid", lambda: 1000)
    monkeypatch.setattr(system.shutil, "which", lambda name: None)
    with caplog.at_level(logging.WARNING):
        PreflightChecker(config).run(make_request(dry_run=True))
    assert "must run as root" in caplog.text
