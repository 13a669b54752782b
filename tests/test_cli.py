import pytest
from click.testing import CliRunner

from xui_installer import cli as cli_module
from xui_installer import installer as installer_module
from xui_installer import system
from xui_installer.cli import cli, main

from conftest import make_config


@pytest.fixture
def sandbox(tmp_path, monkeypatch, fake_run):
    """Keep every host path under tmp_path and make the host look like amd64."""
    monkeypatch.setattr(cli_module, "AppConfig", lambda **kw: make_config(tmp_path, **kw))
    monkeypatch.setattr(installer_module, "detect_arch", lambda: "amd64")
    monkeypatch.setattr(system, "user_exists", lambda name: False)
    return tmp_path


def test_help():
    result = CliRunner().invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "--panel-username" in result.output
    assert "--dry-run" in result.output


def test_main_help_exits_zero():
    assert main(["-h"]) == 0


def test_missing_username(sandbox, capsys):
    assert main(["--password", "secret", "--dry-run"]) == 1
    assert "Missing panel username" in capsys.readouterr().out


@pytest.mark.parametrize("port", ["0", "65536", "http"])
def test_invalid_port(sandbox, port):
    assert main(["--username", "ops", "--password", "pw", "--port", port, "--dry-run"]) == 1


def test_invalid_path(sandbox):
    assert main(["--username", "ops", "--password", "pw", "--path", "a/../b", "--dry-run"]) == 1


def test_unknown_option():
    assert main(["--bogus"]) == 1


def test_bad_flags_write_no_log_file(sandbox):
    log_file = sandbox / "logs" / "installer.log"
    code = main(["--username", "ops", "--password", "pw", "--port", "0", "--log-file", str(log_file)])
    assert code == 1
    assert not log_file.parent.exists()


def test_dry_run_end_to_end(sandbox, fake_run, capsys):
    log_file = sandbox / "installer.log"
    code = main(
        ["--username", "test", "--password", "test", "--dry-run", "--log-file", str(log_file)]
    )

    out = capsys.readouterr().out
    assert code == 0
    assert "[DRY-RUN] apt-get update" in out
    assert "Dry run complete" in out
    assert fake_run.calls == []
    assert not log_file.exists()


def test_interrupt_exits_130(sandbox, monkeypatch):
    def interrupted(self):
        raise KeyboardInterrupt

    monkeypatch.setattr(installer_module.PanelInstaller, "run", interrupted)
    assert main(["--username", "ops", "--password", "pw", "--dry-run"]) == 130
