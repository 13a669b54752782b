import pytest

from xui_installer.errors import ConfigurationError
from xui_installer.resolver import CredentialFlags, resolve_credentials, resolve_request


def test_shared_credentials_fill_both_targets():
    flags = CredentialFlags(username="admin", password="secret")
    assert resolve_credentials(flags) == ("admin", "secret", "admin", "secret")


def test_split_values_take_precedence_over_shared():
    flags = CredentialFlags(
        username="shared",
        password="shared-pass",
        panel_username="web",
        server_password="os-pass",
    )
    assert resolve_credentials(flags) == ("web", "shared-pass", "shared", "os-pass")


def test_split_only_credentials():
    flags = CredentialFlags(
        panel_username="web",
        panel_password="p1",
        server_username="ops",
        server_password="p2",
    )
    assert resolve_credentials(flags) == ("web", "p1", "ops", "p2")


@pytest.mark.parametrize(
    "flags,flag_hint",
    [
        (CredentialFlags(password="x"), "--panel-username"),
        (CredentialFlags(username="x"), "--panel-password"),
        (
            CredentialFlags(panel_username="a", panel_password="b", server_password="c"),
            "--server-username",
        ),
        (
            CredentialFlags(panel_username="a", panel_password="b", server_username="c"),
            "--server-password",
        ),
    ],
)
def test_missing_value_names_the_flag(flags, flag_hint):
    with pytest.raises(ConfigurationError, match=flag_hint):
        resolve_credentials(flags)


def test_empty_split_value_falls_back_to_shared():
    flags = CredentialFlags(username="admin", password="pw", panel_username="")
    assert resolve_credentials(flags)[0] == "admin"


def test_request_defaults():
    request = resolve_request(CredentialFlags(username="admin", password="pw"))
    assert request.panel_path == "/"
    assert request.panel_port == 2053
    assert request.version is None
    assert not request.force_reinstall
    assert not request.dry_run


def test_request_normalizes_and_validates():
    request = resolve_request(
        CredentialFlags(username="admin", password="pw"),
        path="/panel/",
        port="8443",
        version="v2.6.5",
        force_reinstall=True,
        dry_run=True,
    )
    assert request.panel_path == "panel"
    assert request.panel_port == 8443
    assert request.version == "v2.6.5"
    assert request.force_reinstall and request.dry_run


def test_panel_username_is_not_restricted():
    request = resolve_request(
        CredentialFlags(panel_username="Admin User", password="pw", server_username="ops")
    )
    assert request.panel_username == "Admin User"


def test_request_rejects_root_system_user():
    with pytest.raises(ConfigurationError):
        resolve_request(CredentialFlags(username="root", password="pw"))


def test_passwords_hidden_from_repr():
    request = resolve_request(CredentialFlags(username="admin", password="hunter2"))
    assert "hunter2" not in repr(request)
