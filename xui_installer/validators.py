"""
Argument validators. Each raises ConfigurationError on bad input.
"""

import re

from xui_installer.config import ROOT_PATH
from xui_installer.errors import ConfigurationError

SYSTEM_USERNAME_RE = re.compile(r"^[a-z_][a-z0-9_-]{0,31}$")
PANEL_PATH_RE = re.compile(r"^[A-Za-z0-9._/-]+$")
PORT_RE = re.compile(r"^[0-9]+$")

SUPERUSER = "root"


def validate_system_username(username: str) -> str:
    """Check a Linux account name. The panel username is not checked here."""
    if username == SUPERUSER:
        raise ConfigurationError(
            "Invalid --server-username: 'root' is not allowed"
        )
    if not SYSTEM_USERNAME_RE.fullmatch(username):
        raise ConfigurationError(
            "Invalid --server-username for Linux user. Use lowercase letters, "
            "numbers, _ or -, start with a letter/_ and max 32 chars"
        )
    return username


def validate_port(value) -> int:
    """Parse a TCP port number in [1, 65535]."""
    text = str(value)
    if not PORT_RE.fullmatch(text):
        raise ConfigurationError("Invalid --port value: must be a number")
    port = int(text)
    if not 1 <= port <= 65535:
        raise ConfigurationError(
            "Invalid --port value: must be between 1 and 65535"
        )
    return port


def normalize_panel_path(raw: str) -> str:
    """
    Normalize the panel base path.

    One leading and one trailing separator are stripped; an empty result maps
    to the root path. Parent segments, doubled separators and characters
    outside letters, digits, '.', '_', '-' and '/' are rejected.
    """
    path = raw or ""
    if path.startswith("/"):
        path = path[1:]
    if path.endswith("/"):
        path = path[:-1]

    if not path:
        return ROOT_PATH
    if ".." in path:
        raise ConfigurationError("Invalid --path value: '..' is not allowed")
    if "//" in path:
        raise ConfigurationError(
            "Invalid --path value: repeated '/' is not allowed"
        )
    if not PANEL_PATH_RE.fullmatch(path):
        raise ConfigurationError(
            "Invalid --path value. Allowed characters: letters, numbers, ., _, -, /"
        )
    return path
