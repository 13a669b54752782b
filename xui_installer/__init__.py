"""Provision the 3x-ui web panel on a Debian/Ubuntu host."""

APP_NAME = "3x-ui Installer"
APP_SUBTITLE = "Panel Provisioning Utility"
__version__ = "1.0.0"
