"""Installs and configures Docker Engine on Ubuntu-family hosts."""

__version__ = "2.0.0"
