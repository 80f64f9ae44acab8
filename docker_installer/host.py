"""
Facts about the host read straight from the system: distribution identity,
the user who invoked the installer and who owns the Docker socket.
"""

import getpass
import grp
import logging
import os
import pwd
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional

from .config import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

SOCKET_NOT_FOUND = "NOT_FOUND"


@dataclass(frozen=True)
class HostIdentity:
    id: str
    name: str
    version_id: str = ""
    version_codename: str = ""
    fields: Dict[str, str] = field(default_factory=dict, compare=False, repr=False)

    @property
    def codename(self) -> str:
        """Release codename, falling back to the Ubuntu base for derivatives."""
        return self.version_codename or self.fields.get("UBUNTU_CODENAME", "")


def _unquote(value: str) -> str:
    try:
        parts = shlex.split(value)
    except ValueError:
        return value.strip().strip("'\"")
    return " ".join(parts)


def parse_os_release(text: str) -> HostIdentity:
    """Parses os-release(5) KEY=value lines."""
    fields = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        fields[key.strip()] = _unquote(value)
    return HostIdentity(
        id=fields.get("ID", "").lower(),
        name=fields.get("NAME", fields.get("ID", "unknown")),
        version_id=fields.get("VERSION_ID", ""),
        version_codename=fields.get("VERSION_CODENAME", ""),
        fields=fields,
    )


def read_os_release(path: Path) -> HostIdentity:
    """Raises FileNotFoundError when the file does not exist."""
    text = Path(path).read_text(encoding="utf-8", errors="replace")
    host = parse_os_release(text)
    logger.debug(f"Read {path}: {host}")
    return host


def invoking_user(environ: Optional[Mapping[str, str]] = None) -> str:
    """The user behind the run, looking through sudo when it was used."""
    environ = os.environ if environ is None else environ
    sudo_user = environ.get("SUDO_USER")
    if sudo_user and sudo_user != "root":
        return sudo_user
    return getpass.getuser()


def socket_ownership(path: Path) -> str:
    """Returns 'user:group' for the file, or NOT_FOUND."""
    try:
        st = os.stat(path)
    except OSError:
        return SOCKET_NOT_FOUND
    try:
        owner = pwd.getpwuid(st.st_uid).pw_name
    except KeyError:
        owner = str(st.st_uid)
    try:
        group = grp.getgrgid(st.st_gid).gr_name
    except KeyError:
        group = str(st.st_gid)
    return f"{owner}:{group}"
