"""
Fixed settings for the Docker installer: paths, package lists, URLs and the
names of the service and group it manages.
"""

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional, Tuple

LOGGER_NAME = "DockerInstaller"

# --- Host ---
OS_RELEASE_PATH = Path("/etc/os-release")
SUPPORTED_DISTRIBUTIONS = ("ubuntu", "pop")

# --- Network ---
DOCKER_HOST = "download.docker.com"
DOCKER_REPO_URL = f"https://{DOCKER_HOST}/linux/ubuntu"
DOCKER_GPG_URL = f"{DOCKER_REPO_URL}/gpg"
PING_COUNT = 1
PING_TIMEOUT = 1  # seconds
DOWNLOAD_TIMEOUT = 60.0  # seconds for the signing key download

# --- APT ---
KEYRING_DIR = Path("/etc/apt/keyrings")
DOCKER_KEYRING_PATH = KEYRING_DIR / "docker.gpg"
DOCKER_LIST_PATH = Path("/etc/apt/sources.list.d/docker.list")
REPO_CHANNEL = "stable"

LEGACY_PACKAGES = (
    "docker.io",
    "docker-doc",
    "docker-compose",
    "docker-compose-v2",
    "podman-docker",
    "containerd",
    "runc",
)

DEPENDENCY_PACKAGES = (
    "apt-transport-https",
    "ca-certificates",
    "curl",
    "software-properties-common",
    "gnupg",
)

DOCKER_PACKAGES = (
    "docker-ce",
    "docker-ce-cli",
    "containerd.io",
    "docker-buildx-plugin",
    "docker-compose-plugin",
)

# --- Service / access ---
SERVICE_NAME = "docker"
DOCKER_GROUP = "docker"
DOCKER_SOCKET_PATH = Path("/var/run/docker.sock")
SERVICE_TIMEOUT = 10.0  # seconds to wait for `systemctl is-active`
SERVICE_POLL_INTERVAL = 1.0

# --- Smoke test ---
SMOKE_TEST_IMAGE = "hello-world"
SMOKE_TEST_EXPECTED = "Hello from Docker"

# --- Logging ---
LOG_DIR = Path("/var/log")
LOG_FILE_PREFIX = "docker_installer"

DOCS_URL = "https://docs.docker.com/"

USEFUL_COMMANDS = (
    ("docker --version", "Check the version"),
    ("docker ps", "List containers"),
    ("docker images", "List images"),
    ("docker run hello-world", "Test Docker"),
)


@dataclass(frozen=True)
class InstallerConfig:
    """Everything a run needs to know that is not decided by a prompt."""

    os_release_path: Path = OS_RELEASE_PATH
    supported_distributions: Tuple[str, ...] = SUPPORTED_DISTRIBUTIONS
    docker_host: str = DOCKER_HOST
    repo_url: str = DOCKER_REPO_URL
    gpg_url: str = DOCKER_GPG_URL
    repo_channel: str = REPO_CHANNEL
    ping_count: int = PING_COUNT
    ping_timeout: int = PING_TIMEOUT
    download_timeout: float = DOWNLOAD_TIMEOUT
    keyring_dir: Path = KEYRING_DIR
    keyring_path: Path = DOCKER_KEYRING_PATH
    sources_list_path: Path = DOCKER_LIST_PATH
    legacy_packages: Tuple[str, ...] = LEGACY_PACKAGES
    dependency_packages: Tuple[str, ...] = DEPENDENCY_PACKAGES
    docker_packages: Tuple[str, ...] = DOCKER_PACKAGES
    service_name: str = SERVICE_NAME
    group_name: str = DOCKER_GROUP
    socket_path: Path = DOCKER_SOCKET_PATH
    service_timeout: float = SERVICE_TIMEOUT
    service_poll_interval: float = SERVICE_POLL_INTERVAL
    smoke_test_image: str = SMOKE_TEST_IMAGE
    smoke_test_expected: str = SMOKE_TEST_EXPECTED
    skip_smoke_test: bool = False
    non_interactive: bool = False
    log_file: Optional[Path] = None
    useful_commands: Tuple[Tuple[str, str], ...] = field(default=USEFUL_COMMANDS)
    docs_url: str = DOCS_URL

    def with_overrides(self, **changes) -> "InstallerConfig":
        """Returns a copy with the given fields replaced (None values are ignored)."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    def repository_line(self, arch: str, codename: str) -> str:
        """Builds the single `deb` line written to the sources list."""
        return (
            f"deb [arch={arch} signed-by={self.keyring_path}] "
            f"{self.repo_url} {codename} {self.repo_channel}"
        )
