"""
The ten installer steps, registered in execution order.

Each step takes the run's `InstallerContext` and returns a `StepResult`. A step
never exits the process itself; the pipeline driver decides what a FATAL or
ABORTED result means.
"""

import logging

from .config import LOGGER_NAME
from .host import invoking_user, read_os_release, socket_ownership
from .pipeline import StepResult, installer_step
from .prompts import ask_until_answered, confirm
from .runner import COMMAND_TIMED_OUT

logger = logging.getLogger(LOGGER_NAME)

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


def _apt(ctx, args, description, spinner=None):
    """Runs apt-get with root rights and a non-interactive frontend."""
    command = ["apt-get"] + list(args)
    if spinner:
        with ctx.ui.status(spinner):
            return ctx.runner.run(command, description, sudo=True, env=APT_ENV)
    return ctx.runner.run(command, description, sudo=True, env=APT_ENV)


# --- Step Implementations ---

@installer_step("Environment Validation")
def step_validate_environment(ctx):
    """Checks the distribution, then the operator's privileges."""
    cfg = ctx.config
    try:
        host = read_os_release(cfg.os_release_path)
    except FileNotFoundError:
        return StepResult.fatal("Unable to detect the Linux distribution "
                                f"({cfg.os_release_path} not found)")

    if host.id not in cfg.supported_distributions:
        ctx.ui.info(f"Detected distribution: {host.name}")
        supported = ", ".join(cfg.supported_distributions)
        return StepResult.fatal(f"This installer supports only these distributions: {supported}")

    ctx.host = host
    ctx.ui.success(f"Compatible distribution detected: {host.name} {host.version_id}".rstrip())
    ctx.ui.host_summary(host)

    if ctx.is_root:
        ctx.ui.warning("The installer is running as root")
        if not confirm(ctx.prompter, "Do you want to continue?", default=False):
            return StepResult.aborted("Installer stopped at the operator's request")
        return StepResult.ok("Running as root with operator confirmation")

    ctx.ui.info("Checking sudo privileges...")
    # Not captured: sudo may need to ask for a password on the terminal
    result = ctx.runner.run(["sudo", "-v"], "Validating sudo credentials", capture_output=False)
    if not result.ok:
        return StepResult.fatal("Insufficient sudo privileges")
    ctx.ui.success("Sudo privileges confirmed")
    return StepResult.ok()


@installer_step("Connectivity Check")
def step_check_connectivity(ctx):
    """Single ping to the Docker download host."""
    cfg = ctx.config
    ctx.ui.info("Checking the internet connection...")
    result = ctx.runner.run(
        ["ping", "-q", "-c", str(cfg.ping_count), "-W", str(cfg.ping_timeout), cfg.docker_host],
        f"Probing {cfg.docker_host}",
    )
    if not result.ok:
        ctx.ui.info("Check your connection and try again")
        return StepResult.fatal(f"No internet connection or unable to reach {cfg.docker_host}")
    ctx.ui.success("Internet connection available")
    return StepResult.ok()


def is_package_installed(ctx, package):
    result = ctx.runner.run(
        ["dpkg-query", "-W", "-f=${Status}", package],
        f"Checking for {package}",
        quiet=True,
    )
    return result.ok and result.stdout.strip().endswith(" installed")


@installer_step("Legacy Package Cleanup")
def step_remove_legacy_packages(ctx):
    """Finds conflicting packages and, with the operator's consent, removes them."""
    ctx.ui.info("Looking for previous Docker installations...")
    found_packages = [pkg for pkg in ctx.config.legacy_packages if is_package_installed(ctx, pkg)]

    if not found_packages:
        ctx.ui.success("No previous installation detected")
        return StepResult.ok()

    ctx.ui.warning(f"Existing Docker packages detected: {' '.join(found_packages)}")
    if not confirm(ctx.prompter, "Do you want to remove them? (recommended)", default=True):
        ctx.ui.info("Keeping the existing packages")
        return StepResult.ok("Legacy packages kept")

    ctx.ui.info("Removing old packages...")
    if not _apt(ctx, ["remove", "-y"] + found_packages, "Removing legacy packages").ok:
        ctx.ui.warning("Some legacy packages could not be removed; continuing")
    if not _apt(ctx, ["autoremove", "-y"], "Removing unneeded dependencies").ok:
        ctx.ui.warning("apt-get autoremove failed; continuing")
    ctx.ui.success("Old packages removed")
    return StepResult.ok()


@installer_step("System Update")
def step_update_system(ctx):
    """Refreshes the package index and upgrades installed packages."""
    ctx.ui.info("Updating the system...")
    if not _apt(ctx, ["update"], "apt-get update").ok:
        # Only the upgrade decides the outcome of this step
        ctx.ui.warning("'apt-get update' failed. Check network and APT sources. Attempting to continue...")

    upgrade = _apt(ctx, ["upgrade", "-y"], "apt-get upgrade", spinner="Running apt-get upgrade...")
    if not upgrade.ok:
        return StepResult.fatal("System update failed")
    ctx.ui.success("System updated successfully")
    return StepResult.ok()


@installer_step("Install Dependencies")
def step_install_dependencies(ctx):
    ctx.ui.info("Installing dependencies...")
    result = _apt(ctx, ["install", "-y"] + list(ctx.config.dependency_packages),
                  "Installing prerequisite packages", spinner="Running apt-get install...")
    if not result.ok:
        return StepResult.fatal("Failed to install dependencies")
    ctx.ui.success("Dependencies installed successfully")
    return StepResult.ok()


def detect_codename(ctx):
    """Release codename from os-release, or lsb_release as a last resort."""
    if ctx.host and ctx.host.codename:
        return ctx.host.codename
    result = ctx.runner.run(["lsb_release", "-cs"], "Getting distribution codename")
    return result.stdout.strip() if result.ok else ""


@installer_step("Configure Docker Repository")
def step_configure_repository(ctx):
    """
    Registers Docker's signing key and apt source, then refreshes the index.
    Nothing is rolled back if a later part fails.
    """
    cfg = ctx.config
    ctx.ui.info("Configuring the Docker repository...")

    if not ctx.runner.make_dir(cfg.keyring_dir, 0o755).ok:
        return StepResult.fatal(f"Failed creating keyring directory {cfg.keyring_dir}")

    ctx.ui.info("Downloading the Docker GPG key...")
    download = ctx.runner.run(["curl", "-fsSL", cfg.gpg_url], "Downloading Docker GPG key",
                              timeout=cfg.download_timeout)
    if download.returncode == COMMAND_TIMED_OUT:
        return StepResult.fatal(f"Timed out downloading the Docker GPG key from {cfg.gpg_url}")
    if not download.ok or not download.stdout.strip():
        return StepResult.fatal(f"Failed to download the Docker GPG key from {cfg.gpg_url}")

    dearmor = ctx.runner.run(
        ["gpg", "--dearmor", "--yes", "-o", str(cfg.keyring_path)],
        "Converting the GPG key",
        sudo=True,
        input=download.stdout,
    )
    if not dearmor.ok:
        return StepResult.fatal(f"Failed to write the Docker GPG key to {cfg.keyring_path}")
    if not ctx.runner.make_world_readable(cfg.keyring_path).ok:
        return StepResult.fatal(f"Failed setting permissions on GPG key {cfg.keyring_path}")

    arch_result = ctx.runner.run(["dpkg", "--print-architecture"], "Getting system architecture")
    arch = arch_result.stdout.strip()
    if not arch_result.ok or not arch:
        return StepResult.fatal("Could not determine system architecture")

    codename = detect_codename(ctx)
    if not codename:
        return StepResult.fatal("Could not determine distribution codename")

    ctx.ui.info("Adding the Docker repository...")
    repo_line = cfg.repository_line(arch, codename)
    if not ctx.runner.write_file(cfg.sources_list_path, repo_line + "\n", permissions="0644").ok:
        return StepResult.fatal(f"Failed to write Docker sources file {cfg.sources_list_path}")

    if not _apt(ctx, ["update"], "Updating package lists after adding Docker repo").ok:
        return StepResult.fatal("apt-get update failed after adding the Docker repository")

    ctx.ui.success("Docker repository configured successfully")
    return StepResult.ok()


@installer_step("Install Docker Engine")
def step_install_engine(ctx):
    """Installs the engine packages, with one repair-and-retry on failure."""
    ctx.ui.info("Installing Docker Engine...")
    install_args = ["install", "-y"] + list(ctx.config.docker_packages)

    if _apt(ctx, install_args, "Installing Docker CE packages", spinner="Installing Docker Engine...").ok:
        ctx.ui.success("Docker installed successfully")
        return StepResult.ok()

    ctx.ui.error("Docker installation failed")
    ctx.ui.info("Attempting to resolve dependencies...")
    # Result ignored: the retry below is the real check
    _apt(ctx, ["--fix-broken", "install", "-y"], "apt-get --fix-broken install",
         spinner="Running apt-get --fix-broken install...")

    if _apt(ctx, install_args, "Retrying Docker CE packages", spinner="Installing Docker Engine...").ok:
        ctx.ui.success("Docker installed after resolving dependencies")
        return StepResult.ok("Installed on retry")
    return StepResult.fatal("Docker installation failed permanently")


def wait_for_service(ctx):
    """Polls `systemctl is-active` until it succeeds or the timeout runs out."""
    cfg = ctx.config
    deadline = ctx.clock() + max(cfg.service_timeout, 0)
    while True:
        result = ctx.runner.run(["systemctl", "is-active", "--quiet", cfg.service_name],
                                f"Checking {cfg.service_name} status", sudo=True)
        if result.ok:
            return True
        if ctx.clock() >= deadline:
            return False
        ctx.sleep(cfg.service_poll_interval)


@installer_step("Start Docker Service")
def step_start_service(ctx):
    service = ctx.config.service_name
    ctx.ui.info("Starting the Docker service...")

    if not ctx.runner.run(["systemctl", "enable", service], f"Enabling {service} service", sudo=True).ok:
        return StepResult.fatal(f"Failed to enable the {service} service")
    if not ctx.runner.run(["systemctl", "start", service], f"Starting {service} service", sudo=True).ok:
        return StepResult.fatal(f"Failed to start the {service} service")

    if not wait_for_service(ctx):
        return StepResult.fatal("The Docker service is not running correctly")
    ctx.ui.success("Docker service started and enabled")
    return StepResult.ok()


@installer_step("Verify Installation")
def step_verify_installation(ctx):
    """Checks the CLI answers, then optionally runs the hello-world image."""
    cfg = ctx.config
    ctx.ui.info("Verifying the installation...")

    version = ctx.runner.run(["docker", "--version"], "Checking Docker version")
    if not version.ok:
        return StepResult.fatal("Docker CLI is not working")
    ctx.ui.success(f"Docker CLI installed: {version.stdout.strip()}")

    if cfg.skip_smoke_test:
        ctx.ui.info(f"{cfg.smoke_test_image} test skipped")
        return StepResult.skipped("Smoke test skipped")

    wants_test = ask_until_answered(
        ctx.prompter,
        f"Would you like to run the {cfg.smoke_test_image} test?",
        on_invalid=lambda _reply: ctx.ui.warning("Invalid answer. Please answer 'yes' or 'no'"),
    )
    if not wants_test:
        ctx.ui.info(f"{cfg.smoke_test_image} test skipped")
        return StepResult.skipped("Smoke test skipped")

    ctx.ui.info(f"Testing with the {cfg.smoke_test_image} image...")
    run = ctx.runner.run(["docker", "run", "--rm", cfg.smoke_test_image],
                         f"Running {cfg.smoke_test_image}", sudo=True, show_output=True)
    if cfg.smoke_test_expected not in run.stdout:
        return StepResult.fatal(f"The {cfg.smoke_test_image} test failed")
    ctx.ui.success(f"{cfg.smoke_test_image} test passed")
    return StepResult.ok()


def user_in_group(ctx, user, group):
    result = ctx.runner.run(["id", "-nG", user], f"Listing groups of {user}", quiet=True)
    return result.ok and group in result.stdout.split()


@installer_step("Configure User Permissions")
def step_configure_permissions(ctx):
    """Adds the invoking user to the docker group; activation is best-effort."""
    cfg = ctx.config
    group = cfg.group_name
    ctx.ui.info("Configuring user permissions...")
    current_user = invoking_user()

    if user_in_group(ctx, current_user, group):
        ctx.ui.success(f"User {current_user} is already in the {group} group.")
        ctx.ui.info("If Docker commands still fail, please log out and log back in.")
    else:
        ctx.ui.warning(f"Adding user '{current_user}' to the {group} group to avoid using sudo.")
        added = ctx.runner.run(["usermod", "-aG", group, current_user],
                               f"Adding {current_user} to {group} group", sudo=True)
        if not added.ok:
            return StepResult.fatal(f"Failed to add {current_user} to the {group} group")
        ctx.ui.success(f"User {current_user} added to the {group} group.")

        ctx.ui.info("Activating the new group membership for the current session...")
        activated = ctx.runner.run(["newgrp", group], "Activating group membership", input="exit\n")
        if activated.ok:
            ctx.ui.success("Group membership active. You should be able to use Docker without sudo.")
        else:
            ctx.ui.warning("'newgrp' failed. Log out and log back in for the change to take full effect.")
            ctx.ui.info(f"Meanwhile you can run manually: newgrp {group}")

    ctx.ui.info("Checking Docker socket permissions...")
    ctx.ui.info(f"Docker socket permissions: {socket_ownership(cfg.socket_path)}")
    return StepResult.ok()
