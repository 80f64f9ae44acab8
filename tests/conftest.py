"""Shared fixtures: a recording command runner, scripted prompts and a quiet console."""

import io

import pytest
from rich.console import Console

from docker_installer.config import InstallerConfig
from docker_installer.pipeline import InstallerContext
from docker_installer.runner import CommandResult, CommandRunner
from docker_installer.ui import InstallerUI


class FakeRunner(CommandRunner):
    """
    Records every command line instead of executing it.

    `responses` maps a command prefix (tuple of leading arguments) to either a
    CommandResult-like tuple `(returncode, stdout)`, a list of such tuples
    consumed one per call, or a callable `(argv, input) -> (returncode, stdout)`.
    The longest matching prefix wins; unmatched commands succeed with no output.
    """

    def __init__(self, ui, use_sudo=False, responses=None):
        super().__init__(ui, use_sudo=use_sudo)
        self.responses = dict(responses or {})
        self.calls = []
        self.inputs = []
        self.timeouts = []

    def _execute(self, cmd_to_run, input=None, env=None, capture_output=True, timeout=None):
        argv = tuple(cmd_to_run)
        self.calls.append(argv)
        self.inputs.append(input)
        self.timeouts.append(timeout)
        response = (0, "")
        best = -1
        for prefix, candidate in self.responses.items():
            if argv[:len(prefix)] == prefix and len(prefix) > best:
                best, response = len(prefix), candidate
        if isinstance(response, list):
            response = response.pop(0) if len(response) > 1 else response[0]
        if callable(response):
            response = response(argv, input)
        returncode, stdout = response
        return CommandResult(argv, returncode, stdout, "" if returncode == 0 else "simulated failure")

    def ran(self, *prefix):
        return [call for call in self.calls if call[:len(prefix)] == prefix]


class ScriptedPrompter:
    def __init__(self, *answers):
        self.answers = list(answers)
        self.questions = []

    def ask(self, question):
        self.questions.append(question)
        if not self.answers:
            raise AssertionError(f"Unexpected prompt: {question}")
        return self.answers.pop(0)


@pytest.fixture
def ui():
    return InstallerUI(Console(file=io.StringIO(), width=120, color_system=None))


@pytest.fixture
def output(ui):
    return lambda: ui.console.file.getvalue()


@pytest.fixture
def os_release(tmp_path):
    path = tmp_path / "os-release"
    path.write_text(
        'NAME="Ubuntu"\n'
        'VERSION_ID="22.04"\n'
        "ID=ubuntu\n"
        "VERSION_CODENAME=jammy\n"
    )
    return path


@pytest.fixture
def config(tmp_path, os_release):
    return InstallerConfig(
        os_release_path=os_release,
        keyring_dir=tmp_path / "keyrings",
        keyring_path=tmp_path / "keyrings" / "docker.gpg",
        sources_list_path=tmp_path / "sources.list.d" / "docker.list",
        socket_path=tmp_path / "docker.sock",
        service_timeout=0,
        service_poll_interval=0,
    )


@pytest.fixture
def make_context(config, ui):
    def factory(responses=None, answers=(), is_root=False, use_sudo=False, **config_changes):
        cfg = config.with_overrides(**config_changes) if config_changes else config
        runner = FakeRunner(ui, use_sudo=use_sudo, responses=responses)
        return InstallerContext(
            config=cfg,
            runner=runner,
            prompter=ScriptedPrompter(*answers),
            ui=ui,
            is_root=is_root,
            sleep=lambda _seconds: None,
        )
    return factory
