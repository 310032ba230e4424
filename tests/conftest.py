"""
Shared fixtures for depsite tests.

Every test that touches the nginx layout runs against a simulation root under
tmp_path (DEPSITE_SIM_ACTIVE=1, DEPSITE_SIM_ROOT=<tmp>), so nothing outside
the test directory is read or written.
"""

from pathlib import Path
from typing import Callable, Dict, List, Optional, Set
from unittest.mock import patch

import pytest

from depsite.errors import ExecutionFailed
from depsite.models import CommandResult, RawConfig
from depsite.output import Output
from depsite.pipeline import DeploymentPipeline
from depsite.privileged_ops import SimulationExecutor, reset_executor_instance


class FakeExecutor(SimulationExecutor):
    """
    Simulation executor with failure injection.

    Args:
        fail_commands: Maps a command prefix (e.g. ("nginx", "-t")) to the
            stderr the command should fail with
        stdout: Maps a command prefix to the stdout it returns
        interrupt_commands: Maps a command prefix to the exception raised
            while it runs (KeyboardInterrupt, SystemExit)
        after_write: Called once the definition is on disk
    """

    def __init__(self, sim_root: Path):
        super().__init__(sim_root)
        self.fail_commands: Dict[tuple, str] = {}
        self.stdout: Dict[tuple, str] = {}
        self.fail_write = False
        self.fail_symlink = False
        self.fail_remove: Set[str] = set()
        self.interrupt_commands: Dict[tuple, BaseException] = {}
        self.after_write: Optional[Callable[[], None]] = None

    @staticmethod
    def _matches(command: List[str], prefix: tuple) -> bool:
        return tuple(command[:len(prefix)]) == prefix

    def run(self, command, input_text=None):
        self.commands.append(list(command))
        for prefix, stderr in self.fail_commands.items():
            if self._matches(command, prefix):
                raise ExecutionFailed(command, stderr, returncode=1)
        for prefix, interrupt in self.interrupt_commands.items():
            if self._matches(command, prefix):
                raise interrupt
        for prefix, stdout in self.stdout.items():
            if self._matches(command, prefix):
                return CommandResult(command=list(command), stdout=stdout)
        return CommandResult(command=list(command))

    def write_file(self, path, text):
        if self.fail_write:
            raise ExecutionFailed(["tee", str(path)], "Permission denied")
        super().write_file(path, text)
        if self.after_write is not None:
            self.after_write()

    def symlink(self, target, link):
        if self.fail_symlink:
            # Leave a link behind like a half-finished ln would
            super().symlink(target, link)
            raise ExecutionFailed(["ln", "-sfn", str(target), str(link)], "Operation not permitted")
        super().symlink(target, link)

    def remove(self, path):
        if Path(path).name in self.fail_remove or str(path) in self.fail_remove:
            raise ExecutionFailed(["rm", "-f", str(path)], "Device or resource busy")
        super().remove(path)


class StaticProbe:
    """Port probe answering from a fixed set of listening ports."""

    def __init__(self, listening: Optional[Set[int]] = None):
        self.listening = set(listening or ())
        self.probed: List[int] = []

    def is_listening(self, port: int) -> bool:
        self.probed.append(port)
        return port in self.listening


class ScriptedPrompter:
    """Prompter returning preset answers and recording what was asked."""

    def __init__(self, config: Optional[RawConfig] = None, proceed: bool = True,
                 overwrite: bool = True, ssl: bool = False):
        self.config = config
        self.proceed = proceed
        self.overwrite = overwrite
        self.ssl = ssl
        self.asked: List[str] = []

    def ask_config(self) -> RawConfig:
        self.asked.append("config")
        return self.config

    def confirm_proceed(self) -> bool:
        self.asked.append("proceed")
        return self.proceed

    def confirm_overwrite(self) -> bool:
        self.asked.append("overwrite")
        return self.overwrite

    def confirm_ssl(self) -> bool:
        self.asked.append("ssl")
        return self.ssl


@pytest.fixture
def sim_root(tmp_path, monkeypatch):
    """Simulation root with an empty nginx layout."""
    root = tmp_path / "root"
    (root / "etc/nginx/sites-available").mkdir(parents=True)
    (root / "etc/nginx/sites-enabled").mkdir(parents=True)

    monkeypatch.setenv("DEPSITE_SIM_ACTIVE", "1")
    monkeypatch.setenv("DEPSITE_SIM_ROOT", str(root))
    monkeypatch.delenv("DEPSITE_CONFIG", raising=False)
    reset_executor_instance()
    yield root
    reset_executor_instance()


@pytest.fixture
def executor(sim_root):
    """Failure-injecting executor bound to the simulation root."""
    return FakeExecutor(sim_root)


@pytest.fixture
def output():
    """Uncolored reporter."""
    return Output(color=False)


@pytest.fixture
def tools():
    """
    Binaries visible on PATH, as a mutable set.

    Also pins the process to an unprivileged identity.
    """
    available = {"nginx"}

    def which(name):
        return f"/usr/bin/{name}" if name in available else None

    with patch("shutil.which", side_effect=which), \
            patch("depsite.privileged_ops.is_privileged", return_value=False):
        yield available


@pytest.fixture
def hrayfi_config():
    return RawConfig(project_name="hrayfi-api", domain_name="hrayfi-api.reacture.dev", port_number=3101)


@pytest.fixture
def make_pipeline(executor, output, tools):
    """Build a pipeline with a live backend on 3101 unless told otherwise."""

    def build(prompter=None, listening=None):
        probe = StaticProbe({3101} if listening is None else listening)
        pipeline = DeploymentPipeline(
            executor, output, prompter or ScriptedPrompter(), probe=probe,
        )
        return pipeline

    return build
