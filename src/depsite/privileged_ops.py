"""
Privileged operations for depsite.

Uses a provider pattern to abstract commands that need root, allowing
different implementations for real hosts (sudo) vs simulation/testing.

Commands are always argv lists; nothing is passed through a shell.
"""

import os
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

from . import paths
from .errors import ExecutionFailed
from .models import CommandResult


DEFAULT_TIMEOUT = 60


def run_command(
    command: List[str],
    input_text: Optional[str] = None,
    timeout: int = DEFAULT_TIMEOUT,
) -> CommandResult:
    """
    Run a command and wait for it to finish.

    Raises:
        ExecutionFailed: On non-zero exit, timeout, or missing binary
    """
    try:
        result = subprocess.run(
            command,
            input=input_text,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        raise ExecutionFailed(command, f"timed out after {timeout}s")
    except FileNotFoundError:
        raise ExecutionFailed(command, f"{command[0]}: command not found", returncode=127)

    if result.returncode != 0:
        raise ExecutionFailed(command, result.stderr or result.stdout, returncode=result.returncode)

    return CommandResult(
        command=list(command),
        stdout=result.stdout,
        stderr=result.stderr,
        returncode=result.returncode,
    )


# =============================================================================
# Executor Interface
# =============================================================================

class PrivilegedExecutor(ABC):
    """
    Abstract interface for privileged execution.

    Every definition write, link change, daemon test/reload, and
    certificate tool call goes through one of these.
    """

    def __init__(self, timeout: int = DEFAULT_TIMEOUT):
        self.timeout = timeout

    @property
    @abstractmethod
    def mode_name(self) -> str:
        """Human-readable name for this executor (for display)."""
        pass

    @property
    @abstractmethod
    def is_simulation(self) -> bool:
        """Whether this is a simulation/test executor."""
        pass

    @abstractmethod
    def run(self, command: List[str], input_text: Optional[str] = None) -> CommandResult:
        """Run a command with elevated privileges."""
        pass

    @abstractmethod
    def write_file(self, path: Path, text: str) -> None:
        """Create or overwrite a file."""
        pass

    @abstractmethod
    def symlink(self, target: Path, link: Path) -> None:
        """Create or replace a symbolic link."""
        pass

    @abstractmethod
    def remove(self, path: Path) -> None:
        """Remove a file or link; a missing path is not an error."""
        pass


# =============================================================================
# Sudo Executor (Production)
# =============================================================================

class SudoExecutor(PrivilegedExecutor):
    """
    Real executor escalating each command with sudo.

    The tool itself never runs as root; escalation is per command.
    """

    @property
    def mode_name(self) -> str:
        return "sudo"

    @property
    def is_simulation(self) -> bool:
        return False

    def run(self, command: List[str], input_text: Optional[str] = None) -> CommandResult:
        return run_command(["sudo"] + list(command), input_text=input_text, timeout=self.timeout)

    def write_file(self, path: Path, text: str) -> None:
        # tee echoes its input; output is captured and discarded
        self.run(["tee", str(path)], input_text=text)

    def symlink(self, target: Path, link: Path) -> None:
        self.run(["ln", "-sfn", str(target), str(link)])

    def remove(self, path: Path) -> None:
        self.run(["rm", "-f", str(path)])


# =============================================================================
# Simulation Executor (Testing)
# =============================================================================

class SimulationExecutor(PrivilegedExecutor):
    """
    Simulation executor for testing on machines without nginx or sudo.

    File operations happen directly under the simulation root. Daemon and
    certificate commands are recorded and reported as successful.
    """

    def __init__(self, sim_root: Path, timeout: int = DEFAULT_TIMEOUT):
        super().__init__(timeout)
        self._sim_root = sim_root
        self.commands: List[List[str]] = []

    @property
    def sim_root(self) -> Path:
        return self._sim_root

    @property
    def mode_name(self) -> str:
        return "Simulation"

    @property
    def is_simulation(self) -> bool:
        return True

    def run(self, command: List[str], input_text: Optional[str] = None) -> CommandResult:
        """Record the command and report success."""
        self.commands.append(list(command))
        return CommandResult(command=list(command), stdout="", stderr="", returncode=0)

    def write_file(self, path: Path, text: str) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text)
        except OSError as e:
            raise ExecutionFailed(["write", str(path)], str(e))

    def symlink(self, target: Path, link: Path) -> None:
        try:
            # exists() is False for broken symlinks, is_symlink() is not
            if link.is_symlink() or link.exists():
                link.unlink()
            link.parent.mkdir(parents=True, exist_ok=True)
            link.symlink_to(target)
        except OSError as e:
            raise ExecutionFailed(["ln", "-sfn", str(target), str(link)], str(e))

    def remove(self, path: Path) -> None:
        try:
            if path.is_symlink() or path.exists():
                path.unlink()
        except OSError as e:
            raise ExecutionFailed(["rm", "-f", str(path)], str(e))


# =============================================================================
# Provider Factory
# =============================================================================

# Module-level instance (lazily initialized)
_executor_instance: Optional[PrivilegedExecutor] = None


def get_executor(timeout: int = DEFAULT_TIMEOUT) -> PrivilegedExecutor:
    """
    Get the appropriate PrivilegedExecutor implementation.

    Returns SimulationExecutor if DEPSITE_SIM_ACTIVE=1, otherwise SudoExecutor.
    The instance is cached for the lifetime of the process.
    """
    global _executor_instance

    if _executor_instance is None:
        if paths.is_simulation():
            _executor_instance = SimulationExecutor(paths.get_root(), timeout=timeout)
        else:
            _executor_instance = SudoExecutor(timeout=timeout)

    return _executor_instance


def reset_executor_instance() -> None:
    """Reset the cached executor instance (for testing)."""
    global _executor_instance
    _executor_instance = None


# =============================================================================
# Read-only checks (don't need an executor)
# =============================================================================

def is_privileged() -> bool:
    """Check if running as root."""
    return os.geteuid() == 0


def get_free_bytes(path: Path) -> int:
    """
    Get free space available to unprivileged users at path.

    Walks up to the nearest existing parent. Returns 0 if it can't be read.
    """
    probe = Path(path)
    while not probe.exists() and probe != probe.parent:
        probe = probe.parent

    try:
        stats = os.statvfs(str(probe))
    except OSError:
        return 0
    return stats.f_bavail * stats.f_frsize
