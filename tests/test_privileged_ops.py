"""
Tests for the privileged executor providers.
"""

import subprocess
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from depsite.errors import ErrorKind, ExecutionFailed
from depsite.privileged_ops import (
    SimulationExecutor,
    SudoExecutor,
    get_executor,
    get_free_bytes,
    reset_executor_instance,
    run_command,
)


class TestRunCommand:
    """Test the subprocess wrapper."""

    def test_success(self):
        """Test captured output on success."""
        proc = Mock(returncode=0, stdout="ok\n", stderr="")
        with patch("depsite.privileged_ops.subprocess.run", return_value=proc) as mock_run:
            result = run_command(["nginx", "-t"], timeout=5)
        assert result.stdout == "ok\n"
        mock_run.assert_called_once_with(
            ["nginx", "-t"], input=None, capture_output=True, text=True, timeout=5
        )

    def test_non_zero_exit(self):
        """Test that a failing command raises with its stderr."""
        proc = Mock(returncode=1, stdout="", stderr="nginx: [emerg] bad\n")
        with patch("depsite.privileged_ops.subprocess.run", return_value=proc):
            with pytest.raises(ExecutionFailed) as exc_info:
                run_command(["nginx", "-t"])
        error = exc_info.value
        assert error.kind is ErrorKind.EXECUTION
        assert error.command == ["nginx", "-t"]
        assert error.returncode == 1
        assert "nginx: [emerg] bad" in error.message

    def test_missing_binary(self):
        """Test that a missing binary is ExecutionFailed."""
        with patch("depsite.privileged_ops.subprocess.run", side_effect=FileNotFoundError()):
            with pytest.raises(ExecutionFailed) as exc_info:
                run_command(["certbot"])
        assert exc_info.value.returncode == 127

    def test_timeout(self):
        """Test that a hung command is ExecutionFailed."""
        with patch("depsite.privileged_ops.subprocess.run",
                   side_effect=subprocess.TimeoutExpired(["nginx"], 3)):
            with pytest.raises(ExecutionFailed, match="timed out after 3s"):
                run_command(["nginx"], timeout=3)


class TestSudoExecutor:
    """Test sudo command construction."""

    @pytest.fixture
    def sudo(self):
        with patch("depsite.privileged_ops.run_command") as mock_run:
            yield SudoExecutor(timeout=10), mock_run

    def test_run(self, sudo):
        """Test that commands are prefixed with sudo."""
        executor, mock_run = sudo
        executor.run(["systemctl", "reload", "nginx"])
        mock_run.assert_called_once_with(
            ["sudo", "systemctl", "reload", "nginx"], input_text=None, timeout=10
        )

    def test_write_file(self, sudo):
        """Test that writes go through tee on stdin."""
        executor, mock_run = sudo
        executor.write_file(Path("/etc/nginx/sites-available/app"), "server {}\n")
        mock_run.assert_called_once_with(
            ["sudo", "tee", "/etc/nginx/sites-available/app"], input_text="server {}\n", timeout=10
        )

    def test_symlink(self, sudo):
        """Test forced symlink replacement."""
        executor, mock_run = sudo
        executor.symlink(Path("/a"), Path("/b"))
        assert mock_run.call_args[0][0] == ["sudo", "ln", "-sfn", "/a", "/b"]

    def test_remove(self, sudo):
        """Test forced removal."""
        executor, mock_run = sudo
        executor.remove(Path("/b"))
        assert mock_run.call_args[0][0] == ["sudo", "rm", "-f", "/b"]


class TestSimulationExecutor:
    """Test direct file operations under the simulation root."""

    def test_records_commands(self, tmp_path):
        """Test that commands are recorded, not run."""
        executor = SimulationExecutor(tmp_path)
        with patch("depsite.privileged_ops.subprocess.run") as mock_run:
            result = executor.run(["nginx", "-t"])
        mock_run.assert_not_called()
        assert result.returncode == 0
        assert executor.commands == [["nginx", "-t"]]

    def test_write_creates_parents(self, tmp_path):
        """Test that writes create missing directories."""
        target = tmp_path / "etc/nginx/sites-available/app"
        SimulationExecutor(tmp_path).write_file(target, "x")
        assert target.read_text() == "x"

    def test_symlink_replaces_broken_link(self, tmp_path):
        """Test that a dangling link is replaced."""
        link = tmp_path / "link"
        link.symlink_to(tmp_path / "gone")
        target = tmp_path / "target"
        target.write_text("x")

        SimulationExecutor(tmp_path).symlink(target, link)
        assert link.resolve() == target.resolve()

    def test_remove_missing_ok(self, tmp_path):
        """Test that removing a missing path succeeds."""
        SimulationExecutor(tmp_path).remove(tmp_path / "missing")

    def test_write_error(self, tmp_path):
        """Test that an OSError becomes ExecutionFailed."""
        blocker = tmp_path / "file"
        blocker.write_text("")
        with pytest.raises(ExecutionFailed):
            SimulationExecutor(tmp_path).write_file(blocker / "child", "x")


class TestGetExecutor:
    """Test provider selection."""

    def test_simulation(self, sim_root):
        """Test that simulation mode picks the simulation executor."""
        executor = get_executor()
        assert isinstance(executor, SimulationExecutor)
        assert executor.sim_root == sim_root
        assert get_executor() is executor

    def test_sudo(self, monkeypatch):
        """Test that the default is sudo."""
        monkeypatch.delenv("DEPSITE_SIM_ACTIVE", raising=False)
        reset_executor_instance()
        try:
            executor = get_executor(timeout=5)
            assert isinstance(executor, SudoExecutor)
            assert executor.timeout == 5
        finally:
            reset_executor_instance()


class TestGetFreeBytes:
    """Test free-space lookup."""

    def test_walks_to_existing_parent(self, tmp_path):
        """Test that a missing path reports its parent's space."""
        assert get_free_bytes(tmp_path / "a/b/c") > 0

    def test_statvfs_error(self, tmp_path):
        """Test that an unreadable filesystem reports 0."""
        with patch("depsite.privileged_ops.os.statvfs", side_effect=OSError()):
            assert get_free_bytes(tmp_path) == 0
