"""
Tests for nginx site operations.
"""

import pytest

from depsite.proxy import ProxyController
from depsite.renderer import MANAGED_MARKER
from depsite.settings import Settings


@pytest.fixture
def proxy(executor):
    return ProxyController(executor)


@pytest.fixture
def written(proxy, sim_root):
    """A written (not yet enabled) definition for 'app'."""
    config_path = sim_root / "etc/nginx/sites-available/app"
    proxy.write_config(config_path, f"{MANAGED_MARKER}: app\n")
    return config_path


class TestWriteConfig:
    """Test definition writes."""

    def test_write(self, proxy, written):
        """Test that the file is written."""
        assert written.read_text() == f"{MANAGED_MARKER}: app\n"

    def test_overwrite(self, proxy, written):
        """Test that an existing file is replaced."""
        result = proxy.write_config(written, "new\n")
        assert result.success
        assert written.read_text() == "new\n"

    def test_failure_is_result(self, proxy, executor, sim_root):
        """Test that a failed write comes back as a result."""
        executor.fail_write = True
        result = proxy.write_config(sim_root / "etc/nginx/sites-available/app", "x")
        assert not result.success
        assert "Permission denied" in result.error


class TestEnableDisable:
    """Test activation links."""

    def test_enable(self, proxy, written, sim_root):
        """Test that enable links to the definition."""
        assert proxy.enable("app").success
        link = sim_root / "etc/nginx/sites-enabled/app"
        assert link.is_symlink()
        assert link.resolve() == written.resolve()
        assert proxy.is_enabled("app")

    def test_enable_twice(self, proxy, written, sim_root):
        """Test that enabling twice leaves one link to the current file."""
        assert proxy.enable("app").success
        assert proxy.enable("app").success
        enabled = list((sim_root / "etc/nginx/sites-enabled").iterdir())
        assert [p.name for p in enabled] == ["app"]
        assert enabled[0].resolve() == written.resolve()

    def test_enable_replaces_stale_link(self, proxy, written, sim_root):
        """Test that a link to another file is replaced."""
        other = sim_root / "elsewhere"
        other.write_text("x")
        (sim_root / "etc/nginx/sites-enabled/app").symlink_to(other)

        assert proxy.enable("app").success
        assert (sim_root / "etc/nginx/sites-enabled/app").resolve() == written.resolve()

    def test_disable(self, proxy, written):
        """Test that disable removes the link only."""
        proxy.enable("app")
        assert proxy.disable("app").success
        assert not proxy.is_enabled("app")
        assert written.exists()

    def test_disable_absent(self, proxy):
        """Test that disabling a missing link succeeds."""
        assert proxy.disable("missing").success

    def test_enable_failure_is_result(self, proxy, executor, written):
        """Test that a failed link comes back as a result."""
        executor.fail_symlink = True
        result = proxy.enable("app")
        assert not result.success
        assert result.error.startswith("Failed to enable site")


class TestTestAndReload:
    """Test daemon commands."""

    def test_test_runs_nginx(self, proxy, executor):
        """Test the syntax check command."""
        assert proxy.test().success
        assert executor.commands[-1] == ["nginx", "-t"]

    def test_test_failure_includes_stderr(self, proxy, executor):
        """Test that nginx's complaint reaches the error."""
        executor.fail_commands[("nginx", "-t")] = 'nginx: [emerg] unexpected "}" in app:12'
        result = proxy.test()
        assert not result.success
        assert 'unexpected "}" in app:12' in result.error

    def test_reload(self, proxy, executor):
        """Test the reload command."""
        assert proxy.reload().success
        assert executor.commands[-1] == ["systemctl", "reload", "nginx"]

    def test_reload_failure(self, proxy, executor):
        """Test that a failed reload is a result."""
        executor.fail_commands[("systemctl", "reload")] = "Job failed"
        result = proxy.reload()
        assert not result.success
        assert "Job failed" in result.error

    def test_binary_from_settings(self, executor):
        """Test that a custom binary is used."""
        ProxyController(executor, Settings(proxy_binary="/usr/local/nginx/sbin/nginx")).test()
        assert executor.commands[-1] == ["/usr/local/nginx/sbin/nginx", "-t"]

    def test_is_active(self, proxy, executor):
        """Test the service check."""
        assert proxy.is_active()
        executor.fail_commands[("systemctl", "is-active")] = ""
        assert not proxy.is_active()


class TestRemove:
    """Test site removal."""

    def test_remove(self, proxy, written):
        """Test that link and definition are both removed."""
        proxy.enable("app")
        assert proxy.remove("app").success
        assert not proxy.site_exists("app")
        assert not proxy.is_enabled("app")

    def test_remove_failure(self, proxy, executor, written):
        """Test that a failed delete is reported."""
        executor.fail_remove.add("app")
        result = proxy.remove("app")
        assert not result.success
        assert result.error.startswith("Failed to remove site")


class TestListSites:
    """Test site listing."""

    def test_empty(self, proxy):
        """Test an empty layout."""
        assert proxy.list_sites() == []

    def test_lists_state(self, proxy, written, sim_root):
        """Test enabled and managed flags."""
        proxy.enable("app")
        (sim_root / "etc/nginx/sites-available/default").write_text("server {}\n")
        (sim_root / "etc/nginx/sites-available/.hidden").write_text("")

        sites = {s.identifier: s for s in proxy.list_sites()}
        assert sorted(sites) == ["app", "default"]
        assert sites["app"].enabled and sites["app"].managed
        assert not sites["default"].enabled
        assert not sites["default"].managed
