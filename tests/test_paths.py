"""
Tests for path management module.
"""

from pathlib import Path

import pytest

from depsite.paths import (
    SimulationRootError,
    get_certificate_dir,
    get_root,
    get_settings_path,
    get_site_config_path,
    get_site_enabled_path,
    get_site_paths,
    is_simulation,
    list_site_identifiers,
)


class TestRoot:
    """Test root selection."""

    def test_real_root(self, monkeypatch):
        """Test that the root is / outside simulation."""
        monkeypatch.delenv("DEPSITE_SIM_ACTIVE", raising=False)
        assert is_simulation() is False
        assert get_root() == Path("/")
        assert get_site_config_path("app") == Path("/etc/nginx/sites-available/app")

    def test_simulation_root(self, sim_root):
        """Test that simulation relocates the layout."""
        assert is_simulation() is True
        assert get_root() == sim_root

    def test_simulation_without_root(self, monkeypatch):
        """Test that simulation needs DEPSITE_SIM_ROOT."""
        monkeypatch.setenv("DEPSITE_SIM_ACTIVE", "1")
        monkeypatch.delenv("DEPSITE_SIM_ROOT", raising=False)
        with pytest.raises(SimulationRootError, match="DEPSITE_SIM_ROOT not set"):
            get_root()


class TestSitePaths:
    """Test per-site paths."""

    def test_site_paths(self, sim_root):
        """Test definition and link paths."""
        config, enabled = get_site_paths("hrayfi-api")
        assert config == sim_root / "etc/nginx/sites-available/hrayfi-api"
        assert enabled == sim_root / "etc/nginx/sites-enabled/hrayfi-api"
        assert get_site_config_path("hrayfi-api") == config
        assert get_site_enabled_path("hrayfi-api") == enabled

    def test_certificate_dir_not_simulated(self, sim_root):
        """Test that certificate paths always point at the real tree."""
        assert get_certificate_dir("example.com") == Path("/etc/letsencrypt/live/example.com")

    def test_settings_path(self, sim_root):
        """Test the default settings file location."""
        assert get_settings_path() == sim_root / "etc/depsite/config.yaml"


class TestListSiteIdentifiers:
    """Test definition listing."""

    def test_sorted_files_only(self, sim_root):
        """Test that listing skips dotfiles and directories."""
        available = sim_root / "etc/nginx/sites-available"
        for name in ["zeta", "alpha", ".swp"]:
            (available / name).write_text("")
        (available / "subdir").mkdir()
        assert list_site_identifiers() == ["alpha", "zeta"]

    def test_missing_directory(self, tmp_path, monkeypatch):
        """Test that a missing layout lists nothing."""
        monkeypatch.setenv("DEPSITE_SIM_ACTIVE", "1")
        monkeypatch.setenv("DEPSITE_SIM_ROOT", str(tmp_path / "empty"))
        assert list_site_identifiers() == []
