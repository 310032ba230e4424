"""
Path management for depsite.

The nginx layout is fixed; only the simulation root can relocate it.

Directory Structure:
    /etc/nginx/
    ├── sites-available/
    │   └── <identifier>               # Site definition
    └── sites-enabled/
        └── <identifier> -> ../sites-available/<identifier>
    /etc/letsencrypt/live/<domain>/    # Certificate material
    /etc/depsite/config.yaml           # Optional settings file

Setting DEPSITE_SIM_ACTIVE=1 and DEPSITE_SIM_ROOT=<dir> makes every path
resolve under <dir> instead of "/".
"""

import os
from pathlib import Path
from typing import List, Tuple


SITES_AVAILABLE = Path("etc/nginx/sites-available")
SITES_ENABLED = Path("etc/nginx/sites-enabled")
LETSENCRYPT_LIVE = Path("etc/letsencrypt/live")
SETTINGS_FILE = Path("etc/depsite/config.yaml")


class SimulationRootError(Exception):
    """Raised when simulation mode is active without a usable root."""
    pass


def is_simulation() -> bool:
    """Check if simulation mode is active."""
    return os.environ.get("DEPSITE_SIM_ACTIVE") == "1"


def get_root() -> Path:
    """
    Get the filesystem root the layout is anchored at.

    Returns:
        "/" normally, or DEPSITE_SIM_ROOT in simulation mode

    Raises:
        SimulationRootError: If simulation is active but the root is unset
    """
    if not is_simulation():
        return Path("/")

    sim_root = os.environ.get("DEPSITE_SIM_ROOT", "")
    if not sim_root:
        raise SimulationRootError("DEPSITE_SIM_ACTIVE=1 but DEPSITE_SIM_ROOT not set")
    return Path(sim_root)


def get_sites_available_dir() -> Path:
    """Get path to the definitions directory."""
    return get_root() / SITES_AVAILABLE


def get_sites_enabled_dir() -> Path:
    """Get path to the activation-links directory."""
    return get_root() / SITES_ENABLED


def get_site_config_path(identifier: str) -> Path:
    """Get path to the definition file for a site."""
    return get_sites_available_dir() / identifier


def get_site_enabled_path(identifier: str) -> Path:
    """Get path to the activation link for a site."""
    return get_sites_enabled_dir() / identifier


def get_site_paths(identifier: str) -> Tuple[Path, Path]:
    """
    Get both paths for a site.

    Returns:
        Tuple of (config_path, enabled_path)
    """
    return get_site_config_path(identifier), get_site_enabled_path(identifier)


def get_certificate_dir(domain: str) -> Path:
    """Get the live certificate directory for a domain (not simulated)."""
    return Path("/") / LETSENCRYPT_LIVE / domain


def get_settings_path() -> Path:
    """Get the default settings file path."""
    return get_root() / SETTINGS_FILE


def list_site_identifiers() -> List[str]:
    """List identifiers of all site definitions, sorted by name."""
    available = get_sites_available_dir()
    if not available.exists():
        return []

    return sorted(
        item.name for item in available.iterdir()
        if item.is_file() and not item.name.startswith('.')
    )
