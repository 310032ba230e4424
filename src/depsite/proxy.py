"""
nginx operations for depsite.

Every mutation goes through the privileged executor. Failures come back as
OperationResult values rather than exceptions.
"""

from pathlib import Path
from typing import List, Optional, Tuple

from . import paths
from .errors import ExecutionFailed
from .models import OperationResult, SiteInfo
from .privileged_ops import PrivilegedExecutor
from .renderer import is_managed
from .settings import Settings


class ProxyController:
    """Write, activate, test and reload nginx site definitions."""

    def __init__(self, executor: PrivilegedExecutor, settings: Optional[Settings] = None):
        self.executor = executor
        self.settings = settings or Settings()

    # -------------------------------------------------------------------------
    # Paths and queries
    # -------------------------------------------------------------------------

    def site_paths(self, identifier: str) -> Tuple[Path, Path]:
        """Get (config_path, enabled_path) for a site."""
        return paths.get_site_paths(identifier)

    def site_exists(self, identifier: str) -> bool:
        """Check if a definition exists."""
        return paths.get_site_config_path(identifier).exists()

    def is_enabled(self, identifier: str) -> bool:
        """Check if the activation link exists (even if broken)."""
        link = paths.get_site_enabled_path(identifier)
        return link.is_symlink() or link.exists()

    def read_config(self, identifier: str) -> Optional[str]:
        """Read a definition, or None if it can't be read."""
        config_path = paths.get_site_config_path(identifier)
        try:
            return config_path.read_text()
        except OSError:
            return None

    def list_sites(self) -> List[SiteInfo]:
        """List all definitions with their activation state."""
        sites = []
        for identifier in paths.list_site_identifiers():
            text = self.read_config(identifier) or ""
            sites.append(SiteInfo(
                identifier=identifier,
                config_path=paths.get_site_config_path(identifier),
                enabled=self.is_enabled(identifier),
                managed=is_managed(text),
            ))
        return sites

    def is_active(self) -> bool:
        """Check if the nginx service is running."""
        try:
            self.executor.run(["systemctl", "is-active", "--quiet", self.settings.proxy_service])
            return True
        except ExecutionFailed:
            return False

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def write_config(self, path: Path, text: str) -> OperationResult:
        """Write a definition, overwriting any existing file."""
        try:
            self.executor.write_file(path, text)
        except ExecutionFailed as e:
            return OperationResult.failed(f"Failed to create configuration: {e.message}")
        return OperationResult.ok(f"Configuration created successfully: {path}")

    def enable(self, identifier: str) -> OperationResult:
        """Create or replace the activation link. Safe to repeat."""
        config_path, enabled_path = self.site_paths(identifier)
        try:
            self.executor.symlink(config_path, enabled_path)
        except ExecutionFailed as e:
            return OperationResult.failed(f"Failed to enable site: {e.message}")
        return OperationResult.ok("Site enabled successfully")

    def disable(self, identifier: str) -> OperationResult:
        """Remove the activation link; a missing link is fine."""
        enabled_path = paths.get_site_enabled_path(identifier)
        try:
            self.executor.remove(enabled_path)
        except ExecutionFailed as e:
            return OperationResult.failed(f"Failed to disable site: {e.message}")
        return OperationResult.ok("Site disabled successfully")

    def test(self) -> OperationResult:
        """Run the nginx syntax check."""
        try:
            self.executor.run([self.settings.proxy_binary, "-t"])
        except ExecutionFailed as e:
            detail = (e.stderr or "").strip()
            error = "Nginx configuration test failed"
            if detail:
                error = f"{error}:\n{detail}"
            return OperationResult.failed(error)
        return OperationResult.ok("Nginx configuration test passed")

    def reload(self) -> OperationResult:
        """Reload nginx without dropping connections."""
        try:
            self.executor.run(["systemctl", "reload", self.settings.proxy_service])
        except ExecutionFailed as e:
            return OperationResult.failed(f"Failed to reload nginx: {e.message}")
        return OperationResult.ok("Nginx reloaded successfully")

    def delete_config(self, identifier: str) -> OperationResult:
        """Delete the definition file only."""
        config_path = paths.get_site_config_path(identifier)
        try:
            self.executor.remove(config_path)
        except ExecutionFailed as e:
            return OperationResult.failed(f"Failed to delete configuration: {e.message}")
        return OperationResult.ok(f"Configuration deleted: {config_path}")

    def remove(self, identifier: str) -> OperationResult:
        """Delete the activation link, then the definition."""
        for step in (self.disable, self.delete_config):
            result = step(identifier)
            if not result.success:
                return OperationResult.failed(f"Failed to remove site: {result.error}")
        return OperationResult.ok("Site configuration removed successfully")
