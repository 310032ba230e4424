"""
Validation library for depsite.

Provides reusable validation functions for:
- Deployment input (project name, domain, port)
- Backend liveness (is something listening on the port?)
- System state (identity, nginx binary and service, disk space)
- Site existence

Used by:
- depsite deploy: Pre-flight and configuration validation
- depsite check: Site health report
- Interactive prompts: Per-field feedback
"""

import re
import shutil
import socket
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from . import paths
from . import privileged_ops
from .errors import DepsiteError, InvalidPort
from .models import ProcessedConfig, RawConfig, ValidationResult
from .privileged_ops import PrivilegedExecutor
from .proxy import ProxyController
from .sanitizer import derive_upstream_name, sanitize_domain, sanitize_identifier, sanitize_port
from .settings import Settings


PROJECT_NAME_MIN_LENGTH = 1
PROJECT_NAME_MAX_LENGTH = 50
PROJECT_NAME_CHARS = re.compile(r"^[A-Za-z0-9_-]+$")

DOMAIN_MIN_LENGTH = 3
DOMAIN_MAX_LENGTH = 253
DOMAIN_PATTERN = re.compile(
    r"^[A-Za-z0-9]([A-Za-z0-9-]{0,61}[A-Za-z0-9])?"
    r"(\.[A-Za-z0-9]([A-Za-z0-9-]{0,61}[A-Za-z0-9])?)*$"
)


# =============================================================================
# Result Types
# =============================================================================

@dataclass
class CheckResult:
    """Result of a single named check."""
    name: str
    passed: bool
    message: str
    details: Optional[str] = None


@dataclass
class ValidationReport:
    """Collection of check results."""
    category: str
    checks: List[CheckResult] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        """All checks passed."""
        return all(c.passed for c in self.checks)

    @property
    def issues(self) -> List[CheckResult]:
        """Checks that failed."""
        return [c for c in self.checks if not c.passed]


# =============================================================================
# Port Probe
# =============================================================================

def check_tcp_port(host: str, port: int, timeout: float = 5) -> Dict:
    """
    Check if a TCP port is reachable.
    """
    result = {
        "host": host,
        "port": port,
        "reachable": False,
        "error": None,
    }

    try:
        with socket.create_connection((host, port), timeout=timeout):
            result["reachable"] = True
    except socket.timeout:
        result["error"] = "Connection timeout"
    except ConnectionRefusedError:
        result["error"] = "Connection refused"
    except OSError as e:
        result["error"] = str(e)

    return result


class PortProbe:
    """Detects a backend listening on a local port."""

    def __init__(self, timeout: float = 1.0):
        self.timeout = timeout

    def is_listening(self, port: int) -> bool:
        """
        Check for a listener reachable at 127.0.0.1, where the upstream points.

        A 0.0.0.0 listener accepts the loopback connect too. Listeners bound
        only to another address, and IPv6-only listeners, are not detected.
        Timeouts and refusals count as "not listening".
        """
        return check_tcp_port("127.0.0.1", port, timeout=self.timeout)["reachable"]


# =============================================================================
# Configuration Validation
# =============================================================================

class ConfigValidator:
    """Validates operator-supplied deployment values."""

    def __init__(self, probe: Optional[PortProbe] = None):
        self.probe = probe or PortProbe()

    def check_project_name(self, project_name: str) -> List[str]:
        """Check length and charset of the raw name and its identifier."""
        if not project_name or not isinstance(project_name, str) or not project_name.strip():
            return ["Project name is required"]

        errors = []
        trimmed = project_name.strip()

        if len(trimmed) < PROJECT_NAME_MIN_LENGTH:
            errors.append(f"Project name must be at least {PROJECT_NAME_MIN_LENGTH} character(s)")
        if len(trimmed) > PROJECT_NAME_MAX_LENGTH:
            errors.append(f"Project name must be no more than {PROJECT_NAME_MAX_LENGTH} characters")
        if not PROJECT_NAME_CHARS.match(trimmed):
            errors.append("Project name must contain only letters, numbers, hyphens, and underscores")
        elif not sanitize_identifier(trimmed):
            errors.append("Project name must contain at least one letter or number")

        return errors

    def check_domain_name(self, domain_name: str) -> List[str]:
        """Check length and DNS label grammar of a domain."""
        if not domain_name or not isinstance(domain_name, str) or not domain_name.strip():
            return ["Domain name is required"]

        errors = []
        trimmed = domain_name.strip()

        if len(trimmed) < DOMAIN_MIN_LENGTH:
            errors.append(f"Domain name must be at least {DOMAIN_MIN_LENGTH} characters")
        if len(trimmed) > DOMAIN_MAX_LENGTH:
            errors.append(f"Domain name must be no more than {DOMAIN_MAX_LENGTH} characters")
        if not DOMAIN_PATTERN.match(trimmed):
            errors.append("Please enter a valid domain name")

        return errors

    def check_port_number(self, port_number) -> List[str]:
        """Check range and reserved set of a port."""
        try:
            sanitize_port(port_number)
        except InvalidPort as e:
            return [e.message]
        return []

    def check_liveness(self, port: int) -> List[str]:
        """Check that a backend is already running on the port."""
        if self.probe.is_listening(port):
            return []
        return [
            f"No service is running on port {port}. "
            "Please ensure your application is running on this port before deploying."
        ]

    def validate(self, config: RawConfig) -> ValidationResult:
        """Run all field checks and the liveness probe; never short-circuits."""
        result = ValidationResult()
        result.errors.extend(self.check_project_name(config.project_name))
        result.errors.extend(self.check_domain_name(config.domain_name))

        port_errors = self.check_port_number(config.port_number)
        result.errors.extend(port_errors)

        # Probing needs a usable port number
        if not port_errors:
            result.errors.extend(self.check_liveness(sanitize_port(config.port_number)))

        return result


def validate_config(config: RawConfig, probe: Optional[PortProbe] = None) -> ValidationResult:
    """Validate deployment values including backend liveness."""
    return ConfigValidator(probe).validate(config)


def process_config(config: RawConfig) -> ProcessedConfig:
    """
    Derive the processed configuration.

    Raises:
        DepsiteError: VALIDATION kind if any field is invalid
    """
    validator = ConfigValidator()
    errors = (
        validator.check_project_name(config.project_name)
        + validator.check_domain_name(config.domain_name)
        + validator.check_port_number(config.port_number)
    )
    if errors:
        raise DepsiteError.validation("; ".join(errors))

    identifier = sanitize_identifier(config.project_name)
    return ProcessedConfig(
        project_name=config.project_name.strip(),
        domain_name=sanitize_domain(config.domain_name),
        port_number=sanitize_port(config.port_number),
        clean_identifier=identifier,
        upstream_identifier=derive_upstream_name(identifier),
    )


def validate_not_exists(identifier: str) -> ValidationResult:
    """Fail if a site definition already exists for identifier."""
    result = ValidationResult()
    config_path = paths.get_site_config_path(identifier)
    if config_path.exists():
        result.add(f"Site configuration already exists: {config_path}")
    return result


# =============================================================================
# System Validation
# =============================================================================

class SystemValidator:
    """Validates the host before anything is touched."""

    def __init__(self, executor: PrivilegedExecutor, settings: Optional[Settings] = None):
        self.executor = executor
        self.settings = settings or Settings()

    def check_not_privileged(self) -> List[str]:
        """Refuse ambient root; escalation happens per command."""
        if privileged_ops.is_privileged():
            return ["This tool should not be run as root. It uses sudo when needed."]
        return []

    def check_proxy_binary(self) -> List[str]:
        """Check the nginx binary is on PATH."""
        if shutil.which(self.settings.proxy_binary):
            return []
        return [f"{self.settings.proxy_binary} is not installed. Please install {self.settings.proxy_binary} first."]

    def check_proxy_active(self) -> List[str]:
        """Check the nginx service is running."""
        if ProxyController(self.executor, self.settings).is_active():
            return []
        return [f"{self.settings.proxy_service} service is not running"]

    def check_disk_space(self) -> List[str]:
        """Check free space in the definitions directory."""
        target = paths.get_sites_available_dir()
        available = privileged_ops.get_free_bytes(target)
        if available < self.settings.min_free_bytes:
            return [
                f"Insufficient disk space for nginx configuration at {target} "
                f"({available} bytes free, {self.settings.min_free_bytes} required)"
            ]
        return []

    def validate(self) -> ValidationResult:
        """Run all system checks."""
        result = ValidationResult()
        result.errors.extend(self.check_not_privileged())
        result.errors.extend(self.check_proxy_binary())
        result.errors.extend(self.check_proxy_active())
        result.errors.extend(self.check_disk_space())
        return result


def validate_system(executor: PrivilegedExecutor, settings: Optional[Settings] = None) -> ValidationResult:
    """Validate host requirements."""
    return SystemValidator(executor, settings).validate()
