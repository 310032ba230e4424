"""Shared data records for depsite."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union


@dataclass(frozen=True)
class RawConfig:
    """Operator-supplied deployment values, as captured."""
    project_name: str
    domain_name: str
    port_number: Union[int, str]


@dataclass(frozen=True)
class ProcessedConfig:
    """Validated configuration with derived identifiers."""
    project_name: str
    domain_name: str
    port_number: int
    clean_identifier: str
    upstream_identifier: str


@dataclass
class ValidationResult:
    """Aggregated outcome of one or more validation checks."""
    errors: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def add(self, error: str) -> None:
        self.errors.append(error)


@dataclass(frozen=True)
class OperationResult:
    """Result of a proxy or certificate operation."""
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, message: str) -> "OperationResult":
        return cls(success=True, message=message)

    @classmethod
    def failed(cls, error: str) -> "OperationResult":
        return cls(success=False, error=error)


@dataclass(frozen=True)
class CommandResult:
    """Output of a command run through the privileged executor."""
    command: List[str]
    stdout: str = ""
    stderr: str = ""
    returncode: int = 0


@dataclass(frozen=True)
class DeploymentSummary:
    """Record of a fully applied deployment."""
    config: ProcessedConfig
    config_file_path: Path
    enabled_link_path: Path
    certificate_enabled: bool = False


@dataclass(frozen=True)
class SiteInfo:
    """A site definition found in the definitions directory."""
    identifier: str
    config_path: Path
    enabled: bool
    managed: bool
