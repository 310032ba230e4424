"""Input sanitization for project names, domains, and ports."""

import re
from typing import Union

from .errors import InvalidPort


PORT_MIN = 1
PORT_MAX = 65535
RESERVED_PORTS = frozenset({22, 25, 53, 80, 110, 143, 443, 993, 995})

UPSTREAM_SUFFIX = "_prod"

_DISALLOWED = re.compile(r"[^A-Za-z0-9-]")
_REPEATED_HYPHENS = re.compile(r"-{2,}")


def sanitize_identifier(raw: str) -> str:
    """
    Normalize a project name into a site identifier.

    Never fails. The result only contains [a-z0-9-], has no repeated,
    leading or trailing hyphens, and may be empty.
    """
    if raw is None:
        return ""
    cleaned = _DISALLOWED.sub("-", str(raw).strip())
    cleaned = _REPEATED_HYPHENS.sub("-", cleaned)
    return cleaned.strip("-").lower()


def sanitize_domain(raw: str) -> str:
    """Trim and lowercase a domain name."""
    if raw is None:
        return ""
    return str(raw).strip().lower()


def sanitize_port(raw: Union[int, str]) -> int:
    """
    Parse and check a backend port.

    Args:
        raw: Port as an int or a numeric string

    Returns:
        The port, unchanged

    Raises:
        InvalidPort: If not a number, out of range, or reserved
    """
    if isinstance(raw, bool):
        raise InvalidPort("Port must be a valid number")

    if isinstance(raw, int):
        port = raw
    else:
        text = str(raw).strip() if raw is not None else ""
        if not re.fullmatch(r"[0-9]+", text):
            raise InvalidPort("Port must be a valid number")
        port = int(text)

    if port < PORT_MIN or port > PORT_MAX:
        raise InvalidPort(f"Port must be between {PORT_MIN} and {PORT_MAX}")

    if port in RESERVED_PORTS:
        raise InvalidPort(f"Port {port} is a reserved port for system services")

    return port


def derive_upstream_name(identifier: str) -> str:
    """Get the upstream name for a site identifier."""
    return f"{identifier}{UPSTREAM_SUFFIX}"
