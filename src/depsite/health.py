"""Post-deployment site check for depsite."""

import re
from typing import Optional

import click
import requests

from . import paths
from .privileged_ops import PrivilegedExecutor
from .proxy import ProxyController
from .settings import Settings
from .validators import CheckResult, PortProbe, ValidationReport


HEALTH_URL = "http://127.0.0.1/health"
HEALTH_TIMEOUT = 5

_BACKEND_PORT = re.compile(r"server\s+127\.0\.0\.1:(\d+)\s*;")
_SERVER_NAME = re.compile(r"server_name\s+([^\s;]+)\s*;")


def print_section(title: str):
    """Print a section header."""
    click.echo(title)
    click.echo("-" * 70)


def print_check(result: CheckResult, verbose: bool = False):
    """Print a single check result."""
    icon = "✓" if result.passed else "✗"
    click.echo(f"  {icon} {result.name}: {result.message}")

    if result.details and (verbose or not result.passed):
        click.echo(f"     {result.details}")


def print_report(report: ValidationReport, verbose: bool = False):
    """Print a validation report."""
    print_section(report.category)
    for check in report.checks:
        print_check(check, verbose)
    click.echo()


def parse_backend_port(text: str) -> Optional[int]:
    """Find the upstream backend port in a definition."""
    match = _BACKEND_PORT.search(text)
    return int(match.group(1)) if match else None


def parse_server_name(text: str) -> Optional[str]:
    """Find the first server_name in a definition."""
    match = _SERVER_NAME.search(text)
    return match.group(1).strip('"') if match else None


def check_health_endpoint(domain: str, timeout: float = HEALTH_TIMEOUT) -> CheckResult:
    """GET the local /health endpoint as the site's virtual host."""
    try:
        response = requests.get(HEALTH_URL, headers={"Host": domain}, timeout=timeout)
    except requests.RequestException as e:
        return CheckResult("Health endpoint", False, "Request failed", str(e))

    if response.status_code == 200:
        return CheckResult("Health endpoint", True, f"HTTP {response.status_code}")
    return CheckResult(
        "Health endpoint", False, f"HTTP {response.status_code}",
        response.text.strip()[:200] or None,
    )


def check_site(
    identifier: str,
    executor: PrivilegedExecutor,
    settings: Optional[Settings] = None,
    probe: Optional[PortProbe] = None,
) -> ValidationReport:
    """
    Check a deployed site end to end.

    Covers: definition present, activation link, nginx -t, backend liveness
    and the /health endpoint. Checks that need the definition are skipped
    when it is missing.
    """
    settings = settings or Settings()
    probe = probe or PortProbe(timeout=settings.probe_timeout)
    proxy = ProxyController(executor, settings)
    report = ValidationReport(category=f"Site: {identifier}")

    config_path = paths.get_site_config_path(identifier)
    text = proxy.read_config(identifier)
    if text is None:
        report.checks.append(CheckResult("Definition", False, "Not found", str(config_path)))
        return report
    report.checks.append(CheckResult("Definition", True, str(config_path)))

    if proxy.is_enabled(identifier):
        report.checks.append(CheckResult("Activation link", True, "Enabled"))
    else:
        report.checks.append(CheckResult(
            "Activation link", False, "Not enabled",
            f"Run: depsite deploy --name {identifier}",
        ))

    tested = proxy.test()
    if tested.success:
        report.checks.append(CheckResult("nginx -t", True, "Configuration valid"))
    else:
        report.checks.append(CheckResult("nginx -t", False, "Configuration invalid", tested.error))

    port = parse_backend_port(text)
    if port is None:
        report.checks.append(CheckResult("Backend", False, "No backend port in definition"))
    elif probe.is_listening(port):
        report.checks.append(CheckResult("Backend", True, f"Listening on port {port}"))
    else:
        report.checks.append(CheckResult("Backend", False, f"Nothing listening on port {port}"))

    domain = parse_server_name(text)
    if domain is None:
        report.checks.append(CheckResult("Health endpoint", False, "No server_name in definition"))
    else:
        report.checks.append(check_health_endpoint(domain))

    return report
