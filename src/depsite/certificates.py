"""
Certificate issuance and maintenance via certbot.

Issuance is always optional: a failure is reported and never fatal to a
deployment that has already been reloaded.
"""

import re
import shutil
import subprocess
from typing import Dict, List, Optional

from .errors import ExecutionFailed
from .models import OperationResult
from .privileged_ops import PrivilegedExecutor
from .settings import Settings


_CERT_NAME = re.compile(r"Certificate Name:\s*(.+)")
_EXPIRY_DATE = re.compile(r"Expiry Date:\s*([^\n]+)")
_LIVE_DOMAIN = re.compile(r"/etc/letsencrypt/live/([^/]+)/")


def get_operator_email() -> Optional[str]:
    """
    Look up the operator's address from git's global config.

    Runs unprivileged. Returns None if git is missing or has no address.
    """
    try:
        result = subprocess.run(
            ["git", "config", "--global", "user.email"],
            capture_output=True, text=True, timeout=10
        )
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return None

    email = result.stdout.strip()
    if result.returncode != 0 or "@" not in email:
        return None
    return email


class CertificateController:
    """Wraps the certbot CLI."""

    def __init__(self, executor: PrivilegedExecutor, settings: Optional[Settings] = None):
        self.executor = executor
        self.settings = settings or Settings()

    @property
    def tool(self) -> str:
        return self.settings.certificate_tool

    def is_available(self) -> bool:
        """Check if certbot is on PATH."""
        return shutil.which(self.tool) is not None

    def issue_command(self, domain: str, email: Optional[str] = None) -> List[str]:
        """Build the non-interactive issuance command."""
        command = [
            self.tool, "--nginx", "-d", domain,
            "--non-interactive", "--agree-tos", "--redirect",
        ]
        if email:
            command += ["--email", email]
        else:
            command.append("--register-unsafely-without-email")
        return command

    def issue(self, domain: str) -> OperationResult:
        """Obtain a certificate and let certbot patch the nginx site."""
        if not self.is_available():
            return OperationResult.failed(
                f"{self.tool} is not installed. Please install {self.tool} first."
            )

        try:
            self.executor.run(self.issue_command(domain, get_operator_email()))
        except ExecutionFailed as e:
            return OperationResult.failed(f"SSL setup failed: {e.message}")
        return OperationResult.ok("SSL certificate installed successfully")

    def manual_command(self, domain: str) -> str:
        """Command the operator can run to retry issuance by hand."""
        return f"sudo {self.tool} --nginx -d {domain}"

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def list_certificates(self) -> List[str]:
        """Names of all certificates certbot manages."""
        try:
            result = self.executor.run([self.tool, "certificates"])
        except ExecutionFailed:
            return []
        return [m.group(1).strip() for m in _CERT_NAME.finditer(result.stdout)]

    def certificate_info(self, domain: str) -> Dict:
        """
        Look up one certificate.

        Returns:
            Dict with 'exists' and, when found, 'expiry_date'
        """
        info = {"domain": domain, "exists": False, "expiry_date": None}
        try:
            result = self.executor.run([self.tool, "certificates", "-d", domain])
        except ExecutionFailed:
            return info

        if domain not in result.stdout:
            return info

        info["exists"] = True
        match = _EXPIRY_DATE.search(result.stdout)
        if match:
            info["expiry_date"] = match.group(1).strip()
        return info

    def renew(self, domain: Optional[str] = None) -> OperationResult:
        """Renew one certificate, or all due ones."""
        command = [self.tool, "renew"]
        if domain:
            command += ["--cert-name", domain]
        try:
            self.executor.run(command)
        except ExecutionFailed as e:
            return OperationResult.failed(f"Certificate renewal failed: {e.message}")
        return OperationResult.ok("SSL certificate renewed successfully")

    def revoke(self, domain: str) -> OperationResult:
        try:
            self.executor.run([self.tool, "revoke", "--cert-name", domain, "--non-interactive"])
        except ExecutionFailed as e:
            return OperationResult.failed(f"Certificate revocation failed: {e.message}")
        return OperationResult.ok("SSL certificate revoked successfully")

    def delete(self, domain: str) -> OperationResult:
        try:
            self.executor.run([self.tool, "delete", "--cert-name", domain, "--non-interactive"])
        except ExecutionFailed as e:
            return OperationResult.failed(f"Certificate deletion failed: {e.message}")
        return OperationResult.ok("SSL certificate deleted successfully")

    def check_renewal_status(self) -> Dict:
        """
        Dry-run renewal and report which certificates are due.

        Returns:
            Dict with 'needs_renewal' and 'certificates'
        """
        try:
            result = self.executor.run([self.tool, "renew", "--dry-run"])
        except ExecutionFailed:
            return {"needs_renewal": False, "certificates": []}

        certificates = []
        for line in result.stdout.splitlines():
            if "would be renewed" in line:
                match = _LIVE_DOMAIN.search(line)
                if match:
                    certificates.append(match.group(1))

        return {
            "needs_renewal": "would be renewed" in result.stdout,
            "certificates": certificates,
        }
