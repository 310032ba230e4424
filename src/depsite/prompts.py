"""Interactive prompts for depsite deploy."""

from typing import Optional

import click

from .models import RawConfig
from .validators import ConfigValidator


class ClickPrompter:
    """
    Asks the operator for deployment values and confirmations.

    Values given up front (command-line options) are used as-is and not
    prompted for; the pipeline validates them like any other answer.

    Args:
        assume_yes: Answer yes to proceed/overwrite confirmations
        ssl: Preset answer for certificate issuance (None = ask)
        validator: Field validator used to reject bad answers
    """

    def __init__(self, assume_yes: bool = False, ssl: Optional[bool] = None,
                 validator: Optional[ConfigValidator] = None,
                 project_name: Optional[str] = None, domain_name: Optional[str] = None,
                 port_number: Optional[str] = None):
        self.assume_yes = assume_yes
        self.ssl = ssl
        self.validator = validator or ConfigValidator()
        self.project_name = project_name
        self.domain_name = domain_name
        self.port_number = port_number

    def _field(self, check):
        def convert(value):
            errors = check(value)
            if errors:
                raise click.BadParameter(errors[0])
            return value.strip() if isinstance(value, str) else value
        return convert

    def ask_config(self) -> RawConfig:
        """Prompt for any value not already given on the command line."""
        project_name = self.project_name
        domain_name = self.domain_name
        port_number = self.port_number
        if project_name is None:
            project_name = click.prompt(
                "Enter the project name (e.g., hrayfi-api)",
                value_proc=self._field(self.validator.check_project_name),
            )
        if domain_name is None:
            domain_name = click.prompt(
                "Enter the domain name (e.g., hrayfi-api.reacture.dev)",
                value_proc=self._field(self.validator.check_domain_name),
            )
        if port_number is None:
            port_number = click.prompt(
                "Enter the port number (e.g., 3101)",
                value_proc=self._field(self.validator.check_port_number),
            )
        return RawConfig(project_name=project_name, domain_name=domain_name, port_number=port_number)

    def confirm_proceed(self) -> bool:
        if self.assume_yes:
            return True
        return click.confirm("Continue with these settings?", default=False)

    def confirm_overwrite(self) -> bool:
        if self.assume_yes:
            return True
        return click.confirm("Overwrite existing configuration?", default=False)

    def confirm_ssl(self) -> bool:
        if self.ssl is not None:
            return self.ssl
        return click.confirm("Setup SSL certificate with certbot?", default=True)
