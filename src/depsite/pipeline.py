"""
Deployment pipeline for depsite.

Runs a deployment as an explicit state machine:

    INIT -> SYSTEM_VALIDATED -> CONFIG_CAPTURED -> CONFIG_VALIDATED
         -> CONFIG_GENERATED -> CONFIG_WRITTEN -> SITE_ENABLED
         -> CONFIG_TESTED -> RELOADED -> CERTIFIED | CERT_SKIPPED -> COMPLETE

Nothing on disk changes before CONFIG_WRITTEN. A failure or interrupt from
there up to the reload undoes the committed steps in reverse order and ends
in ROLLED_BACK. Certificate issuance comes after the reload and is never
undone.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from .certificates import CertificateController
from .errors import DepsiteError, PipelineInterrupted
from .models import DeploymentSummary, ProcessedConfig, RawConfig
from .output import Output
from .privileged_ops import PrivilegedExecutor
from .proxy import ProxyController
from .renderer import render, validate_syntax
from .settings import Settings
from .validators import ConfigValidator, PortProbe, SystemValidator, process_config, validate_not_exists


class PipelineStage(Enum):
    INIT = "init"
    SYSTEM_VALIDATED = "system_validated"
    CONFIG_CAPTURED = "config_captured"
    CONFIG_VALIDATED = "config_validated"
    CONFIG_GENERATED = "config_generated"
    CONFIG_WRITTEN = "config_written"
    SITE_ENABLED = "site_enabled"
    CONFIG_TESTED = "config_tested"
    RELOADED = "reloaded"
    CERTIFIED = "certified"
    CERT_SKIPPED = "cert_skipped"
    COMPLETE = "complete"
    ROLLED_BACK = "rolled_back"


TRANSITIONS: Dict[PipelineStage, FrozenSet[PipelineStage]] = {
    PipelineStage.INIT: frozenset({PipelineStage.SYSTEM_VALIDATED}),
    PipelineStage.SYSTEM_VALIDATED: frozenset({PipelineStage.CONFIG_CAPTURED}),
    PipelineStage.CONFIG_CAPTURED: frozenset({PipelineStage.CONFIG_VALIDATED}),
    PipelineStage.CONFIG_VALIDATED: frozenset({PipelineStage.CONFIG_GENERATED}),
    # An interrupted write may leave the file before CONFIG_WRITTEN is recorded
    PipelineStage.CONFIG_GENERATED: frozenset({PipelineStage.CONFIG_WRITTEN, PipelineStage.ROLLED_BACK}),
    PipelineStage.CONFIG_WRITTEN: frozenset({PipelineStage.SITE_ENABLED, PipelineStage.ROLLED_BACK}),
    PipelineStage.SITE_ENABLED: frozenset({PipelineStage.CONFIG_TESTED, PipelineStage.ROLLED_BACK}),
    PipelineStage.CONFIG_TESTED: frozenset({PipelineStage.RELOADED, PipelineStage.ROLLED_BACK}),
    PipelineStage.RELOADED: frozenset({
        PipelineStage.CERTIFIED, PipelineStage.CERT_SKIPPED, PipelineStage.ROLLED_BACK,
    }),
    PipelineStage.CERTIFIED: frozenset({PipelineStage.COMPLETE}),
    PipelineStage.CERT_SKIPPED: frozenset({PipelineStage.COMPLETE}),
}


class DeploymentStatus(Enum):
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class PipelineState:
    """Bookkeeping for one run: where we are and what has been committed."""
    stage: PipelineStage = PipelineStage.INIT
    history: List[PipelineStage] = field(default_factory=lambda: [PipelineStage.INIT])
    raw: Optional[RawConfig] = None
    config: Optional[ProcessedConfig] = None
    overwriting: bool = False
    file_written: bool = False
    link_enabled: bool = False
    reloaded: bool = False

    def advance(self, target: PipelineStage) -> None:
        """
        Move to target.

        Raises:
            RuntimeError: If the transition is not in the table
        """
        if target not in TRANSITIONS.get(self.stage, frozenset()):
            raise RuntimeError(f"Illegal pipeline transition: {self.stage.name} -> {target.name}")
        self.stage = target
        self.history.append(target)


@dataclass
class DeploymentOutcome:
    """What a pipeline run reports back to its caller."""
    status: DeploymentStatus
    final_stage: PipelineStage
    history: List[PipelineStage] = field(default_factory=list)
    summary: Optional[DeploymentSummary] = None
    error: Optional[DepsiteError] = None
    errors: List[str] = field(default_factory=list)
    rolled_back: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status is DeploymentStatus.COMPLETE


class DeploymentPipeline:
    """
    Sequences validation, generation, activation and certification.

    Collaborators are injected so tests can swap the executor, the port
    probe and the prompter.
    """

    def __init__(
        self,
        executor: PrivilegedExecutor,
        output: Output,
        prompter,
        settings: Optional[Settings] = None,
        probe: Optional[PortProbe] = None,
        proxy: Optional[ProxyController] = None,
        certificates: Optional[CertificateController] = None,
    ):
        self.executor = executor
        self.output = output
        self.prompter = prompter
        self.settings = settings or Settings()
        self.probe = probe or PortProbe(timeout=self.settings.probe_timeout)
        self.proxy = proxy or ProxyController(executor, self.settings)
        self.certificates = certificates or CertificateController(executor, self.settings)
        self._stop_requested = False

    def request_stop(self) -> None:
        """Stop before the next transition. Steps between the write and the reload are rolled back."""
        self._stop_requested = True

    def _advance(self, state: PipelineState, target: PipelineStage) -> None:
        if self._stop_requested:
            raise PipelineInterrupted(f"Stopped before {target.name}")
        state.advance(target)

    def _outcome(self, state: PipelineState, status: DeploymentStatus, **kwargs) -> DeploymentOutcome:
        return DeploymentOutcome(
            status=status,
            final_stage=state.stage,
            history=list(state.history),
            **kwargs
        )

    def _failed(self, state: PipelineState, error: DepsiteError,
                errors: Optional[List[str]] = None) -> DeploymentOutcome:
        self.output.clear_progress()
        for line in errors or []:
            self.output.error(line)
        return self._outcome(state, DeploymentStatus.FAILED, error=error, errors=list(errors or []))

    def run(self, raw: Optional[RawConfig] = None) -> DeploymentOutcome:
        """
        Deploy a site.

        Returns:
            DeploymentOutcome; failures are reported there, not raised

        Raises:
            PipelineInterrupted: If request_stop() was called during the run
        """
        state = PipelineState()

        # System validation
        self.output.section("System Validation")
        self.output.progress("Checking system requirements")
        system = SystemValidator(self.executor, self.settings).validate()
        if not system.is_valid:
            return self._failed(state, DepsiteError.validation("System validation failed"), system.errors)
        self.output.progress_complete("System requirements validated")

        if self.certificates.is_available():
            self.output.success("Certbot detected and available for SSL setup")
        else:
            self.output.warning("Certbot not found - SSL setup will be skipped")
        self._advance(state, PipelineStage.SYSTEM_VALIDATED)

        self.output.section("Configuration")
        state.raw = raw if raw is not None else self.prompter.ask_config()
        self._advance(state, PipelineStage.CONFIG_CAPTURED)

        # Configuration validation
        self.output.progress("Processing configuration")
        checked = ConfigValidator(self.probe).validate(state.raw)
        if not checked.is_valid:
            return self._failed(state, DepsiteError.validation("Configuration validation failed"), checked.errors)
        config = process_config(state.raw)
        state.config = config
        self.output.progress_complete("Configuration processed and validated")
        self._advance(state, PipelineStage.CONFIG_VALIDATED)

        self._preview(config)
        if not self.prompter.confirm_proceed():
            self.output.warning("Deployment cancelled by user")
            return self._outcome(state, DeploymentStatus.CANCELLED)

        existing = validate_not_exists(config.clean_identifier)
        if not existing.is_valid:
            for line in existing.errors:
                self.output.warning(line)
            if not self.prompter.confirm_overwrite():
                self.output.warning("Deployment cancelled by user")
                return self._outcome(state, DeploymentStatus.CANCELLED)
            state.overwriting = True
            self.output.info("Will overwrite existing configuration")

        # Generation
        text = render(config, self.settings)
        structure = validate_syntax(text)
        if not structure.is_valid:
            return self._failed(
                state, DepsiteError.operation("Generated configuration is malformed"), structure.errors
            )
        self._advance(state, PipelineStage.CONFIG_GENERATED)

        # Commit
        self.output.section("Deployment")
        try:
            self._commit(state, config, text)
        except (PipelineInterrupted, KeyboardInterrupt, SystemExit):
            self.output.clear_progress()
            if state.file_written and not state.reloaded:
                self._rollback(state, config, "Deployment interrupted")
            raise
        except DepsiteError as e:
            self.output.clear_progress()
            self.output.error(e.message)
            if not state.file_written:
                errors = [e.message]
                if state.overwriting:
                    config_path, _ = self.proxy.site_paths(config.clean_identifier)
                    damaged = f"The previous definition at {config_path} may be incomplete"
                    self.output.warning(damaged)
                    errors.append(damaged)
                return self._outcome(state, DeploymentStatus.FAILED, error=e, errors=errors)
            cleanup_errors = self._rollback(state, config)
            return self._outcome(
                state, DeploymentStatus.FAILED,
                error=e,
                errors=[e.message] + cleanup_errors,
                rolled_back=not cleanup_errors,
            )
        except Exception:
            self.output.clear_progress()
            if state.file_written:
                self._rollback(state, config)
            raise

        # Certification
        certified = self._certify(config)
        self._advance(state, PipelineStage.CERTIFIED if certified else PipelineStage.CERT_SKIPPED)

        config_path, enabled_path = self.proxy.site_paths(config.clean_identifier)
        summary = DeploymentSummary(
            config=config,
            config_file_path=config_path,
            enabled_link_path=enabled_path,
            certificate_enabled=certified,
        )
        self._advance(state, PipelineStage.COMPLETE)
        self.print_summary(summary)
        return self._outcome(state, DeploymentStatus.COMPLETE, summary=summary)

    def _commit(self, state: PipelineState, config: ProcessedConfig, text: str) -> None:
        identifier = config.clean_identifier
        config_path, _ = self.proxy.site_paths(identifier)

        self.output.progress("Creating nginx configuration")
        self._check(self.proxy.write_config(config_path, text))
        state.file_written = True
        self._advance(state, PipelineStage.CONFIG_WRITTEN)
        self.output.progress_complete("Nginx configuration created")

        self.output.progress("Enabling site")
        # ln can fail after leaving a link behind
        state.link_enabled = True
        self._check(self.proxy.enable(identifier))
        self._advance(state, PipelineStage.SITE_ENABLED)
        self.output.progress_complete("Site enabled")

        self.output.progress("Testing nginx configuration")
        self._check(self.proxy.test())
        self._advance(state, PipelineStage.CONFIG_TESTED)
        self.output.progress_complete("Nginx configuration test passed")

        self.output.progress("Reloading nginx")
        self._check(self.proxy.reload())
        state.reloaded = True
        self._advance(state, PipelineStage.RELOADED)
        self.output.progress_complete("Nginx configuration applied")

    def _check(self, result) -> None:
        if not result.success:
            raise DepsiteError.operation(result.error or "Operation failed")

    def _rollback(self, state: PipelineState, config: ProcessedConfig,
                  reason: str = "Deployment failed") -> List[str]:
        """
        Undo committed steps in reverse order. Best-effort; never raises.

        Returns:
            Errors from steps that could not be undone
        """
        self.output.error(f"{reason} - rolling back changes...")
        identifier = config.clean_identifier
        errors = []

        steps = []
        if state.link_enabled:
            steps.append(self.proxy.disable)
        if state.file_written:
            steps.append(self.proxy.delete_config)

        for step in steps:
            try:
                result = step(identifier)
            except Exception as e:
                errors.append(f"Rollback failed: {e}")
                continue
            if not result.success:
                errors.append(f"Rollback failed: {result.error}")

        state.link_enabled = False
        state.file_written = False
        state.advance(PipelineStage.ROLLED_BACK)

        if errors:
            for line in errors:
                self.output.error(line)
            self.output.info("You may need to manually clean up nginx configuration files")
        else:
            self.output.info("Rollback completed successfully")
        return errors

    def _certify(self, config: ProcessedConfig) -> bool:
        domain = config.domain_name

        if not self.certificates.is_available():
            self.output.warning("Certbot not available - SSL setup skipped")
            return False

        if not self.prompter.confirm_ssl():
            self.output.info("SSL setup skipped by user")
            return False

        self.output.section("SSL Setup")
        self.output.progress("Setting up SSL certificate")
        result = self.certificates.issue(domain)
        if result.success:
            self.output.progress_complete("SSL certificate configured successfully")
            return True

        self.output.warning(result.error)
        self.output.info(f"You can set up SSL manually later: {self.certificates.manual_command(domain)}")
        return False

    def _preview(self, config: ProcessedConfig) -> None:
        self.output.info(f"Project: {config.clean_identifier}")
        self.output.info(f"Domain: {config.domain_name}")
        self.output.info(f"Port: {config.port_number}")
        self.output.info(f"Upstream: {config.upstream_identifier}")

    def print_summary(self, summary: DeploymentSummary) -> None:
        """Print the post-deployment summary and next steps."""
        config = summary.config
        self.output.header("Deployment completed successfully!")
        self.output.info(f"Project: {config.clean_identifier}")
        self.output.info(f"Domain: {config.domain_name}")
        self.output.info(f"Port: {config.port_number}")
        self.output.info(f"Config: {summary.config_file_path}")
        self.output.info(f"Enabled: {summary.enabled_link_path}")

        self.output.section("Next steps")
        self.output.detail(f"Test your site: curl -I http://{config.domain_name}")
        self.output.detail(f"Check the site: depsite check {config.clean_identifier}")
        self.output.detail(f"Remove the site: depsite remove {config.clean_identifier}")

        scheme = "https" if summary.certificate_enabled else "http"
        if summary.certificate_enabled:
            self.output.success("SSL certificate has been configured")
        self.output.info(f"Your site is now available at: {scheme}://{config.domain_name}")
