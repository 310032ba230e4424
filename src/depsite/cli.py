"""depsite CLI - Main entry point."""

import signal
import sys

import click

from depsite.__version__ import __version__
from depsite.certificates import CertificateController
from depsite.errors import DepsiteError, PipelineInterrupted, describe_error
from depsite.health import print_report, check_site
from depsite.output import Output
from depsite.paths import SimulationRootError, get_sites_available_dir
from depsite.pipeline import DeploymentPipeline, DeploymentStatus
from depsite.privileged_ops import get_executor
from depsite.prompts import ClickPrompter
from depsite.proxy import ProxyController
from depsite.sanitizer import sanitize_identifier
from depsite.settings import load_settings
from depsite.validators import ConfigValidator, PortProbe


EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INTERRUPTED = 130
EXIT_TERMINATED = 143

# Pipeline currently running, so a signal can stop it
_active_pipeline = None


def _output(ctx) -> Output:
    return ctx.obj["output"]


def _context(ctx):
    """Load settings and build the executor for a command."""
    settings = load_settings(ctx.obj.get("config_path"))
    executor = get_executor(timeout=settings.command_timeout)
    return settings, executor


def _report_error(e: DepsiteError):
    for line in describe_error(e):
        click.echo(line, err=True)


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="depsite")
@click.option("--config", "config_path", type=click.Path(dir_okay=False),
              help="Settings file (default: /etc/depsite/config.yaml)")
@click.option("--no-color", is_flag=True, help="Disable colored output")
@click.pass_context
def cli(ctx, config_path, no_color):
    """depsite - Deploy nginx reverse-proxy sites for local backends."""
    ctx.ensure_object(dict)
    ctx.obj.setdefault("output", Output())
    ctx.obj["config_path"] = config_path
    if no_color:
        ctx.obj["output"].color = False

    if ctx.invoked_subcommand is None:
        ctx.invoke(deploy)


# =============================================================================
# Deployment
# =============================================================================

@cli.command()
@click.option("--name", "project_name", help="Project name (e.g. hrayfi-api)")
@click.option("--domain", "domain_name", help="Domain name (e.g. hrayfi-api.reacture.dev)")
@click.option("--port", "port_number", help="Backend port (e.g. 3101)")
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Don't ask for confirmation")
@click.option("--ssl/--no-ssl", default=None, help="Issue a certificate with certbot (default: ask)")
@click.pass_context
def deploy(ctx, project_name, domain_name, port_number, assume_yes, ssl):
    """Deploy a site (default command)."""
    global _active_pipeline
    output = _output(ctx)

    try:
        settings, executor = _context(ctx)
        output.header(f"depsite {__version__} - nginx site deployment")
        if executor.is_simulation:
            output.warning(f"{executor.mode_name} mode: nothing outside {executor.sim_root} is touched")

        probe = PortProbe(timeout=settings.probe_timeout)
        prompter = ClickPrompter(
            assume_yes=assume_yes,
            ssl=ssl,
            validator=ConfigValidator(probe),
            project_name=project_name,
            domain_name=domain_name,
            port_number=port_number,
        )
        _active_pipeline = DeploymentPipeline(executor, output, prompter, settings=settings, probe=probe)
        outcome = _active_pipeline.run()

    except DepsiteError as e:
        output.clear_progress()
        _report_error(e)
        sys.exit(EXIT_ERROR)
    except (ValueError, FileNotFoundError, SimulationRootError) as e:
        output.clear_progress()
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_ERROR)
    finally:
        _active_pipeline = None

    if outcome.status is DeploymentStatus.FAILED:
        _report_error(outcome.error)
        if outcome.rolled_back:
            output.info("All changes were rolled back")
        sys.exit(EXIT_ERROR)


# =============================================================================
# Site management
# =============================================================================

@cli.command()
@click.argument("identifier")
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Don't ask for confirmation")
@click.pass_context
def remove(ctx, identifier, assume_yes):
    """Remove a site's definition and activation link."""
    output = _output(ctx)

    try:
        settings, executor = _context(ctx)
        proxy = ProxyController(executor, settings)
        clean = sanitize_identifier(identifier)

        output.header("Site Removal")
        if not clean or not proxy.site_exists(clean):
            output.error(f"Site '{clean or identifier}' does not exist")
            sys.exit(EXIT_ERROR)

        if not assume_yes and not click.confirm(
            f"Are you sure you want to remove site '{clean}'? This action cannot be undone.",
            default=False,
        ):
            output.info("Site removal cancelled")
            return

        output.progress("Removing site configuration")
        result = proxy.remove(clean)
        if not result.success:
            output.error(result.error)
            sys.exit(EXIT_ERROR)

        reloaded = proxy.reload()
        if not reloaded.success:
            output.warning("Failed to reload nginx after site removal")
            output.detail(reloaded.error)

        output.progress_complete("Site removed successfully")
        output.success(f"Site '{clean}' has been removed")

    except (ValueError, FileNotFoundError, SimulationRootError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_ERROR)


@cli.command("list")
@click.pass_context
def list_sites(ctx):
    """List site definitions."""
    try:
        settings, executor = _context(ctx)
        sites = ProxyController(executor, settings).list_sites()

        if not sites:
            click.echo(f"No sites found in {get_sites_available_dir()}")
            return

        click.echo()
        click.echo(f"{'Site':<40} {'Enabled':<10} {'Managed':<10}")
        click.echo("-" * 60)
        for site in sites:
            icon = "[+]" if site.enabled else "[-]"
            enabled = "yes" if site.enabled else "no"
            managed = "yes" if site.managed else "no"
            click.echo(f"{icon} {site.identifier:<36} {enabled:<10} {managed:<10}")
        click.echo()

    except (ValueError, FileNotFoundError, SimulationRootError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_ERROR)


@cli.command()
@click.argument("identifier")
@click.option("--verbose", "-v", is_flag=True, help="Show detailed information")
@click.pass_context
def check(ctx, identifier, verbose):
    """Check that a deployed site is serving."""
    try:
        settings, executor = _context(ctx)
        report = check_site(sanitize_identifier(identifier), executor, settings)
    except (ValueError, FileNotFoundError, SimulationRootError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_ERROR)

    click.echo()
    print_report(report, verbose)

    if report.passed:
        click.echo("✓ Site is healthy")
    else:
        click.echo(f"✗ Found {len(report.issues)} issue(s)")

    sys.exit(EXIT_OK if report.passed else EXIT_ERROR)


@cli.command("help")
@click.pass_context
def help_command(ctx):
    """Show this message."""
    click.echo(ctx.parent.get_help())


@cli.command()
def version():
    """Show the depsite version."""
    click.echo(f"depsite {__version__}")


# =============================================================================
# Certificates
# =============================================================================

@cli.group()
def certs():
    """Manage certbot certificates."""
    pass


def _certificates(ctx) -> CertificateController:
    settings, executor = _context(ctx)
    return CertificateController(executor, settings)


@certs.command("list")
@click.pass_context
def certs_list(ctx):
    """List certificates managed by certbot."""
    try:
        names = _certificates(ctx).list_certificates()
    except (ValueError, FileNotFoundError, SimulationRootError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_ERROR)

    if not names:
        click.echo("No certificates found")
        return
    for name in names:
        click.echo(f"  {name}")


@certs.command("info")
@click.argument("domain")
@click.pass_context
def certs_info(ctx, domain):
    """Show a certificate's expiry date."""
    try:
        info = _certificates(ctx).certificate_info(domain)
    except (ValueError, FileNotFoundError, SimulationRootError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_ERROR)

    if not info["exists"]:
        click.echo(f"No certificate found for {domain}", err=True)
        sys.exit(EXIT_ERROR)
    click.echo(f"Domain:  {domain}")
    click.echo(f"Expires: {info['expiry_date'] or 'unknown'}")


@certs.command("status")
@click.pass_context
def certs_status(ctx):
    """Show certificates due for renewal (dry run)."""
    try:
        status = _certificates(ctx).check_renewal_status()
    except (ValueError, FileNotFoundError, SimulationRootError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_ERROR)

    if not status["needs_renewal"]:
        click.echo("No certificates need renewal")
        return
    click.echo("Certificates due for renewal:")
    for name in status["certificates"]:
        click.echo(f"  {name}")


def _run_cert_operation(ctx, operation: str, domain=None, confirm: str = None):
    output = _output(ctx)
    if confirm and not click.confirm(confirm, default=False):
        output.info("Cancelled")
        return

    try:
        controller = _certificates(ctx)
        method = getattr(controller, operation)
        result = method(domain) if domain else method()
    except (ValueError, FileNotFoundError, SimulationRootError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_ERROR)

    if not result.success:
        output.error(result.error)
        sys.exit(EXIT_ERROR)
    output.success(result.message)


@certs.command("renew")
@click.argument("domain", required=False)
@click.pass_context
def certs_renew(ctx, domain):
    """Renew one certificate, or all that are due."""
    _run_cert_operation(ctx, "renew", domain)


@certs.command("revoke")
@click.argument("domain")
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Don't ask for confirmation")
@click.pass_context
def certs_revoke(ctx, domain, assume_yes):
    """Revoke a certificate."""
    confirm = None if assume_yes else f"Revoke the certificate for {domain}?"
    _run_cert_operation(ctx, "revoke", domain, confirm)


@certs.command("delete")
@click.argument("domain")
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Don't ask for confirmation")
@click.pass_context
def certs_delete(ctx, domain, assume_yes):
    """Delete a certificate from this host."""
    confirm = None if assume_yes else f"Delete the certificate for {domain}?"
    _run_cert_operation(ctx, "delete", domain, confirm)


# =============================================================================
# Entry point
# =============================================================================

def _interrupted(output: Output, code: int, message: str):
    if _active_pipeline is not None:
        _active_pipeline.request_stop()
    output.clear_progress()
    output.warning(message)
    sys.exit(code)


def main():
    """Console entry point; maps interrupts to 130 and SIGTERM to 143."""
    output = Output()
    signal.signal(
        signal.SIGTERM,
        lambda signum, frame: _interrupted(output, EXIT_TERMINATED, "Terminated"),
    )

    try:
        code = cli.main(standalone_mode=False, obj={"output": output})
    except (click.Abort, KeyboardInterrupt, PipelineInterrupted):
        _interrupted(output, EXIT_INTERRUPTED, "Interrupted")
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)

    sys.exit(code or EXIT_OK)


if __name__ == "__main__":
    main()
