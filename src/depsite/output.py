"""Console reporter for depsite, passed to whatever needs to talk to the operator."""

import click


class Output:
    """
    Colored operator output.

    Errors and warnings go to stderr. A progress line is left open until
    progress_complete() or clear_progress() closes it.
    """

    def __init__(self, color: bool = True):
        self.color = color
        self._progress_open = False

    def _echo(self, message: str = "", fg: str = None, bold: bool = False,
              err: bool = False, nl: bool = True) -> None:
        if self.color and (fg or bold):
            click.secho(message, fg=fg, bold=bold, err=err, nl=nl)
        else:
            click.echo(message, err=err, nl=nl)

    def _close_progress(self) -> None:
        if self._progress_open:
            click.echo()
            self._progress_open = False

    def header(self, title: str) -> None:
        self._close_progress()
        self._echo("=" * 60)
        self._echo(f"  {title}", fg="cyan", bold=True)
        self._echo("=" * 60)
        self._echo()

    def section(self, title: str) -> None:
        self._close_progress()
        self._echo()
        self._echo(title, fg="magenta", bold=True)
        self._echo("-" * 60)

    def info(self, message: str) -> None:
        self._close_progress()
        self._echo(f"[INFO] {message}", fg="blue")

    def success(self, message: str) -> None:
        self._close_progress()
        self._echo(f"✓ {message}", fg="green")

    def warning(self, message: str) -> None:
        self._close_progress()
        self._echo(f"⚠ {message}", fg="yellow", err=True)

    def error(self, message: str) -> None:
        self._close_progress()
        self._echo(f"✗ {message}", fg="red", err=True)

    def detail(self, message: str) -> None:
        self._close_progress()
        self._echo(f"     {message}")

    def progress(self, message: str) -> None:
        """Start a progress line without a trailing newline."""
        self._close_progress()
        self._echo(f"{message}...", fg="blue", nl=False)
        self._progress_open = True

    def progress_complete(self, message: str = "Done") -> None:
        """Finish the open progress line."""
        if self._progress_open:
            click.echo(" ", nl=False)
            self._progress_open = False
        self._echo(f"✓ {message}", fg="green")

    def clear_progress(self) -> None:
        """Terminate an open progress line, e.g. before exiting on a signal."""
        self._close_progress()
