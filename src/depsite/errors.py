"""
Error types for depsite.

A single exception class carries an explicit kind so callers can dispatch on
it instead of on the exception's type:

- VALIDATION: rejected input or pre-flight state. Nothing was committed.
- OPERATION: a committed action failed. Triggers rollback in the commit stage.
- EXECUTION: the privileged command shim failed. Carries the failing command.
"""

from enum import Enum
from typing import List, Optional


class ErrorKind(Enum):
    """Kind of a depsite failure."""
    VALIDATION = "validation"
    OPERATION = "operation"
    EXECUTION = "execution"


class DepsiteError(Exception):
    """Failure raised by depsite components."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        field: Optional[str] = None,
        command: Optional[List[str]] = None,
        stderr: Optional[str] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.field = field
        self.command = command
        self.stderr = stderr

    @classmethod
    def validation(cls, message: str, field: Optional[str] = None) -> "DepsiteError":
        return cls(ErrorKind.VALIDATION, message, field=field)

    @classmethod
    def operation(cls, message: str) -> "DepsiteError":
        return cls(ErrorKind.OPERATION, message)


class InvalidPort(DepsiteError):
    """Port outside [1, 65535], reserved, or not a number."""

    def __init__(self, message: str):
        super().__init__(ErrorKind.VALIDATION, message, field="port")


class ExecutionFailed(DepsiteError):
    """A privileged command exited non-zero, timed out, or could not start."""

    def __init__(self, command: List[str], stderr: str = "", returncode: Optional[int] = None):
        self.returncode = returncode
        detail = stderr.strip() if stderr else ""
        message = f"Command failed: {' '.join(command)}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(ErrorKind.EXECUTION, message, command=list(command), stderr=stderr)


class PipelineInterrupted(Exception):
    """Raised when a stop was requested before the next pipeline transition."""
    pass


def describe_error(error: DepsiteError) -> List[str]:
    """
    Build the operator-facing lines for an error.

    Returns:
        List of lines; the first one is the headline.
    """
    if error.kind is ErrorKind.VALIDATION:
        lines = [f"Validation Error: {error.message}"]
        if error.field:
            lines.append(f"Field: {error.field}")
        return lines
    if error.kind is ErrorKind.OPERATION:
        return [f"Deployment Error: {error.message}"]
    if error.kind is ErrorKind.EXECUTION:
        lines = [f"System Error: {error.message}"]
        if error.command:
            lines.append(f"Command: {' '.join(error.command)}")
        return lines
    raise ValueError(f"Unhandled error kind: {error.kind}")
