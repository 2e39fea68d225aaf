# reconciler/core/exceptions.py
from typing import Optional, Sequence


class ReconcilerError(Exception):
    """Base class for fatal reconciliation errors."""


class PreconditionError(ReconcilerError):
    """A required static input is missing; raised before any probing."""


class CommandError(ReconcilerError):

    def __init__(self, argv: Sequence[str], returncode: Optional[int], stderr: str = "", timed_out: bool = False):
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        self.timed_out = timed_out
        if timed_out:
            message = f"Command timed out: {' '.join(self.argv)}"
        else:
            message = f"Command failed with exit code {returncode}: {' '.join(self.argv)}"
        if stderr:
            message += f" ({stderr.strip()})"
        super().__init__(message)


class VaultError(ReconcilerError):

    def __init__(self, method: str, path: str, status_code: Optional[int], detail: str = ""):
        self.method = method
        self.path = path
        self.status_code = status_code
        super().__init__(f"Vault {method} {path} failed (status={status_code}): {detail}".rstrip(": "))


class RemediationError(ReconcilerError):

    def __init__(self, step: str, message: str, outcomes: Optional[list] = None):
        self.step = step
        self.outcomes = outcomes or []  # step outcomes recorded up to and including the failure
        super().__init__(f"Step '{step}' failed: {message}")
