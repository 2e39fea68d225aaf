# reconciler/services/commands.py
import logging
import shutil
import subprocess
from typing import Optional, Sequence

from reconciler.core.exceptions import CommandError

logger = logging.getLogger(__name__)


class CommandRunner:
    """Runs external CLI tools as blocking subprocesses."""

    def __init__(self, cwd: Optional[str] = None, default_timeout: Optional[float] = None):
        self.cwd = cwd
        self.default_timeout = default_timeout

    def run(
            self,
            argv: Sequence[str],
            check: bool = True,
            timeout: Optional[float] = None,
            ) -> subprocess.CompletedProcess:
        timeout = timeout if timeout is not None else self.default_timeout
        logger.debug(f"Running: {' '.join(argv)}")
        try:
            result = subprocess.run(
                list(argv),
                cwd=self.cwd,
                capture_output=True,
                text=True,
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise CommandError(argv, None, timed_out=True) from e
        except OSError as e:
            # Executable missing or not runnable
            raise CommandError(argv, None, stderr=str(e)) from e
        if check and result.returncode != 0:
            raise CommandError(argv, result.returncode, stderr=result.stderr)
        return result

    def succeeds(self, argv: Sequence[str], timeout: Optional[float] = None) -> bool:
        """True only when the command ran and exited with status 0."""
        try:
            return self.run(argv, check=False, timeout=timeout).returncode == 0
        except CommandError as e:
            logger.debug(f"Probe command unavailable: {e}")
            return False

    def output(self, argv: Sequence[str], timeout: Optional[float] = None) -> str:
        return self.run(argv, timeout=timeout).stdout.strip()

    def which(self, tool: str) -> bool:
        return shutil.which(tool) is not None
