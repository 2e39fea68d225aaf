# reconciler/services/git_service.py
import logging
from pathlib import Path
from typing import Optional, Sequence

from reconciler.core.exceptions import CommandError
from reconciler.services.commands import CommandRunner

logger = logging.getLogger(__name__)


class GitService:
    def __init__(self, workdir: str, runner: CommandRunner):
        self.workdir = Path(workdir)
        self.runner = runner

    def _git(self, *args: str, check: bool = True):
        return self.runner.run(["git", "-C", str(self.workdir), *args], check=check)

    def is_repository(self) -> bool:
        return (self.workdir / ".git").is_dir()

    def remote_url(self, remote: str = "origin") -> Optional[str]:
        """Configured URL of ``remote``, or None when it is not set."""
        if not self.is_repository():
            return None
        try:
            result = self._git("remote", "get-url", remote, check=False)
        except CommandError as e:
            logger.debug(f"git unavailable: {e}")
            return None
        url = result.stdout.strip()
        return url if result.returncode == 0 and url else None

    def init(self):
        self._git("init")
        logger.info(f"Git repository initialized in {self.workdir}.")

    def set_remote(self, url: str, remote: str = "origin"):
        if self.remote_url(remote) is None:
            self._git("remote", "add", remote, url)
        else:
            self._git("remote", "set-url", remote, url)
        logger.info(f"Remote '{remote}' set to {url}.")

    def add_all(self):
        self._git("add", ".")

    def has_staged_changes(self) -> bool:
        # `diff --quiet` exits 1 when there are differences
        return self._git("diff", "--staged", "--quiet", check=False).returncode != 0

    def commit(self, message: str):
        self._git("commit", "-m", message)

    def push(self, branches: Sequence[str], remote: str = "origin") -> Optional[str]:
        """Pushes the first branch that succeeds. Returns its name, or None if every push failed."""
        for branch in branches:
            result = self._git("push", "-u", remote, branch, check=False)
            if result.returncode == 0:
                logger.info(f"Pushed '{branch}' to '{remote}'.")
                return branch
            logger.debug(f"Push of '{branch}' failed: {result.stderr.strip()}")
        return None
