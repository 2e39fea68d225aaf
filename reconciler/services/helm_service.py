# reconciler/services/helm_service.py
import logging
from typing import Optional

from reconciler.core.config import Settings
from reconciler.services.commands import CommandRunner

logger = logging.getLogger(__name__)


class HelmService:
    def __init__(self, settings: Settings, runner: CommandRunner):
        self.settings = settings
        self.runner = runner

    def add_repo(self, name: str, url: str):
        # `helm repo add` is a no-op for an identical existing entry
        self.runner.run(["helm", "repo", "add", name, url, "--force-update"])

    def update_repos(self):
        self.runner.run(["helm", "repo", "update"])

    def release_installed(self, release: str, namespace: str) -> bool:
        names = self.runner.output(["helm", "list", "--namespace", namespace, "--short"])
        return release in names.splitlines()

    def install(self, release: str, chart: str, namespace: str, values_file: Optional[str] = None):
        argv = ["helm", "install", release, chart, "--namespace", namespace]
        if values_file:
            argv += ["--values", values_file]
        logger.info(f"Installing Helm release '{release}' ({chart}) into '{namespace}'...")
        self.runner.run(argv)
