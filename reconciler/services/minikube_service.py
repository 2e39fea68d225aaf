# reconciler/services/minikube_service.py
import logging

from reconciler.core.config import Settings
from reconciler.core.exceptions import CommandError
from reconciler.services.commands import CommandRunner

logger = logging.getLogger(__name__)


class MinikubeService:
    def __init__(self, settings: Settings, runner: CommandRunner):
        self.settings = settings
        self.runner = runner

    def is_running(self) -> bool:
        try:
            # `minikube status` exits non-zero when any component is stopped
            result = self.runner.run(
                ["minikube", "status"], check=False, timeout=self.settings.PROBE_TIMEOUT_SECONDS)
        except CommandError as e:
            logger.debug(f"minikube status unavailable: {e}")
            return False
        return result.returncode == 0 and "Running" in result.stdout

    def start(self):
        if self.is_running():
            logger.info("Minikube cluster is already running.")
            return
        logger.info("Starting minikube cluster...")
        self.runner.run([
            "minikube", "start",
            f"--driver={self.settings.MINIKUBE_DRIVER}",
            f"--cpus={self.settings.MINIKUBE_CPUS}",
            f"--memory={self.settings.MINIKUBE_MEMORY_MB}",
        ])

    def ip(self) -> str:
        return self.runner.output(["minikube", "ip"], timeout=self.settings.PROBE_TIMEOUT_SECONDS)

    def service_url(self, node_port: int) -> str:
        """NodePort URL on the cluster node. With the docker driver on macOS it needs `minikube service --url`."""
        return f"http://{self.ip()}:{node_port}"

    def can_reach(self, url: str) -> bool:
        """True when a cluster node can fetch ``url``."""
        return self.runner.succeeds(
            ["minikube", "ssh", "--", "curl", "-s", "-o", "/dev/null", url],
            timeout=self.settings.PROBE_TIMEOUT_SECONDS)
