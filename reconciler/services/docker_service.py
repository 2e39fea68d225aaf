# reconciler/services/docker_service.py
import logging
from pathlib import Path

from reconciler.core.config import Settings
from reconciler.core.exceptions import PreconditionError, ReconcilerError
from reconciler.core.polling import wait_until
from reconciler.services.commands import CommandRunner

logger = logging.getLogger(__name__)


class DockerService:
    def __init__(self, settings: Settings, runner: CommandRunner):
        self.settings = settings
        self.runner = runner

    def is_running(self) -> bool:
        return self.runner.succeeds(["docker", "info"], timeout=self.settings.PROBE_TIMEOUT_SECONDS)

    def _container_names(self, all_containers: bool) -> list:
        argv = ["docker", "ps", "--format", "{{.Names}}"]
        if all_containers:
            argv.insert(2, "--all")
        return self.runner.output(argv, timeout=self.settings.PROBE_TIMEOUT_SECONDS).splitlines()

    def container_running(self, name: str) -> bool:
        return name in self._container_names(all_containers=False)

    def container_exists(self, name: str) -> bool:
        return name in self._container_names(all_containers=True)

    def start_runtime(self):
        """Starts the container runtime and waits until `docker info` answers."""
        if self.is_running():
            logger.info("Docker is already running.")
            return
        logger.info(f"Starting container runtime: {' '.join(self.settings.RUNTIME_START_COMMAND)}")
        self.runner.run(self.settings.RUNTIME_START_COMMAND, timeout=self.settings.RUNTIME_START_TIMEOUT_SECONDS)
        if not wait_until(self.is_running, self.settings.RUNTIME_START_TIMEOUT_SECONDS,
                          self.settings.POLL_INTERVAL_SECONDS):
            raise ReconcilerError(
                f"Docker did not become available within {self.settings.RUNTIME_START_TIMEOUT_SECONDS:.0f}s")
        logger.info("Docker is running.")

    def start_vault_container(self):
        """Starts the Vault container, creating it in dev mode when it does not exist yet."""
        name = self.settings.VAULT_CONTAINER_NAME
        if self.container_running(name):
            logger.info(f"Vault container '{name}' already running.")
            return
        if self.container_exists(name):
            logger.info(f"Starting existing Vault container '{name}'...")
            self.runner.run(["docker", "start", name])
            return
        license_path = Path(self.settings.WORKDIR) / self.settings.VAULT_LICENSE_PATH
        try:
            license_text = license_path.read_text().strip()
        except OSError as e:
            raise PreconditionError(f"Cannot read Vault license file {license_path}: {e}") from e
        logger.info(f"Creating Vault container '{name}' from {self.settings.VAULT_IMAGE}...")
        self.runner.run([
            "docker", "run", "--detach",
            "--name", name,
            "--cap-add", "IPC_LOCK",
            "--publish", "8200:8200",
            "--env", f"VAULT_DEV_ROOT_TOKEN_ID={self.settings.VAULT_TOKEN.get_secret_value()}",
            "--env", "VAULT_DEV_LISTEN_ADDRESS=0.0.0.0:8200",
            "--env", f"VAULT_LICENSE={license_text}",
            self.settings.VAULT_IMAGE,
        ])
