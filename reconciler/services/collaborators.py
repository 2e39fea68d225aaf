# reconciler/services/collaborators.py
from dataclasses import dataclass
from pathlib import Path

from reconciler.core.config import Settings
from reconciler.services.commands import CommandRunner
from reconciler.services.docker_service import DockerService
from reconciler.services.git_service import GitService
from reconciler.services.helm_service import HelmService
from reconciler.services.kubernetes_service import KubernetesService
from reconciler.services.minikube_service import MinikubeService
from reconciler.services.package_service import PackageService
from reconciler.services.vault_service import VaultService


@dataclass
class Collaborators:
    """The external systems a reconciliation talks to."""
    runner: CommandRunner
    docker: DockerService
    vault: VaultService
    minikube: MinikubeService
    kubernetes: KubernetesService
    helm: HelmService
    git: GitService
    packages: PackageService


def build_collaborators(settings: Settings) -> Collaborators:
    workdir = str(Path(settings.WORKDIR).resolve())
    runner = CommandRunner(cwd=workdir)
    return Collaborators(
        runner=runner,
        docker=DockerService(settings, runner),
        vault=VaultService(settings),
        minikube=MinikubeService(settings, runner),
        kubernetes=KubernetesService(settings),
        helm=HelmService(settings, runner),
        git=GitService(workdir, runner),
        packages=PackageService(settings, runner),
    )
