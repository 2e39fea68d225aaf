# reconciler/services/prober.py
import logging
from typing import Callable, List, NamedTuple, Optional, Tuple

from reconciler.core.config import Settings
from reconciler.models.probe import DeficiencyTag, ProbeOutcome, ProbeResult
from reconciler.services import artifacts
from reconciler.services.collaborators import Collaborators

logger = logging.getLogger(__name__)


class CheckOutcome(NamedTuple):
    satisfied: bool
    detail: str
    # Overrides the check's default tag for checks with more than one failure mode
    tag: Optional[DeficiencyTag] = None


CheckFn = Callable[[], CheckOutcome]


class StateProber:
    """Read-only readiness checks against every external dependency.

    All checks run unconditionally; any exception inside a check is recorded as an
    ERROR outcome carrying the check's tag, so a broken probe never counts as satisfied.
    """

    def __init__(self, settings: Settings, collaborators: Collaborators):
        self.settings = settings
        self.c = collaborators

    def checks(self) -> List[Tuple[str, DeficiencyTag, CheckFn]]:
        return [
            ("container-runtime", DeficiencyTag.RUNTIME_UNAVAILABLE, self.check_runtime),
            ("cli-tools", DeficiencyTag.TOOLS_MISSING, self.check_tools),
            ("git-repository", DeficiencyTag.REPOSITORY_REMOTE_MISSING, self.check_repository),
            ("secrets-store", DeficiencyTag.SECRETS_STORE_UNREACHABLE, self.check_secrets_store),
            ("sample-secrets", DeficiencyTag.SAMPLE_SECRETS_MISSING, self.check_sample_secrets),
            ("auth-method", DeficiencyTag.AUTH_METHOD_DISABLED, self.check_auth_method),
            ("cluster", DeficiencyTag.CLUSTER_UNAVAILABLE, self.check_cluster),
            ("gitops-controller", DeficiencyTag.CONTROLLER_NOT_INSTALLED, self.check_controller),
            ("plugin-config", DeficiencyTag.PLUGIN_CONFIG_MISSING, self.check_plugin_config),
            ("network-path", DeficiencyTag.NETWORK_UNREACHABLE, self.check_network),
            ("app-manifests", DeficiencyTag.APP_MANIFESTS_MISSING, self.check_manifests),
        ]

    def probe(self) -> List[ProbeResult]:
        results = []
        for name, tag, check in self.checks():
            results.append(self._run_check(name, tag, check))
        return results

    def _run_check(self, name: str, tag: DeficiencyTag, check: CheckFn) -> ProbeResult:
        try:
            outcome = check()
        except Exception as e:
            logger.warning(f"Probe '{name}' errored, treating as deficient: {e}")
            return ProbeResult(check=name, tag=tag, outcome=ProbeOutcome.ERROR, detail=f"{type(e).__name__}: {e}")
        result = ProbeResult(
            check=name,
            tag=outcome.tag or tag,
            outcome=ProbeOutcome.SATISFIED if outcome.satisfied else ProbeOutcome.DEFICIENT,
            detail=outcome.detail,
        )
        logger.debug(f"Probe '{name}': {result.outcome.value} ({outcome.detail})")
        return result

    # --- Individual checks ---

    def check_runtime(self) -> CheckOutcome:
        if self.c.docker.is_running():
            return CheckOutcome(True, "Docker is running")
        return CheckOutcome(False, "Docker is not running")

    def check_tools(self) -> CheckOutcome:
        missing = self.c.packages.missing(self.settings.REQUIRED_TOOLS)
        if missing:
            return CheckOutcome(False, f"Missing tools: {', '.join(missing)}")
        return CheckOutcome(True, "All required tools are installed")

    def check_repository(self) -> CheckOutcome:
        if not self.c.git.is_repository():
            return CheckOutcome(False, "Git repository not initialized")
        url = self.c.git.remote_url()
        if not url:
            return CheckOutcome(False, "Git repository exists but no remote origin set")
        return CheckOutcome(True, f"Git remote origin: {url}")

    def check_secrets_store(self) -> CheckOutcome:
        if not self.c.vault.is_healthy():
            return CheckOutcome(False, f"Vault is not healthy at {self.settings.VAULT_ADDR}")
        if not self.c.vault.token_valid():
            return CheckOutcome(False, "Vault token was rejected")
        return CheckOutcome(True, f"Vault is accessible at {self.settings.VAULT_ADDR}")

    def check_sample_secrets(self) -> CheckOutcome:
        missing = [path for path in self.settings.SAMPLE_SECRETS if self.c.vault.read_secret(path) is None]
        if missing:
            return CheckOutcome(False, f"Secrets not found: {', '.join(missing)}")
        return CheckOutcome(True, "Sample secrets exist in Vault")

    def check_auth_method(self) -> CheckOutcome:
        method = self.settings.VAULT_AUTH_METHOD
        if self.c.vault.auth_method_enabled(method):
            return CheckOutcome(True, f"{method} auth method enabled")
        return CheckOutcome(False, f"{method} auth method not enabled")

    def check_cluster(self) -> CheckOutcome:
        if not self.c.minikube.is_running():
            return CheckOutcome(False, "Minikube is not running")
        self.c.kubernetes.reload()
        if not self.c.kubernetes.cluster_reachable():
            return CheckOutcome(False, "Kubernetes API is not reachable")
        return CheckOutcome(True, "Kubernetes cluster is accessible")

    def check_controller(self) -> CheckOutcome:
        namespace = self.settings.ARGOCD_NAMESPACE
        k8s = self.c.kubernetes
        if not k8s.namespace_exists(namespace):
            return CheckOutcome(False, f"Namespace '{namespace}' not found", DeficiencyTag.CONTROLLER_NOT_INSTALLED)
        if not k8s.has_running_pods(namespace):
            return CheckOutcome(False, "Argo CD pods are not running", DeficiencyTag.CONTROLLER_NOT_READY)
        if not k8s.deployment_ready(self.settings.ARGOCD_SERVER_DEPLOYMENT, namespace):
            return CheckOutcome(False, "Argo CD server is not fully ready", DeficiencyTag.CONTROLLER_NOT_READY)
        return CheckOutcome(True, "Argo CD is installed and ready")

    def check_plugin_config(self) -> CheckOutcome:
        if self.c.kubernetes.configmap_exists(self.settings.PLUGIN_CONFIGMAP, self.settings.ARGOCD_NAMESPACE):
            return CheckOutcome(True, "Vault plugin configuration exists")
        return CheckOutcome(False, "Vault plugin configuration not found")

    def check_network(self) -> CheckOutcome:
        url = f"{self.settings.VAULT_CLUSTER_ADDR.rstrip('/')}/v1/sys/health"
        if self.c.minikube.can_reach(url):
            return CheckOutcome(True, "Cluster nodes can reach Vault")
        return CheckOutcome(False, f"Cluster nodes cannot reach {url}")

    def check_manifests(self) -> CheckOutcome:
        if artifacts.manifests_have_placeholders(self.settings):
            return CheckOutcome(True, "Demo manifests exist with Vault placeholders")
        return CheckOutcome(False, f"{self.settings.manifest_path} missing or without Vault placeholders")
