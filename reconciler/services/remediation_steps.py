# reconciler/services/remediation_steps.py
"""Corrective actions for each deficiency, and the step graph that gates them.

Every action is idempotent: it checks or tolerates existing state (namespace
create-or-no-op, secret overwrite, install-if-absent) so a partial prior run can be
resumed by simply running again. Values that the external systems may rotate
(minikube IP, service account token, CA bundle, remote URL) are fetched right
before use and never cached across steps.
"""
import logging
from pathlib import Path
from typing import List

from reconciler.core.config import Settings
from reconciler.core.exceptions import ReconcilerError
from reconciler.core.polling import wait_until
from reconciler.models.probe import DeficiencyTag as T
from reconciler.models.remediation import RemediationStep
from reconciler.services import artifacts
from reconciler.services.collaborators import Collaborators

logger = logging.getLogger(__name__)


class RemediationActions:
    def __init__(self, settings: Settings, collaborators: Collaborators):
        self.settings = settings
        self.c = collaborators
        self.warnings: List[str] = []

    def repository(self) -> str:
        git = self.c.git
        if not git.is_repository():
            git.init()
        url = git.remote_url()
        if not url:
            url = self.settings.REPO_URL
            if not url:
                raise ReconcilerError("Repository URL is required for the GitOps workflow (set REPO_URL)")
            git.set_remote(url)
        if artifacts.ensure_gitignore(self.settings):
            logger.info(".gitignore created")
        return f"Repository remote: {url}"

    def container_runtime(self) -> str:
        self.c.docker.start_runtime()
        return "Docker is running"

    def secrets_store(self) -> str:
        self.c.docker.start_vault_container()
        vault = self.c.vault
        if not wait_until(vault.is_healthy, self.settings.VAULT_STARTUP_WAIT_SECONDS,
                          self.settings.POLL_INTERVAL_SECONDS):
            raise ReconcilerError(
                f"Vault is not accessible at {self.settings.VAULT_ADDR}. "
                "Please verify the service is running properly.")
        if not vault.token_valid():
            raise ReconcilerError("Vault rejected the configured token")
        return f"Vault is running at {self.settings.VAULT_ADDR}"

    def tools(self) -> str:
        installed = [tool for tool in self.settings.REQUIRED_TOOLS if self.c.packages.install(tool)]
        return f"Installed: {', '.join(installed)}" if installed else "All tools already installed"

    def cluster(self) -> str:
        self.c.minikube.start()
        self.c.kubernetes.reload()
        self.c.kubernetes.cluster_reachable()
        return "Kubernetes cluster is ready"

    def auth_method(self) -> str:
        method = self.settings.VAULT_AUTH_METHOD
        if self.c.vault.enable_auth_method(method):
            return f"{method} auth method enabled"
        return f"{method} auth method already enabled"

    def sample_secrets(self) -> str:
        vault = self.c.vault
        vault.enable_kv_engine(self.settings.VAULT_KV_MOUNT)
        for path, data in self.settings.SAMPLE_SECRETS.items():
            vault.write_secret(path, data)
        return f"Wrote {len(self.settings.SAMPLE_SECRETS)} sample secrets"

    def controller(self) -> str:
        s = self.settings
        k8s = self.c.kubernetes
        helm = self.c.helm
        namespace = s.ARGOCD_NAMESPACE

        k8s.ensure_namespace(namespace)
        helm.add_repo(s.HELM_REPO_NAME, s.HELM_REPO_URL)
        helm.update_repos()
        values_path = artifacts.write_controller_values(s)
        plugin_created = k8s.apply_configmap(s.PLUGIN_CONFIGMAP, namespace, artifacts.plugin_configmap_data(s))

        if not helm.release_installed(s.ARGOCD_RELEASE, namespace):
            helm.install(s.ARGOCD_RELEASE, s.ARGOCD_CHART, namespace, values_file=str(Path(values_path).resolve()))
            message = "Argo CD installed with the Vault plugin"
        elif plugin_created:
            # The sidecar only reads plugin.yaml at startup
            k8s.restart_deployment(s.ARGOCD_REPO_SERVER_DEPLOYMENT, namespace)
            message = "Plugin configuration recreated; repo server restarted"
        else:
            message = "Argo CD already installed"

        logger.info("Waiting for Argo CD to be ready...")
        k8s.wait_for_deployment_available(s.ARGOCD_SERVER_DEPLOYMENT, namespace, s.CONTROLLER_READY_TIMEOUT_SECONDS)
        return message

    def auth_binding(self) -> str:
        s = self.settings
        k8s = self.c.kubernetes
        vault = self.c.vault
        namespace = s.ARGOCD_NAMESPACE
        method = s.VAULT_AUTH_METHOD

        vault.write_policy(s.VAULT_POLICY_NAME, artifacts.vault_policy(s))

        logger.info("Waiting for Argo CD service account initialization...")
        k8s.wait_for_pods_ready(
            namespace, f"app.kubernetes.io/name={s.ARGOCD_SERVER_DEPLOYMENT}", s.SERVICE_ACCOUNT_READY_TIMEOUT_SECONDS)

        cluster_ip = self.c.minikube.ip()
        logger.info(f"Configuring Kubernetes authentication with cluster IP: {cluster_ip}")
        vault.write(f"auth/{method}/config", {
            "token_reviewer_jwt": k8s.service_account_token(s.ARGOCD_SERVICE_ACCOUNT, namespace),
            "kubernetes_host": f"https://{cluster_ip}:{s.KUBE_API_PORT}",
            "kubernetes_ca_cert": k8s.cluster_ca_certificate(),
        })
        vault.write(f"auth/{method}/role/{s.VAULT_ROLE_NAME}", {
            "bound_service_account_names": s.ARGOCD_SERVICE_ACCOUNT,
            "bound_service_account_namespaces": namespace,
            "policies": s.VAULT_POLICY_NAME,
            "ttl": s.VAULT_ROLE_TTL,
        })
        return f"Role '{s.VAULT_ROLE_NAME}' bound to {namespace}/{s.ARGOCD_SERVICE_ACCOUNT}"

    def app_manifests(self) -> str:
        path = artifacts.write_sample_workload(self.settings)
        return f"Demo manifests written to {path}"

    def publish_artifacts(self) -> str:
        git = self.c.git
        url = git.remote_url()
        if not url:
            raise ReconcilerError("No remote origin configured; cannot publish artifacts")
        artifacts.write_application_descriptor(self.settings, url)
        artifacts.update_template_repo_url(self.settings, url)

        git.add_all()
        if git.has_staged_changes():
            git.commit(self.settings.COMMIT_MESSAGE)
        else:
            logger.warning("No changes to commit")
        branch = git.push(self.settings.GIT_PUSH_BRANCHES)
        if branch is None:
            # The commit stays local; reported as a warning only
            warning = ("Push failed. Create the repository on the remote first, set up authentication, "
                       f"then run: git push -u origin {self.settings.GIT_PUSH_BRANCHES[0]}")
            logger.warning(warning)
            self.warnings.append(warning)
            return "Artifacts committed locally; push failed"
        return f"Artifacts pushed to {url} ({branch})"


def build_steps(actions: RemediationActions) -> List[RemediationStep]:
    """The remediation graph, declared in its default execution order."""
    return [
        RemediationStep("repository", "initialize git repository and remote",
                        (T.REPOSITORY_REMOTE_MISSING,), actions.repository),
        RemediationStep("container-runtime", "start the container runtime",
                        (T.RUNTIME_UNAVAILABLE,), actions.container_runtime),
        RemediationStep("secrets-store", "start Vault",
                        (T.SECRETS_STORE_UNREACHABLE,), actions.secrets_store,
                        requires=("container-runtime",)),
        RemediationStep("tools", "install required CLI tools",
                        (T.TOOLS_MISSING,), actions.tools),
        RemediationStep("cluster", "start the minikube cluster",
                        (T.CLUSTER_UNAVAILABLE,), actions.cluster,
                        requires=("container-runtime", "tools")),
        # Also triggered when Vault was unreachable: a freshly started dev-mode Vault has no auth methods
        RemediationStep("auth-method", "enable the Kubernetes auth method in Vault",
                        (T.SECRETS_STORE_UNREACHABLE, T.AUTH_METHOD_DISABLED), actions.auth_method,
                        requires=("secrets-store",)),
        RemediationStep("sample-secrets", "write the sample secrets",
                        (T.SAMPLE_SECRETS_MISSING,), actions.sample_secrets,
                        requires=("secrets-store",)),
        RemediationStep("controller", "install Argo CD and the Vault plugin configuration",
                        (T.CONTROLLER_NOT_INSTALLED, T.CONTROLLER_NOT_READY, T.PLUGIN_CONFIG_MISSING),
                        actions.controller,
                        requires=("cluster", "tools")),
        # The controller's service account must exist before Vault can trust it
        RemediationStep("auth-binding", "write the Vault policy and bind the Argo CD service account",
                        (T.AUTH_METHOD_DISABLED, T.CONTROLLER_NOT_INSTALLED), actions.auth_binding,
                        requires=("auth-method", "controller")),
        RemediationStep("app-manifests", "generate the demo application manifests",
                        (T.APP_MANIFESTS_MISSING,), actions.app_manifests),
        RemediationStep("publish-artifacts", "write the Application descriptor, commit and push",
                        (T.REPOSITORY_REMOTE_MISSING, T.APP_MANIFESTS_MISSING), actions.publish_artifacts,
                        requires=("repository", "app-manifests")),
    ]
