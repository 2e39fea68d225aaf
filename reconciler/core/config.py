# reconciler/core/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, SecretStr, field_validator
from typing import Dict, List, Optional
import logging

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_SECRETS: Dict[str, Dict[str, str]] = {
    "myapp/database": {
        "username": "myuser",
        "password": "supersecret123",
        "host": "db.example.com",
        "port": "5432",
    },
    "myapp/api": {
        "key": "api-key-12345",
        "endpoint": "https://api.example.com",
    },
}


class Settings(BaseSettings):
    APP_NAME: str = "Vault + Argo CD Demo Reconciler"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # Demo repository (generated artifacts are written relative to this directory)
    WORKDIR: str = Field(".", description="Root of the demo git repository")
    REPO_URL: Optional[str] = Field(None, description="Remote used when the repository has no origin")
    GIT_PUSH_BRANCHES: List[str] = ["main", "master"]
    COMMIT_MESSAGE: str = "Initial commit: Vault + ArgoCD integration demo"

    # Secrets store
    VAULT_ADDR: str = "http://127.0.0.1:8200"
    VAULT_TOKEN: SecretStr = SecretStr("root")
    VAULT_CLUSTER_ADDR: str = Field(
        "http://host.minikube.internal:8200", description="Vault address as seen from cluster nodes")
    VAULT_CONTAINER_NAME: str = "vault-enterprise"
    VAULT_IMAGE: str = "hashicorp/vault-enterprise:latest"
    VAULT_LICENSE_PATH: str = "vault.hclic"
    VAULT_STARTUP_WAIT_SECONDS: float = 10
    VAULT_KV_MOUNT: str = "secret"
    VAULT_AUTH_METHOD: str = "kubernetes"
    VAULT_POLICY_NAME: str = "argocd-policy"
    VAULT_ROLE_NAME: str = "argocd"
    VAULT_ROLE_TTL: str = "1h"
    SAMPLE_SECRETS: Dict[str, Dict[str, str]] = DEFAULT_SAMPLE_SECRETS

    # Local tooling
    REQUIRED_TOOLS: List[str] = ["kubectl", "helm", "minikube", "vault"]
    TOOL_PACKAGES: Dict[str, str] = {"vault": "hashicorp/tap/vault"}
    PACKAGE_MANAGER: str = "brew"
    RUNTIME_START_COMMAND: List[str] = ["docker", "desktop", "start"]
    RUNTIME_START_TIMEOUT_SECONDS: float = 120

    # Cluster
    MINIKUBE_DRIVER: str = "docker"
    MINIKUBE_CPUS: int = 4
    MINIKUBE_MEMORY_MB: int = 6144
    KUBE_API_PORT: int = 8443
    KUBE_CONFIG_PATH: Optional[str] = None

    # GitOps controller
    ARGOCD_NAMESPACE: str = "argocd"
    ARGOCD_RELEASE: str = "argocd"
    ARGOCD_CHART: str = "argo/argo-cd"
    HELM_REPO_NAME: str = "argo"
    HELM_REPO_URL: str = "https://argoproj.github.io/argo-helm"
    ARGOCD_SERVER_DEPLOYMENT: str = "argocd-server"
    ARGOCD_REPO_SERVER_DEPLOYMENT: str = "argocd-repo-server"
    ARGOCD_SERVICE_ACCOUNT: str = "argocd-server"
    ARGOCD_ADMIN_SECRET: str = "argocd-initial-admin-secret"
    ARGOCD_SIDECAR_IMAGE: str = "quay.io/argoproj/argocd:v2.8.4"
    ARGOCD_NODE_PORT_HTTP: int = 30080
    ARGOCD_NODE_PORT_HTTPS: int = 30443
    PLUGIN_NAME: str = "argocd-vault-plugin"
    PLUGIN_CONFIGMAP: str = "argocd-vault-plugin-config"
    PLUGIN_VERSION: str = "1.17.0"
    CONTROLLER_READY_TIMEOUT_SECONDS: float = 600
    SERVICE_ACCOUNT_READY_TIMEOUT_SECONDS: float = 60
    POLL_INTERVAL_SECONDS: float = 5
    SERVICE_ACCOUNT_TOKEN_SECONDS: int = 86400

    # Generated artifacts (relative to WORKDIR)
    VALUES_FILE: str = "argocd-values.yaml"
    APPLICATION_FILE: str = "vault-demo-app.yaml"
    APPLICATION_TEMPLATE_FILE: str = "argocd-application-template.yaml"
    APPLICATION_NAME: str = "vault-demo"
    MANIFEST_DIR: str = "demo-app/manifests"
    MANIFEST_FILE: str = "deployment.yaml"
    APP_NAMESPACE: str = "default"

    # Demo walkthrough
    DEMO_WORKLOAD_NAME: str = "vault-demo-app"
    DEMO_SECRET_PREFIX: str = "myapp"
    DEMO_SECRET_PATH: str = Field("myapp/database", description="Secret whose username `rotate` rewrites")
    DEFAULT_ROTATED_USERNAME: str = "demo-user"

    PROBE_TIMEOUT_SECONDS: float = 15

    model_config = SettingsConfigDict(
        env_file='.env',  # Load environment variables from .env file
        env_file_encoding='utf-8',
        extra='ignore',
    )

    @field_validator(
        'VAULT_STARTUP_WAIT_SECONDS', 'RUNTIME_START_TIMEOUT_SECONDS', 'CONTROLLER_READY_TIMEOUT_SECONDS',
        'SERVICE_ACCOUNT_READY_TIMEOUT_SECONDS', 'POLL_INTERVAL_SECONDS', 'PROBE_TIMEOUT_SECONDS')
    @classmethod
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError("timeouts and intervals must be positive")
        return v

    @field_validator('REQUIRED_TOOLS')
    @classmethod
    def validate_tools(cls, v):
        if not v:
            raise ValueError("REQUIRED_TOOLS must name at least one tool")
        return v

    @property
    def manifest_path(self) -> str:
        return f"{self.MANIFEST_DIR}/{self.MANIFEST_FILE}"

    def kv_data_path(self, secret_path: str) -> str:
        """Logical KV v2 read path, as used by placeholders and policies."""
        return f"{self.VAULT_KV_MOUNT}/data/{secret_path}"
