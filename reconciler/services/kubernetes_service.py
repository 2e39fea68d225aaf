# reconciler/services/kubernetes_service.py
import base64
import datetime
import logging
import os
from typing import Any, Dict, List, Optional

from kubernetes import client, config
from kubernetes.client.exceptions import ApiException

from reconciler.core.config import Settings
from reconciler.core.exceptions import ReconcilerError
from reconciler.core.polling import wait_until

logger = logging.getLogger(__name__)

RESTART_ANNOTATION = "kubectl.kubernetes.io/restartedAt"


class KubernetesService:
    def __init__(self, settings: Settings):
        self.settings = settings
        self.core_api: Optional[client.CoreV1Api] = None
        self.apps_api: Optional[client.AppsV1Api] = None
        self.custom_api: Optional[client.CustomObjectsApi] = None
        self.version_api: Optional[client.VersionApi] = None

    def _load_config(self):
        """Loads Kubernetes configuration."""
        try:
            # Prioritize in-cluster config
            if os.getenv("KUBERNETES_SERVICE_HOST"):
                config.load_incluster_config()
                logger.info("Loaded in-cluster Kubernetes config.")
            # Then check explicit path from settings
            elif self.settings.KUBE_CONFIG_PATH and os.path.exists(self.settings.KUBE_CONFIG_PATH):
                config.load_kube_config(config_file=self.settings.KUBE_CONFIG_PATH)
                logger.info(f"Loaded Kubernetes config from: {self.settings.KUBE_CONFIG_PATH}")
            # Fallback to default kubeconfig location
            else:
                config.load_kube_config()
                logger.info("Loaded default Kubernetes config (kubeconfig).")

            self.core_api = client.CoreV1Api()
            self.apps_api = client.AppsV1Api()
            self.custom_api = client.CustomObjectsApi()
            self.version_api = client.VersionApi()
            logger.debug("Kubernetes API clients initialized.")

        except config.ConfigException as e:
            logger.warning(f"Could not load Kubernetes config (normal before the cluster is started): {e}")
            self.core_api = None
            self.apps_api = None
            self.custom_api = None
            self.version_api = None

    def reload(self):
        """Re-reads kubeconfig; minikube rewrites it when the cluster (re)starts."""
        self._load_config()

    def is_available(self) -> bool:
        """Check if K8s clients are initialized, loading config on first use."""
        if self.core_api is None:
            self._load_config()
        return self.core_api is not None

    def _require(self):
        if not self.is_available():
            raise ReconcilerError("Kubernetes client is not available (no usable kubeconfig).")

    # --- Read-only queries ---

    def cluster_reachable(self) -> bool:
        self._require()
        self.version_api.get_code(_request_timeout=self.settings.PROBE_TIMEOUT_SECONDS)
        return True

    def namespace_exists(self, name: str) -> bool:
        self._require()
        try:
            self.core_api.read_namespace(name)
            return True
        except ApiException as e:
            if e.status == 404:
                return False
            raise

    def has_running_pods(self, namespace: str) -> bool:
        self._require()
        pod_list = self.core_api.list_namespaced_pod(namespace, timeout_seconds=10)
        return any(pod.status and pod.status.phase == "Running" for pod in pod_list.items)

    def deployment_ready(self, name: str, namespace: str) -> bool:
        """Ready replicas equal the desired count (and are non-zero)."""
        self._require()
        try:
            deployment = self.apps_api.read_namespaced_deployment(name, namespace)
        except ApiException as e:
            if e.status == 404:
                return False
            raise
        ready = (deployment.status.ready_replicas if deployment.status else None) or 0
        desired = deployment.spec.replicas if deployment.spec.replicas is not None else 1
        logger.debug(f"Deployment {namespace}/{name}: {ready}/{desired} replicas ready")
        return ready > 0 and ready == desired

    def configmap_exists(self, name: str, namespace: str) -> bool:
        self._require()
        try:
            self.core_api.read_namespaced_config_map(name, namespace)
            return True
        except ApiException as e:
            if e.status == 404:
                return False
            raise

    def read_secret_field(self, name: str, namespace: str, key: str) -> Optional[str]:
        """Returns a decoded Secret value, or None if the Secret or key is absent."""
        self._require()
        try:
            secret = self.core_api.read_namespaced_secret(name, namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise
        encoded = (secret.data or {}).get(key)
        if encoded is None:
            return None
        return base64.b64decode(encoded).decode()

    def cluster_ca_certificate(self) -> str:
        """PEM bundle of the cluster CA from the loaded kubeconfig."""
        self._require()
        ca_path = client.Configuration.get_default_copy().ssl_ca_cert
        if not ca_path:
            raise ReconcilerError("Kubeconfig does not reference a cluster CA certificate.")
        with open(ca_path) as f:
            return f.read()

    # --- Mutating calls ---

    def ensure_namespace(self, name: str) -> bool:
        """Creates the namespace; an existing namespace is left as is."""
        self._require()
        body = client.V1Namespace(metadata=client.V1ObjectMeta(name=name))
        try:
            self.core_api.create_namespace(body)
            logger.info(f"Namespace '{name}' created.")
            return True
        except ApiException as e:
            if e.status == 409:
                logger.info(f"Namespace '{name}' already exists.")
                return False
            raise

    def apply_configmap(self, name: str, namespace: str, data: Dict[str, str]) -> bool:
        """Create-or-replace. Returns True when the ConfigMap did not exist before."""
        self._require()
        body = client.V1ConfigMap(metadata=client.V1ObjectMeta(name=name, namespace=namespace), data=data)
        try:
            self.core_api.create_namespaced_config_map(namespace, body)
            logger.info(f"ConfigMap '{namespace}/{name}' created.")
            return True
        except ApiException as e:
            if e.status != 409:
                raise
        self.core_api.replace_namespaced_config_map(name, namespace, body)
        logger.info(f"ConfigMap '{namespace}/{name}' replaced.")
        return False

    def restart_deployment(self, name: str, namespace: str):
        """Equivalent of `kubectl rollout restart`."""
        self._require()
        now = datetime.datetime.now(datetime.timezone.utc).isoformat()
        patch = {"spec": {"template": {"metadata": {"annotations": {RESTART_ANNOTATION: now}}}}}
        self.apps_api.patch_namespaced_deployment(name, namespace, patch)
        logger.info(f"Deployment '{namespace}/{name}' restart requested.")

    def apply_custom_object(self, group: str, version: str, plural: str, body: Dict[str, Any]) -> bool:
        """Create-or-replace a namespaced custom object. Returns True when it was created."""
        self._require()
        namespace = body["metadata"]["namespace"]
        name = body["metadata"]["name"]
        try:
            self.custom_api.create_namespaced_custom_object(group, version, namespace, plural, body)
            logger.info(f"{body.get('kind', plural)} '{namespace}/{name}' created.")
            return True
        except ApiException as e:
            if e.status != 409:
                raise
        existing = self.custom_api.get_namespaced_custom_object(group, version, namespace, plural, name)
        body = dict(body, metadata=dict(body["metadata"], resourceVersion=existing["metadata"]["resourceVersion"]))
        self.custom_api.replace_namespaced_custom_object(group, version, namespace, plural, name, body)
        logger.info(f"{body.get('kind', plural)} '{namespace}/{name}' replaced.")
        return False

    def service_account_token(self, name: str, namespace: str) -> str:
        """Token for ``name``: legacy token Secret when present (K8s < 1.24), else a TokenRequest."""
        self._require()
        secrets = self.core_api.list_namespaced_secret(namespace)
        for secret in secrets.items:
            if secret.type == "kubernetes.io/service-account-token" and \
                    secret.metadata.name.startswith(f"{name}-token") and secret.data and "token" in secret.data:
                logger.info(f"Using legacy service account token Secret '{secret.metadata.name}'.")
                return base64.b64decode(secret.data["token"]).decode()
        request = client.AuthenticationV1TokenRequest(
            spec=client.V1TokenRequestSpec(
                audiences=[], expiration_seconds=self.settings.SERVICE_ACCOUNT_TOKEN_SECONDS))
        response = self.core_api.create_namespaced_service_account_token(name, namespace, request)
        logger.info(f"Issued token for service account '{namespace}/{name}'.")
        return response.status.token

    # --- Demo workload inspection ---

    def get_custom_object(self, group: str, version: str, plural: str, name: str,
                          namespace: str) -> Optional[Dict[str, Any]]:
        self._require()
        try:
            return self.custom_api.get_namespaced_custom_object(group, version, namespace, plural, name)
        except ApiException as e:
            if e.status == 404:
                return None
            raise

    def pod_phases(self, namespace: str) -> Dict[str, str]:
        self._require()
        pod_list = self.core_api.list_namespaced_pod(namespace, timeout_seconds=10)
        return {pod.metadata.name: (pod.status.phase if pod.status else "Unknown") for pod in pod_list.items}

    def deployment_env(self, name: str, namespace: str) -> Optional[List[Dict[str, Any]]]:
        """Env of the first container as rendered in the live Deployment, or None if it is not deployed."""
        self._require()
        try:
            deployment = self.apps_api.read_namespaced_deployment(name, namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise
        containers = deployment.spec.template.spec.containers or []
        if not containers:
            return []
        return [{"name": var.name, "value": var.value} for var in (containers[0].env or [])]

    def service_node_port(self, name: str, namespace: str) -> Optional[int]:
        self._require()
        try:
            service = self.core_api.read_namespaced_service(name, namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise
        ports = service.spec.ports or []
        return ports[0].node_port if ports else None

    # --- Fixed poll windows around readiness conditions ---

    def _deployment_available(self, name: str, namespace: str) -> bool:
        try:
            deployment = self.apps_api.read_namespaced_deployment_status(name, namespace)
        except ApiException as e:
            if e.status == 404:
                return False
            raise
        conditions = (deployment.status.conditions if deployment.status else None) or []
        return any(c.type == "Available" and c.status == "True" for c in conditions)

    def _pods_ready(self, namespace: str, label_selector: str) -> bool:
        pods = self.core_api.list_namespaced_pod(namespace, label_selector=label_selector, timeout_seconds=10).items
        return bool(pods) and all(_pod_ready(pod) for pod in pods)

    def wait_for_deployment_available(self, name: str, namespace: str, timeout: float):
        self._require()
        if not wait_until(lambda: self._deployment_available(name, namespace), timeout,
                          self.settings.POLL_INTERVAL_SECONDS):
            raise ReconcilerError(f"Deployment '{namespace}/{name}' not available after {timeout:.0f}s")
        logger.info(f"Deployment '{namespace}/{name}' is available.")

    def wait_for_pods_ready(self, namespace: str, label_selector: str, timeout: float):
        self._require()
        if not wait_until(lambda: self._pods_ready(namespace, label_selector), timeout,
                          self.settings.POLL_INTERVAL_SECONDS):
            raise ReconcilerError(f"Pods '{label_selector}' in '{namespace}' not ready after {timeout:.0f}s")
        logger.info(f"Pods '{label_selector}' in '{namespace}' are ready.")


def _pod_ready(pod) -> bool:
    conditions = (pod.status.conditions if pod.status else None) or []
    return any(c.type == "Ready" and c.status == "True" for c in conditions)
