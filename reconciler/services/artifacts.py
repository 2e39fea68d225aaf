# reconciler/services/artifacts.py
"""Generated boundary artifacts: Helm values, plugin config, Application descriptor and demo workload.

Placeholders of the form ``<path:store-path#field>`` are only emitted here; they are
resolved by the Vault plugin inside Argo CD at sync time.
"""
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from reconciler.core.config import Settings

logger = logging.getLogger(__name__)

PLACEHOLDER_MARKER = "<path:"

GITIGNORE = """# Demo generated files
argocd-values.yaml
debug-logs/

# Vault license (NEVER commit this!)
{license}

# macOS
.DS_Store

# Temporary files
*.tmp
/tmp/

# IDE files
.vscode/
.idea/
"""


class _Literal(str):
    """String dumped in YAML literal block style."""


class _Dumper(yaml.SafeDumper):
    pass


_Dumper.add_representer(
    _Literal, lambda dumper, data: dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|"))


def dump(document: Any) -> str:
    return yaml.dump(document, Dumper=_Dumper, sort_keys=False, default_flow_style=False)


def dump_all(documents: List[Any]) -> str:
    return yaml.dump_all(documents, Dumper=_Dumper, sort_keys=False, default_flow_style=False)


def placeholder(store_path: str, field: str) -> str:
    return f"<path:{store_path}#{field}>"


def _plugin_env(settings: Settings) -> List[Dict[str, str]]:
    return [
        {"name": "VAULT_ADDR", "value": settings.VAULT_CLUSTER_ADDR},
        {"name": "AVP_TYPE", "value": "vault"},
        {"name": "AVP_AUTH_TYPE", "value": "token"},
        {"name": "VAULT_TOKEN", "value": settings.VAULT_TOKEN.get_secret_value()},
    ]


def controller_values(settings: Settings) -> Dict[str, Any]:
    """Helm values for the Argo CD chart with the Vault plugin sidecar."""
    version = settings.PLUGIN_VERSION
    download_url = (
        "https://github.com/argoproj-labs/argocd-vault-plugin/releases/download/"
        f"v{version}/argocd-vault-plugin_{version}_linux_amd64"
    )
    legacy_plugins = [{
        "name": settings.PLUGIN_NAME,
        "generate": {"command": ["argocd-vault-plugin"], "args": ["generate", "./"]},
    }]
    return {
        "configs": {"cm": {"configManagementPlugins": _Literal(dump(legacy_plugins))}},
        "repoServer": {
            "initContainers": [{
                "name": "download-tools",
                "image": "alpine:3.18",
                "command": ["sh", "-c"],
                "args": [
                    f"wget -O argocd-vault-plugin {download_url} && "
                    "chmod +x argocd-vault-plugin && "
                    "mv argocd-vault-plugin /custom-tools/"
                ],
                "volumeMounts": [{"mountPath": "/custom-tools", "name": "custom-tools"}],
            }],
            "extraContainers": [{
                "name": "avp",
                "image": settings.ARGOCD_SIDECAR_IMAGE,
                "command": ["/var/run/argocd/argocd-cmp-server"],
                "env": [
                    {"name": "VAULT_ADDR", "value": settings.VAULT_CLUSTER_ADDR},
                    {"name": "VAULT_TOKEN", "value": settings.VAULT_TOKEN.get_secret_value()},
                    {"name": "AVP_TYPE", "value": "vault"},
                    {"name": "AVP_AUTH_TYPE", "value": "token"},
                    {"name": "PATH",
                     "value": "/custom-tools:/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin"},
                ],
                "volumeMounts": [
                    {"mountPath": "/var/run/argocd", "name": "var-files"},
                    {"mountPath": "/home/argocd/cmp-server/plugins", "name": "plugins"},
                    {"mountPath": "/tmp", "name": "avp-tmp"},
                    {"mountPath": "/home/argocd/cmp-server/config/plugin.yaml",
                     "subPath": "plugin.yaml", "name": "cmp-plugin"},
                    {"mountPath": "/custom-tools", "name": "custom-tools"},
                ],
                "securityContext": {"runAsNonRoot": True, "runAsUser": 999},
            }],
            "volumes": [
                {"name": "custom-tools", "emptyDir": {}},
                {"name": "cmp-plugin", "configMap": {"name": settings.PLUGIN_CONFIGMAP}},
                {"name": "avp-tmp", "emptyDir": {}},
            ],
        },
        "server": {
            "service": {
                "type": "NodePort",
                "nodePortHttp": settings.ARGOCD_NODE_PORT_HTTP,
                "nodePortHttps": settings.ARGOCD_NODE_PORT_HTTPS,
            },
        },
    }


def plugin_configuration(settings: Settings) -> Dict[str, Any]:
    """ConfigManagementPlugin definition mounted into the sidecar as plugin.yaml."""
    return {
        "apiVersion": "argoproj.io/v1alpha1",
        "kind": "ConfigManagementPlugin",
        "metadata": {"name": settings.PLUGIN_NAME},
        "spec": {
            "allowConcurrency": True,
            "discover": {
                "find": {
                    "command": [
                        "sh", "-c",
                        r"find . -name '*.yaml' | xargs -I {} grep -l '<path\|avp\.kubernetes\.io' {}",
                    ],
                },
            },
            "generate": {"command": ["argocd-vault-plugin", "generate", "./"]},
            "lockRepo": False,
        },
    }


def plugin_configmap_data(settings: Settings) -> Dict[str, str]:
    return {"plugin.yaml": dump(plugin_configuration(settings))}


def application_descriptor(settings: Settings, repo_url: str) -> Dict[str, Any]:
    return {
        "apiVersion": "argoproj.io/v1alpha1",
        "kind": "Application",
        "metadata": {
            "name": settings.APPLICATION_NAME,
            "namespace": settings.ARGOCD_NAMESPACE,
            "finalizers": ["resources-finalizer.argocd.argoproj.io"],
        },
        "spec": {
            "project": "default",
            "source": {
                "repoURL": repo_url,
                "targetRevision": "HEAD",
                "path": settings.MANIFEST_DIR,
                "plugin": {"name": settings.PLUGIN_NAME, "env": _plugin_env(settings)},
            },
            "destination": {
                "server": "https://kubernetes.default.svc",
                "namespace": settings.APP_NAMESPACE,
            },
            "syncPolicy": {
                "automated": {"prune": True, "selfHeal": True},
                "syncOptions": ["CreateNamespace=true"],
            },
        },
    }


_INDEX_HTML = """<!DOCTYPE html>
<html>
<head>
    <title>Vault + Argo CD Integration Demo</title>
</head>
<body>
    <h1>Vault + Argo CD Integration Demo</h1>
    <p>Argo CD fetched the values below from HashiCorp Vault during deployment.</p>
    <p><strong>Note:</strong> never display secrets in a real user interface.</p>
    <h2>Secrets Retrieved from Vault:</h2>
    <div class="secret"><strong>Database Username:</strong> {username}</div>
    <div class="secret"><strong>Database Host:</strong> {host}</div>
    <div class="secret"><strong>API Endpoint:</strong> {endpoint}</div>
</body>
</html>
"""


def sample_workload(settings: Settings) -> List[Dict[str, Any]]:
    """Deployment, ConfigMap and Service for the demo app, referencing Vault through placeholders."""
    database = settings.kv_data_path("myapp/database")
    api = settings.kv_data_path("myapp/api")
    name = settings.DEMO_WORKLOAD_NAME
    namespace = settings.APP_NAMESPACE
    labels = {"app": name}
    env = [
        {"name": "DB_USERNAME", "value": placeholder(database, "username")},
        {"name": "DB_PASSWORD", "value": placeholder(database, "password")},
        {"name": "DB_HOST", "value": placeholder(database, "host")},
        {"name": "API_KEY", "value": placeholder(api, "key")},
    ]
    index_html = _INDEX_HTML.format(
        username=placeholder(database, "username"),
        host=placeholder(database, "host"),
        endpoint=placeholder(api, "endpoint"),
    )
    return [
        {
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "metadata": {"name": name, "namespace": namespace},
            "spec": {
                "replicas": 1,
                "selector": {"matchLabels": labels},
                "template": {
                    "metadata": {"labels": labels},
                    "spec": {
                        "containers": [{
                            "name": "app",
                            "image": "nginx:alpine",
                            "ports": [{"containerPort": 80}],
                            "env": env,
                            "volumeMounts": [{"name": "config", "mountPath": "/usr/share/nginx/html"}],
                        }],
                        "volumes": [{"name": "config", "configMap": {"name": "app-config"}}],
                    },
                },
            },
        },
        {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {"name": "app-config", "namespace": namespace},
            "data": {"index.html": _Literal(index_html)},
        },
        {
            "apiVersion": "v1",
            "kind": "Service",
            "metadata": {"name": name, "namespace": namespace},
            "spec": {
                "selector": labels,
                "ports": [{"port": 80, "targetPort": 80}],
                "type": "NodePort",
            },
        },
    ]


def vault_policy(settings: Settings) -> str:
    """HCL policy granting read on the demo app's secrets."""
    return f'path "{settings.kv_data_path("myapp/*")}" {{\n  capabilities = ["read"]\n}}\n'


# --- Filesystem helpers ---

def _write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    logger.info(f"Wrote {path}")
    return path


def write_controller_values(settings: Settings) -> Path:
    return _write(Path(settings.WORKDIR) / settings.VALUES_FILE, dump(controller_values(settings)))


def write_application_descriptor(settings: Settings, repo_url: str) -> Path:
    return _write(Path(settings.WORKDIR) / settings.APPLICATION_FILE,
                  dump(application_descriptor(settings, repo_url)))


def write_sample_workload(settings: Settings) -> Path:
    return _write(Path(settings.WORKDIR) / settings.manifest_path, dump_all(sample_workload(settings)))


def load_application_descriptor(settings: Settings) -> Optional[Dict[str, Any]]:
    path = Path(settings.WORKDIR) / settings.APPLICATION_FILE
    if not path.is_file():
        return None
    return yaml.safe_load(path.read_text())


def manifests_have_placeholders(settings: Settings) -> bool:
    """The sample workload manifest exists and still carries Vault placeholders."""
    path = Path(settings.WORKDIR) / settings.manifest_path
    return path.is_file() and PLACEHOLDER_MARKER in path.read_text()


_REPO_URL_LINE = re.compile(r"^(\s*repoURL:\s*).*$", re.MULTILINE)


def update_template_repo_url(settings: Settings, repo_url: str) -> bool:
    """Points every ``repoURL`` in the application template at ``repo_url``. Comments are preserved."""
    path = Path(settings.WORKDIR) / settings.APPLICATION_TEMPLATE_FILE
    if not path.is_file():
        return False
    original = path.read_text()
    updated = _REPO_URL_LINE.sub(lambda m: m.group(1) + repo_url, original)
    if updated == original:
        return False
    path.write_text(updated)
    logger.info(f"Updated repoURL in {path}")
    return True


def ensure_gitignore(settings: Settings) -> bool:
    path = Path(settings.WORKDIR) / ".gitignore"
    if path.exists():
        return False
    _write(path, GITIGNORE.format(license=settings.VAULT_LICENSE_PATH))
    return True
