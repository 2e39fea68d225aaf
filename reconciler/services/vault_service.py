# reconciler/services/vault_service.py
import logging
from typing import Any, Dict, List, Optional

import requests

from reconciler.core.config import Settings
from reconciler.core.exceptions import VaultError

logger = logging.getLogger(__name__)


class VaultService:
    """Thin client over the Vault HTTP API (health, KV v2, auth methods, policies)."""

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.base_url = settings.VAULT_ADDR.rstrip("/")
        self.timeout = settings.PROBE_TIMEOUT_SECONDS
        self.session = session or requests.Session()
        self.session.headers["X-Vault-Token"] = settings.VAULT_TOKEN.get_secret_value()

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None,
                 allow_status=()) -> Optional[requests.Response]:
        url = f"{self.base_url}/v1/{path.lstrip('/')}"
        try:
            response = self.session.request(method, url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise VaultError(method, path, None, str(e)) from e
        if response.status_code in allow_status:
            return None
        if not 200 <= response.status_code < 300:
            raise VaultError(method, path, response.status_code, response.text[:200])
        return response

    def _json(self, method: str, path: str) -> Dict[str, Any]:
        response = self._request(method, path)
        return response.json() if response.content else {}

    # --- Read-only queries ---

    def is_healthy(self) -> bool:
        """Initialized, unsealed and active (GET sys/health returns 200)."""
        try:
            self._request("GET", "sys/health")
            return True
        except VaultError as e:
            logger.debug(f"Vault health check failed: {e}")
            return False

    def token_valid(self) -> bool:
        try:
            self._request("GET", "auth/token/lookup-self")
            return True
        except VaultError as e:
            logger.debug(f"Vault token lookup failed: {e}")
            return False

    def read_secret(self, secret_path: str) -> Optional[Dict[str, Any]]:
        """Returns the KV v2 data at ``secret_path``, or None when it does not exist."""
        response = self._request(
            "GET", f"{self.settings.VAULT_KV_MOUNT}/data/{secret_path}", allow_status=(404,))
        if response is None:
            return None
        return response.json().get("data", {}).get("data")

    def list_secrets(self, prefix: str) -> List[str]:
        """KV v2 keys directly under ``prefix``; sub-folders keep their trailing slash."""
        response = self._request(
            "LIST", f"{self.settings.VAULT_KV_MOUNT}/metadata/{prefix.strip('/')}", allow_status=(404,))
        if response is None:
            return []
        return response.json().get("data", {}).get("keys", [])

    def list_auth_methods(self) -> Dict[str, Any]:
        body = self._json("GET", "sys/auth")
        return body.get("data", body)

    def auth_method_enabled(self, name: str) -> bool:
        return f"{name.strip('/')}/" in self.list_auth_methods()

    def list_mounts(self) -> Dict[str, Any]:
        body = self._json("GET", "sys/mounts")
        return body.get("data", body)

    # --- Mutating calls ---

    def enable_kv_engine(self, mount: str):
        """Mounts a KV v2 engine at ``mount`` unless something is already mounted there."""
        if f"{mount.strip('/')}/" in self.list_mounts():
            logger.info(f"Secrets engine already mounted at '{mount}/'.")
            return False
        self._request("POST", f"sys/mounts/{mount}", {"type": "kv", "options": {"version": "2"}})
        logger.info(f"KV v2 secrets engine enabled at '{mount}/'.")
        return True

    def enable_auth_method(self, name: str) -> bool:
        if self.auth_method_enabled(name):
            logger.info(f"Auth method '{name}' already enabled.")
            return False
        self._request("POST", f"sys/auth/{name}", {"type": name})
        logger.info(f"Auth method '{name}' enabled.")
        return True

    def write_secret(self, secret_path: str, data: Dict[str, str]):
        # KV v2 writes create a new version; existing data is overwritten
        self._request("POST", f"{self.settings.VAULT_KV_MOUNT}/data/{secret_path}", {"data": data})
        logger.info(f"Secret written at {self.settings.VAULT_KV_MOUNT}/{secret_path}.")

    def write_policy(self, name: str, policy: str):
        self._request("PUT", f"sys/policies/acl/{name}", {"policy": policy})
        logger.info(f"Policy '{name}' written.")

    def write(self, path: str, data: Dict[str, Any]):
        self._request("POST", path, data)
        logger.info(f"Wrote Vault path '{path}'.")
