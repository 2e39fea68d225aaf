# reconciler/models/probe.py
from enum import Enum
from typing import FrozenSet, Iterable
from pydantic import BaseModel, Field


class DeficiencyTag(str, Enum):
    RUNTIME_UNAVAILABLE = "runtime-unavailable"
    TOOLS_MISSING = "tools-missing"
    REPOSITORY_REMOTE_MISSING = "repository-remote-missing"
    SECRETS_STORE_UNREACHABLE = "secrets-store-unreachable"
    SAMPLE_SECRETS_MISSING = "sample-secrets-missing"
    AUTH_METHOD_DISABLED = "auth-method-disabled"
    CLUSTER_UNAVAILABLE = "cluster-unavailable"
    CONTROLLER_NOT_INSTALLED = "controller-not-installed"
    CONTROLLER_NOT_READY = "controller-not-ready"
    PLUGIN_CONFIG_MISSING = "plugin-config-missing"
    NETWORK_UNREACHABLE = "network-unreachable"
    APP_MANIFESTS_MISSING = "app-manifests-missing"


class ProbeOutcome(str, Enum):
    SATISFIED = "satisfied"
    DEFICIENT = "deficient"
    ERROR = "error"  # probe itself broke; counted as deficient


class ProbeResult(BaseModel):
    check: str = Field(..., description="Name of the readiness check")
    tag: DeficiencyTag
    outcome: ProbeOutcome
    detail: str = ""

    @property
    def satisfied(self) -> bool:
        return self.outcome == ProbeOutcome.SATISFIED


DeficiencySet = FrozenSet[DeficiencyTag]


def collect_deficiencies(results: Iterable[ProbeResult]) -> DeficiencySet:
    """Builds the deficiency set; errored probes are treated as deficient."""
    return frozenset(result.tag for result in results if not result.satisfied)
