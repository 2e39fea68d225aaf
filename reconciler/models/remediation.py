# reconciler/models/remediation.py
from dataclasses import dataclass, field
from enum import Enum
from pydantic import BaseModel
from typing import Any, Callable, Dict, List, Optional, Tuple

from reconciler.models.probe import DeficiencySet, DeficiencyTag, ProbeResult


@dataclass(frozen=True)
class RemediationStep:
    """A corrective action gated by deficiency tags.

    The step runs when ANY of its ``tags`` is present in the deficiency set.
    ``requires`` names the steps that must be satisfied (or remediated earlier in
    the same run) before this one. ``action`` must be idempotent and returns an
    optional message for the report; it raises on failure.
    """
    name: str
    description: str
    tags: Tuple[DeficiencyTag, ...]
    action: Callable[[], Optional[str]]
    requires: Tuple[str, ...] = field(default_factory=tuple)

    def is_triggered(self, deficiencies: DeficiencySet) -> bool:
        return any(tag in deficiencies for tag in self.tags)


class StepStatus(str, Enum):
    SKIPPED = "skipped"
    REMEDIATED = "remediated"
    FAILED = "failed"


class StepOutcome(BaseModel):
    step: str
    status: StepStatus
    triggered_by: List[DeficiencyTag] = []
    message: Optional[str] = None
    error: Optional[str] = None


class OperatorInfo(BaseModel):
    repository_url: Optional[str] = None
    ui_endpoint: Optional[str] = None
    admin_username: str = "admin"
    admin_password: Optional[str] = None


class ReconcileReport(BaseModel):
    converged: bool  # True when nothing needed doing
    probe_results: List[ProbeResult] = []
    deficiencies: List[DeficiencyTag] = []
    steps: List[StepOutcome] = []
    failed_step: Optional[str] = None
    error: Optional[str] = None
    warnings: List[str] = []
    operator: Optional[OperatorInfo] = None

    @property
    def succeeded(self) -> bool:
        return self.failed_step is None and self.error is None


class ProbeReport(BaseModel):
    probe_results: List[ProbeResult]
    deficiencies: List[DeficiencyTag]
    converged: bool


class ApplicationStatus(BaseModel):
    name: str
    sync_status: Optional[str] = None
    health_status: Optional[str] = None


class DemoStatus(BaseModel):
    """Best-effort snapshot of the running demo; unreadable parts stay empty and are listed in ``errors``."""
    secrets: Dict[str, Dict[str, Any]] = {}
    application: Optional[ApplicationStatus] = None
    controller_pods: Dict[str, str] = {}
    workload_env: Optional[List[Dict[str, Any]]] = None
    service_node_port: Optional[int] = None
    service_url: Optional[str] = None
    errors: List[str] = []


class SecretRotation(BaseModel):
    path: str
    previous_username: Optional[str] = None
    username: str
    secret: Dict[str, Any]
