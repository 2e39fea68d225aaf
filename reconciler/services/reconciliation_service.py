# reconciler/services/reconciliation_service.py
import logging
from pathlib import Path
from typing import List, Optional

from kubernetes.client.exceptions import ApiException

from reconciler.core.config import Settings
from reconciler.core.exceptions import PreconditionError, ReconcilerError, RemediationError
from reconciler.models.probe import DeficiencySet, DeficiencyTag, collect_deficiencies
from reconciler.models.remediation import (
    ApplicationStatus, DemoStatus, OperatorInfo, ProbeReport, ReconcileReport, SecretRotation)
from reconciler.services import artifacts
from reconciler.services.collaborators import Collaborators, build_collaborators
from reconciler.services.prober import StateProber
from reconciler.services.remediation_steps import RemediationActions, build_steps
from reconciler.services.remediator import Remediator
from reconciler.services.reporter import Reporter

logger = logging.getLogger(__name__)

APPLICATION_GROUP = "argoproj.io"
APPLICATION_VERSION = "v1alpha1"
APPLICATION_PLURAL = "applications"


def ordered_tags(deficiencies: DeficiencySet) -> List[DeficiencyTag]:
    return [tag for tag in DeficiencyTag if tag in deficiencies]


class ReconciliationService:
    """Probe, then remediate only what is deficient, then report."""

    def __init__(self, settings: Settings, collaborators: Optional[Collaborators] = None,
                 reporter: Optional[Reporter] = None):
        self.settings = settings
        self.collaborators = collaborators or build_collaborators(settings)
        self.reporter = reporter or Reporter(settings)
        self.prober = StateProber(settings, self.collaborators)
        self.actions = RemediationActions(settings, self.collaborators)
        # Step order is resolved once here; a bad graph fails at startup
        self.remediator = Remediator(build_steps(self.actions), on_outcome=self.reporter.step)

    def check_preconditions(self):
        if not self.collaborators.runner.which("git"):
            raise PreconditionError("Git is not installed. Please install git first.")
        license_path = Path(self.settings.WORKDIR) / self.settings.VAULT_LICENSE_PATH
        if not license_path.is_file():
            raise PreconditionError(
                f"Vault license file '{self.settings.VAULT_LICENSE_PATH}' not found. "
                "Please ensure it exists in the demo directory.")

    def probe(self) -> ProbeReport:
        results = self.prober.probe()
        deficiencies = collect_deficiencies(results)
        return ProbeReport(
            probe_results=results,
            deficiencies=ordered_tags(deficiencies),
            converged=not deficiencies,
        )

    def verify(self) -> ReconcileReport:
        """Read-only pass; performs no mutating calls and needs no license or git."""
        probe = self.probe()
        self.reporter.probe_results(probe.probe_results)
        report = ReconcileReport(
            converged=probe.converged,
            probe_results=probe.probe_results,
            deficiencies=probe.deficiencies,
        )
        self.reporter.verified(report)
        return report

    def reconcile(self) -> ReconcileReport:
        self._preconditions_or_report()
        self.actions.warnings.clear()

        logger.info("Verifying current setup...")
        probe = self.probe()
        self.reporter.probe_results(probe.probe_results)
        deficiencies = frozenset(probe.deficiencies)

        if not deficiencies:
            logger.info("Environment already converged; nothing to do.")
            operator = self.operator_info()
            self.reporter.converged(operator)
            return ReconcileReport(converged=True, probe_results=probe.probe_results, operator=operator)

        planned = self.remediator.plan(deficiencies)
        self.reporter.deficiencies(probe.deficiencies, [step.name for step in planned])
        report = ReconcileReport(
            converged=False,
            probe_results=probe.probe_results,
            deficiencies=probe.deficiencies,
        )
        try:
            report.steps = self.remediator.run(deficiencies)
        except RemediationError as e:
            report.steps = e.outcomes
            report.failed_step = e.step
            report.error = str(e)
            report.warnings = list(self.actions.warnings)
            self.reporter.failed(report)
            return report

        report.warnings = list(self.actions.warnings)
        report.operator = self.operator_info()
        self.reporter.remediated(report)
        return report

    def deploy_application(self) -> str:
        """Applies the generated Application descriptor to the Argo CD namespace."""
        descriptor = artifacts.load_application_descriptor(self.settings)
        if descriptor is None:
            raise ReconcilerError(
                f"{self.settings.APPLICATION_FILE} not found; run the reconciler to generate it first")
        try:
            created = self.collaborators.kubernetes.apply_custom_object(
                APPLICATION_GROUP, APPLICATION_VERSION, APPLICATION_PLURAL, descriptor)
        except ApiException as e:
            raise ReconcilerError(f"Kubernetes API error applying the Application: {e.status} - {e.reason}") from e
        name = descriptor["metadata"]["name"]
        message = f"Application '{name}' {'created' if created else 'updated'}"
        self.reporter.success(message)
        return message

    def demo_status(self) -> DemoStatus:
        """Read-only view of the running demo: secrets, Application, controller pods and the workload."""
        s = self.settings
        c = self.collaborators
        status = DemoStatus()

        def attempt(what, read):
            try:
                return read()
            except Exception as e:
                logger.warning(f"Could not read {what}: {e}")
                status.errors.append(f"{what}: {e}")
                return None

        keys = attempt("Vault secret list", lambda: c.vault.list_secrets(s.DEMO_SECRET_PREFIX)) or []
        for key in keys:
            if key.endswith("/"):
                continue
            path = f"{s.DEMO_SECRET_PREFIX}/{key}"
            data = attempt(f"secret {path}", lambda: c.vault.read_secret(path))
            if data is not None:
                status.secrets[path] = data

        application = attempt("Argo CD Application", lambda: c.kubernetes.get_custom_object(
            APPLICATION_GROUP, APPLICATION_VERSION, APPLICATION_PLURAL, s.APPLICATION_NAME, s.ARGOCD_NAMESPACE))
        if application is not None:
            app_status = application.get("status") or {}
            status.application = ApplicationStatus(
                name=s.APPLICATION_NAME,
                sync_status=(app_status.get("sync") or {}).get("status"),
                health_status=(app_status.get("health") or {}).get("status"),
            )

        status.controller_pods = attempt(
            "Argo CD pods", lambda: c.kubernetes.pod_phases(s.ARGOCD_NAMESPACE)) or {}
        status.workload_env = attempt(
            "workload environment", lambda: c.kubernetes.deployment_env(s.DEMO_WORKLOAD_NAME, s.APP_NAMESPACE))
        status.service_node_port = attempt(
            "workload service", lambda: c.kubernetes.service_node_port(s.DEMO_WORKLOAD_NAME, s.APP_NAMESPACE))
        if status.service_node_port is not None:
            status.service_url = attempt("cluster IP", lambda: c.minikube.service_url(status.service_node_port))

        self.reporter.demo_status(status)
        return status

    def rotate_secret(self, username: Optional[str] = None) -> SecretRotation:
        """Rewrites the demo secret's username, keeping its other fields, and reads it back."""
        username = self.settings.DEFAULT_ROTATED_USERNAME if username is None else username.strip()
        if not username:
            raise ReconcilerError("username must not be empty")
        path = self.settings.DEMO_SECRET_PATH
        vault = self.collaborators.vault
        current = vault.read_secret(path)
        if current is None:
            raise ReconcilerError(
                f"Secret {self.settings.VAULT_KV_MOUNT}/{path} not found; run the reconciler to create it first")
        vault.write_secret(path, dict(current, username=username))
        updated = vault.read_secret(path)
        if updated is None or updated.get("username") != username:
            raise ReconcilerError(f"Secret {self.settings.VAULT_KV_MOUNT}/{path} did not keep the new username")
        rotation = SecretRotation(
            path=path, previous_username=current.get("username"), username=username, secret=updated)
        logger.info(f"Rotated username of {path}: {rotation.previous_username} -> {username}")
        self.reporter.secret_rotated(rotation)
        return rotation

    def operator_info(self) -> OperatorInfo:
        """Credential and endpoint summary; each value is fetched fresh and is optional."""
        info = OperatorInfo(
            repository_url=self.collaborators.git.remote_url(),
            ui_endpoint="https://localhost:8080",
        )
        try:
            info.admin_password = self.collaborators.kubernetes.read_secret_field(
                self.settings.ARGOCD_ADMIN_SECRET, self.settings.ARGOCD_NAMESPACE, "password")
        except Exception as e:
            logger.warning(f"Could not read the Argo CD admin password: {e}")
        return info

    def _preconditions_or_report(self):
        try:
            self.check_preconditions()
        except PreconditionError as e:
            self.reporter.precondition_failed(str(e))
            raise
