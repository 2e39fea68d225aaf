# reconciler/services/reporter.py
import sys
from typing import Iterable, List, Optional, TextIO

from reconciler.core.config import Settings
from reconciler.models.probe import DeficiencyTag, ProbeOutcome, ProbeResult
from reconciler.models.remediation import (
    DemoStatus, OperatorInfo, ReconcileReport, SecretRotation, StepOutcome, StepStatus)

_COLORS = {
    "CHECK": "\033[0;34m",
    "INFO": "\033[0;34m",
    "SUCCESS": "\033[0;32m",
    "WARNING": "\033[1;33m",
    "ERROR": "\033[0;31m",
}
_RESET = "\033[0m"


class Reporter:
    """Operator-facing console output. Never blocks and returns nothing callers depend on."""

    def __init__(self, settings: Settings, stream: Optional[TextIO] = None, color: Optional[bool] = None):
        self.settings = settings
        self.stream = stream or sys.stdout
        self.color = color if color is not None else getattr(self.stream, "isatty", lambda: False)()

    def _emit(self, category: str, message: str):
        label = f"[{category}]"
        if self.color:
            label = f"{_COLORS[category]}{label}{_RESET}"
        print(f"{label} {message}", file=self.stream)

    def _line(self, text: str = ""):
        print(text, file=self.stream)

    def check(self, message: str):
        self._emit("CHECK", message)

    def info(self, message: str):
        self._emit("INFO", message)

    def success(self, message: str):
        self._emit("SUCCESS", message)

    def warning(self, message: str):
        self._emit("WARNING", message)

    def error(self, message: str):
        self._emit("ERROR", message)

    # --- Reconciliation phases ---

    def probe_results(self, results: Iterable[ProbeResult]):
        for result in results:
            self.check(result.check)
            if result.outcome == ProbeOutcome.SATISFIED:
                self.success(result.detail)
            elif result.outcome == ProbeOutcome.DEFICIENT:
                self.warning(result.detail)
            else:
                self.error(f"Probe failed ({result.detail}); treating as not ready")

    def deficiencies(self, tags: List[DeficiencyTag], planned: List[str]):
        self._line()
        self.warning("Setup required for the following components:")
        for tag in tags:
            self._line(f"  - {tag.value}")
        self._line()
        if planned:
            self.info(f"Planned steps: {', '.join(planned)}")
        self.info("Proceeding with setup configuration...")

    def step(self, outcome: StepOutcome):
        if outcome.status == StepStatus.SKIPPED:
            return
        if outcome.status == StepStatus.REMEDIATED:
            self.success(f"{outcome.step}: {outcome.message or 'done'}")
        else:
            self.error(f"{outcome.step}: {outcome.error}")

    def converged(self, operator: OperatorInfo):
        self._line()
        self.success("All components are already configured and running!")
        self._next_steps(operator)

    def remediated(self, report: ReconcileReport):
        self._line()
        for warning in report.warnings:
            self.warning(warning)
        unresolved = [tag for tag in report.deficiencies if not _is_remediable(tag, report)]
        if unresolved:
            self.warning(f"No automatic remediation for: {', '.join(t.value for t in unresolved)}")
        self.success("Demo setup completed successfully!")
        if report.operator and report.operator.repository_url:
            self.success(f"Your repository: {report.operator.repository_url}")
        self._next_steps(report.operator or OperatorInfo())

    def failed(self, report: ReconcileReport):
        self._line()
        self.error(f"Reconciliation aborted at step '{report.failed_step}': {report.error}")
        self.info("Fix the problem and run again; completed steps will be skipped.")

    def verified(self, report: ReconcileReport):
        self._line()
        if report.converged:
            self.success("All checks passed! Your demo setup is ready.")
        else:
            self.error("Some checks failed: " + ", ".join(t.value for t in report.deficiencies))
            self.info("Run 'python -m reconciler reconcile' to set up missing components.")

    # --- Demo walkthrough ---

    def demo_status(self, status: DemoStatus):
        s = self.settings
        self.info(f"Vault secrets under {s.VAULT_KV_MOUNT}/{s.DEMO_SECRET_PREFIX}:")
        for path, data in status.secrets.items():
            fields = ", ".join(f"{key}={value}" for key, value in data.items())
            self._line(f"  {path}: {fields}")
        if status.application:
            app = status.application
            self.info(f"Application '{app.name}': sync={app.sync_status or 'Unknown'}, "
                      f"health={app.health_status or 'Unknown'}")
        else:
            self.warning(f"Application '{s.APPLICATION_NAME}' not found")
        self.info("Argo CD pods:")
        for pod, phase in status.controller_pods.items():
            self._line(f"  {pod}: {phase}")
        if status.workload_env is None:
            self.warning("Application not yet deployed. Argo CD may still be synchronizing.")
        else:
            self.info("Environment variables in the deployed application:")
            for var in status.workload_env:
                self._line(f"  {var['name']}={var.get('value')}")
        if status.service_node_port is None:
            self.warning("Service not yet created. Argo CD may still be synchronizing.")
        else:
            self.info(f"The service is exposed on NodePort: {status.service_node_port}")
            if status.service_url:
                self.success(f"Demo application is available at: {status.service_url}")
            self.info(f"On macOS with the docker driver run: minikube service {s.DEMO_WORKLOAD_NAME} --url")
        for error in status.errors:
            self.error(error)

    def secret_rotated(self, rotation: SecretRotation):
        self.warning(f"Previous username: {rotation.previous_username}")
        self.success(f"Secret {self.settings.VAULT_KV_MOUNT}/{rotation.path} updated with username: "
                     f"{rotation.username}")
        fields = ", ".join(f"{key}={value}" for key, value in rotation.secret.items())
        self._line(f"  {rotation.path}: {fields}")
        self.info("Argo CD injects the new value the next time the application syncs.")

    def precondition_failed(self, message: str):
        self.error(message)
        self.warning(f"SECURITY NOTE: Never commit {self.settings.VAULT_LICENSE_PATH} to a public repository!")

    def _next_steps(self, operator: OperatorInfo):
        s = self.settings
        self._line()
        self._line("Next steps:")
        self._line("1. Apply the Argo CD application:")
        self._line(f"   kubectl apply -f {s.APPLICATION_FILE}   (or: python -m reconciler deploy)")
        self._line("2. Watch the application sync:")
        self._line(f"   kubectl get applications -n {s.ARGOCD_NAMESPACE} -w")
        self._line("3. Access the Argo CD UI:")
        self._line(f"   kubectl port-forward svc/{s.ARGOCD_SERVER_DEPLOYMENT} -n {s.ARGOCD_NAMESPACE} 8080:443")
        self._line(f"   Then open: {operator.ui_endpoint or 'https://localhost:8080'}")
        if operator.admin_password:
            self._line(f"   Username: {operator.admin_username}")
            self._line(f"   Password: {operator.admin_password}")
        self._line("4. Monitor the deployment:")
        self._line(f"   kubectl get pods -n {s.APP_NAMESPACE} -w")


def _is_remediable(tag: DeficiencyTag, report: ReconcileReport) -> bool:
    return any(tag in outcome.triggered_by for outcome in report.steps)
