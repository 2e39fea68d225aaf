from __future__ import annotations

import pytest
import yaml

from reconciler.core.exceptions import CommandError, PreconditionError, ReconcilerError
from reconciler.models.probe import DeficiencyTag as T
from reconciler.models.probe import ProbeOutcome
from reconciler.models.remediation import StepStatus

ALL_BUT_NOT_READY = set(T) - {T.CONTROLLER_NOT_READY}


def _statuses(report):
    return {outcome.step: outcome.status for outcome in report.steps}


def _remediated(report):
    return [outcome.step for outcome in report.steps if outcome.status == StepStatus.REMEDIATED]


def test_fresh_environment_converges(service, env, settings) -> None:
    report = service.reconcile()

    assert report.succeeded
    assert not report.converged
    assert set(report.deficiencies) == ALL_BUT_NOT_READY
    assert _remediated(report) == [
        "repository", "container-runtime", "secrets-store", "tools", "cluster", "auth-method",
        "sample-secrets", "controller", "auth-binding", "app-manifests", "publish-artifacts",
    ]
    assert service.probe().converged
    assert env.remote == settings.REPO_URL
    assert env.pushed == ["main"]


def test_second_run_is_a_no_op(service, env) -> None:
    service.reconcile()
    env.calls.clear()

    report = service.reconcile()

    assert report.converged
    assert report.deficiencies == []
    assert report.steps == []
    assert env.calls == []


def test_converged_environment_exits_early(service, converged_env, output) -> None:
    report = service.reconcile()

    assert report.converged
    assert converged_env.calls == []
    assert report.operator.admin_password == converged_env.admin_password
    text = output.getvalue()
    assert "All components are already configured and running!" in text
    assert f"Password: {converged_env.admin_password}" in text


def test_single_deficiency_only_runs_its_step(service, converged_env) -> None:
    converged_env.secrets.clear()

    report = service.reconcile()

    assert report.deficiencies == [T.SAMPLE_SECRETS_MISSING]
    assert _remediated(report) == ["sample-secrets"]
    assert all(call.startswith("vault.write_secret:") for call in converged_env.calls)
    assert service.probe().converged


def test_plugin_config_drift_recreates_configmap_and_restarts_repo_server(
        service, converged_env, settings) -> None:
    converged_env.configmaps.clear()

    report = service.reconcile()

    assert report.deficiencies == [T.PLUGIN_CONFIG_MISSING]
    assert _remediated(report) == ["controller"]
    assert f"k8s.apply_configmap:{settings.PLUGIN_CONFIGMAP}" in converged_env.calls
    assert converged_env.restarted == [settings.ARGOCD_REPO_SERVER_DEPLOYMENT]
    untouched = ("vault.", "minikube.", "docker.", "helm.install")
    assert not [call for call in converged_env.calls if call.startswith(untouched)]


def test_auth_binding_runs_after_controller_install(service, converged_env, settings) -> None:
    converged_env.auth_methods.clear()
    converged_env.releases.clear()
    converged_env.namespaces.discard(settings.ARGOCD_NAMESPACE)
    converged_env.configmaps.clear()
    converged_env.controller_ready = False

    report = service.reconcile()

    assert report.succeeded
    assert _remediated(report) == ["auth-method", "controller", "auth-binding"]
    calls = converged_env.calls
    config_write = calls.index(f"vault.write:auth/{settings.VAULT_AUTH_METHOD}/config")
    assert calls.index(f"vault.enable_auth_method:{settings.VAULT_AUTH_METHOD}") < config_write
    assert calls.index(f"helm.install:{settings.ARGOCD_RELEASE}") < config_write
    written = converged_env.vault_paths[f"auth/{settings.VAULT_AUTH_METHOD}/config"]
    assert written["kubernetes_host"] == f"https://{converged_env.cluster_ip}:{settings.KUBE_API_PORT}"
    assert written["token_reviewer_jwt"] == "token-1"


def test_errored_probe_counts_as_deficient(service, converged_env) -> None:

    def broken():
        raise RuntimeError("socket closed")

    service.collaborators.vault.is_healthy = broken

    probe = service.probe()

    result = next(r for r in probe.probe_results if r.check == "secrets-store")
    assert result.outcome == ProbeOutcome.ERROR
    assert "socket closed" in result.detail
    assert T.SECRETS_STORE_UNREACHABLE in probe.deficiencies
    assert not probe.converged


def test_failure_stops_remediation_and_rerun_resumes(service, env) -> None:
    env.fail["minikube.start"] = CommandError(["minikube", "start"], 1, "driver unavailable")

    report = service.reconcile()

    assert not report.succeeded
    assert report.failed_step == "cluster"
    assert _statuses(report) == {
        "repository": StepStatus.REMEDIATED,
        "container-runtime": StepStatus.REMEDIATED,
        "secrets-store": StepStatus.REMEDIATED,
        "tools": StepStatus.REMEDIATED,
        "cluster": StepStatus.FAILED,
    }
    assert not [call for call in env.calls if call.startswith("helm.")]

    del env.fail["minikube.start"]
    env.calls.clear()
    report = service.reconcile()

    assert report.succeeded
    assert _statuses(report)["repository"] == StepStatus.SKIPPED
    assert _statuses(report)["container-runtime"] == StepStatus.SKIPPED
    assert "git.init" not in env.calls
    assert service.probe().converged


def test_push_failure_is_a_warning(service, env, output) -> None:
    env.push_works = False

    report = service.reconcile()

    assert report.succeeded
    assert len(report.warnings) == 1
    assert "git push -u origin main" in report.warnings[0]
    assert "Push failed" in output.getvalue()
    assert env.commits


def test_network_deficiency_has_no_remediation(service, converged_env, output) -> None:
    service.collaborators.minikube.can_reach = lambda url: False

    report = service.reconcile()

    assert report.succeeded
    assert report.deficiencies == [T.NETWORK_UNREACHABLE]
    assert _remediated(report) == []
    assert converged_env.calls == []
    assert "No automatic remediation for: network-unreachable" in output.getvalue()


def test_verify_performs_no_mutations(service, env, output) -> None:
    report = service.verify()

    assert not report.converged
    assert env.calls == []
    assert "Some checks failed" in output.getvalue()


def test_verify_converged(service, converged_env, output) -> None:
    assert service.verify().converged
    assert "All checks passed!" in output.getvalue()


def test_missing_license_fails_preconditions(service, env, demo_dir, output) -> None:
    (demo_dir / "vault.hclic").unlink()

    with pytest.raises(PreconditionError, match="license"):
        service.reconcile()
    assert env.calls == []
    assert "SECURITY NOTE" in output.getvalue()


def test_missing_git_fails_preconditions(service, env) -> None:
    env.tools = set()

    with pytest.raises(PreconditionError, match="Git is not installed"):
        service.reconcile()
    assert env.calls == []


def test_deploy_application_applies_descriptor(service, env, settings, demo_dir) -> None:
    service.reconcile()

    message = service.deploy_application()

    assert message == f"Application '{settings.APPLICATION_NAME}' created"
    applied = env.custom_objects[f"{settings.ARGOCD_NAMESPACE}/{settings.APPLICATION_NAME}"]
    assert applied["spec"]["source"]["repoURL"] == settings.REPO_URL
    on_disk = yaml.safe_load((demo_dir / settings.APPLICATION_FILE).read_text())
    assert on_disk == applied
    assert service.deploy_application().endswith("updated")


def test_deploy_without_descriptor_fails(service) -> None:
    with pytest.raises(ReconcilerError, match="not found"):
        service.deploy_application()


def test_verify_runs_without_license_or_git(service, converged_env, demo_dir, output) -> None:
    (demo_dir / "vault.hclic").unlink()
    converged_env.tools.discard("git")

    report = service.verify()

    assert report.deficiencies == []
    assert converged_env.calls == []
    assert "SECURITY NOTE" not in output.getvalue()


def test_planned_steps_are_reported_before_running(service, converged_env, output) -> None:
    converged_env.secrets.clear()
    converged_env.configmaps.clear()

    service.reconcile()

    text = output.getvalue()
    assert "Planned steps: sample-secrets, controller" in text
    assert text.index("Planned steps:") < text.index("[SUCCESS] sample-secrets:")


def _deployed(env, settings):
    key = f"{settings.ARGOCD_NAMESPACE}/{settings.APPLICATION_NAME}"
    env.custom_objects[key] = {
        "metadata": {"name": settings.APPLICATION_NAME, "namespace": settings.ARGOCD_NAMESPACE},
        "status": {"sync": {"status": "Synced"}, "health": {"status": "Healthy"}},
    }
    env.workloads[settings.DEMO_WORKLOAD_NAME] = [{"name": "DB_USERNAME", "value": "myuser"}]
    env.services[settings.DEMO_WORKLOAD_NAME] = 31234


def test_demo_status_reads_every_view(service, converged_env, settings, output) -> None:
    _deployed(converged_env, settings)

    status = service.demo_status()

    assert set(status.secrets) == {"myapp/api", "myapp/database"}
    assert status.secrets["myapp/database"]["username"] == "myuser"
    assert status.application.sync_status == "Synced"
    assert status.application.health_status == "Healthy"
    assert status.controller_pods == {f"{settings.ARGOCD_RELEASE}-server-0": "Running"}
    assert status.workload_env == [{"name": "DB_USERNAME", "value": "myuser"}]
    assert status.service_url == f"http://{converged_env.cluster_ip}:31234"
    assert status.errors == []
    assert converged_env.calls == []
    text = output.getvalue()
    assert "NodePort: 31234" in text
    assert "DB_USERNAME=myuser" in text


def test_demo_status_before_sync(service, converged_env, output) -> None:
    status = service.demo_status()

    assert status.application is None
    assert status.workload_env is None
    assert status.service_url is None
    assert status.errors == []
    assert "Argo CD may still be synchronizing" in output.getvalue()


def test_demo_status_is_best_effort(service, converged_env, settings) -> None:
    _deployed(converged_env, settings)
    converged_env.vault_running = False

    status = service.demo_status()

    assert status.secrets == {}
    assert status.application.sync_status == "Synced"
    assert len(status.errors) == 1
    assert "Vault secret list" in status.errors[0]


def test_rotate_secret_keeps_other_fields(service, converged_env, settings, output) -> None:
    rotation = service.rotate_secret("alice")

    assert rotation.previous_username == "myuser"
    assert rotation.username == "alice"
    expected = dict(settings.SAMPLE_SECRETS["myapp/database"], username="alice")
    assert rotation.secret == expected
    assert converged_env.secrets["myapp/database"] == expected
    assert converged_env.calls == ["vault.write_secret:myapp/database"]
    assert "updated with username: alice" in output.getvalue()


def test_rotate_secret_defaults_username(service, converged_env) -> None:
    assert service.rotate_secret().username == "demo-user"
    assert converged_env.secrets["myapp/database"]["username"] == "demo-user"


def test_rotate_secret_rejects_blank_username(service, converged_env) -> None:
    with pytest.raises(ReconcilerError, match="must not be empty"):
        service.rotate_secret("   ")
    assert converged_env.calls == []


def test_rotate_missing_secret_fails(service, converged_env) -> None:
    converged_env.secrets.clear()

    with pytest.raises(ReconcilerError, match="not found"):
        service.rotate_secret("alice")
    assert converged_env.calls == []


def test_controller_check_reports_its_failure_mode(service, converged_env, settings) -> None:
    converged_env.controller_ready = False
    assert service.probe().deficiencies == [T.CONTROLLER_NOT_READY]

    converged_env.namespaces.discard(settings.ARGOCD_NAMESPACE)
    result = next(r for r in service.probe().probe_results if r.check == "gitops-controller")
    assert result.tag == T.CONTROLLER_NOT_INSTALLED
    assert result.outcome == ProbeOutcome.DEFICIENT
