from __future__ import annotations

import io

import pytest
from pydantic import ValidationError

from reconciler.core.config import Settings
from reconciler.models.probe import DeficiencyTag as T
from reconciler.models.probe import ProbeOutcome, ProbeResult
from reconciler.models.remediation import OperatorInfo, ReconcileReport, StepOutcome, StepStatus
from reconciler.services.reporter import Reporter


def test_settings_defaults() -> None:
    settings = Settings(_env_file=None)
    assert settings.VAULT_ADDR == "http://127.0.0.1:8200"
    assert settings.VAULT_TOKEN.get_secret_value() == "root"
    assert "root" not in repr(settings.VAULT_TOKEN)
    assert settings.manifest_path == "demo-app/manifests/deployment.yaml"
    assert settings.kv_data_path("myapp/api") == "secret/data/myapp/api"
    assert set(settings.SAMPLE_SECRETS) == {"myapp/database", "myapp/api"}


def test_settings_read_environment(monkeypatch) -> None:
    monkeypatch.setenv("VAULT_ADDR", "http://vault.local:8200")
    monkeypatch.setenv("REQUIRED_TOOLS", '["kubectl"]')
    settings = Settings(_env_file=None)
    assert settings.VAULT_ADDR == "http://vault.local:8200"
    assert settings.REQUIRED_TOOLS == ["kubectl"]


@pytest.mark.parametrize("field", ["POLL_INTERVAL_SECONDS", "CONTROLLER_READY_TIMEOUT_SECONDS"])
def test_non_positive_timeouts_are_rejected(field) -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: 0})


def test_empty_tool_list_is_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, REQUIRED_TOOLS=[])


def _reporter(settings, color=False):
    stream = io.StringIO()
    return Reporter(settings, stream=stream, color=color), stream


def test_probe_results_categories(settings) -> None:
    reporter, stream = _reporter(settings)
    reporter.probe_results([
        ProbeResult(check="cluster", tag=T.CLUSTER_UNAVAILABLE, outcome=ProbeOutcome.SATISFIED, detail="ok"),
        ProbeResult(check="tools", tag=T.TOOLS_MISSING, outcome=ProbeOutcome.DEFICIENT, detail="Missing tools: helm"),
        ProbeResult(check="vault", tag=T.SECRETS_STORE_UNREACHABLE, outcome=ProbeOutcome.ERROR, detail="boom"),
    ])
    lines = stream.getvalue().splitlines()
    assert lines == [
        "[CHECK] cluster",
        "[SUCCESS] ok",
        "[CHECK] tools",
        "[WARNING] Missing tools: helm",
        "[CHECK] vault",
        "[ERROR] Probe failed (boom); treating as not ready",
    ]


def test_color_only_when_enabled(settings) -> None:
    plain, plain_stream = _reporter(settings, color=False)
    colored, colored_stream = _reporter(settings, color=True)
    plain.success("done")
    colored.success("done")
    assert "\033[" not in plain_stream.getvalue()
    assert colored_stream.getvalue().startswith("\033[0;32m[SUCCESS]")


def test_color_defaults_off_for_non_tty(settings) -> None:
    assert Reporter(settings, stream=io.StringIO()).color is False


def test_skipped_steps_are_silent(settings) -> None:
    reporter, stream = _reporter(settings)
    reporter.step(StepOutcome(step="tools", status=StepStatus.SKIPPED))
    reporter.step(StepOutcome(step="cluster", status=StepStatus.REMEDIATED, message="started"))
    assert stream.getvalue() == "[SUCCESS] cluster: started\n"


def test_failed_report_names_step(settings) -> None:
    reporter, stream = _reporter(settings)
    reporter.failed(ReconcileReport(converged=False, failed_step="controller", error="Step 'controller' failed: x"))
    text = stream.getvalue()
    assert "[ERROR] Reconciliation aborted at step 'controller'" in text
    assert "completed steps will be skipped" in text


def test_next_steps_include_credentials_when_known(settings) -> None:
    reporter, stream = _reporter(settings)
    reporter.converged(OperatorInfo(ui_endpoint="https://localhost:8080", admin_password="pw"))
    text = stream.getvalue()
    assert "kubectl apply -f vault-demo-app.yaml" in text
    assert "Username: admin" in text
    assert "Password: pw" in text

    reporter, stream = _reporter(settings)
    reporter.converged(OperatorInfo())
    assert "Password:" not in stream.getvalue()
