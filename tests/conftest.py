from __future__ import annotations

import io
import socket
from pathlib import Path

import pytest

from reconciler.core.config import Settings
from reconciler.services import artifacts
from reconciler.services.reconciliation_service import ReconciliationService
from reconciler.services.reporter import Reporter

from .fakes import Environment, fake_collaborators


@pytest.fixture(autouse=True)
def no_network(monkeypatch: pytest.MonkeyPatch) -> None:

    def _blocked(*_args: object, **_kwargs: object) -> socket.socket:
        raise RuntimeError("network disabled in unit tests")

    def _blocked_connect(*_args: object, **_kwargs: object) -> None:
        raise RuntimeError("network disabled in unit tests")

    monkeypatch.setattr(socket, "create_connection", _blocked)
    monkeypatch.setattr(socket.socket, "connect", _blocked_connect)


@pytest.fixture
def demo_dir(tmp_path: Path) -> Path:
    workdir = tmp_path / "demo"
    workdir.mkdir()
    (workdir / "vault.hclic").write_text("02MV4UU43BK5HGYYTOJZWFQMTMNNEWU33JLJ...")
    return workdir


@pytest.fixture
def settings(demo_dir: Path) -> Settings:
    return Settings(
        _env_file=None,
        WORKDIR=str(demo_dir),
        REPO_URL="https://github.com/example/vault-argo-cd-demo",
        VAULT_STARTUP_WAIT_SECONDS=0.01,
        POLL_INTERVAL_SECONDS=0.01,
    )


@pytest.fixture
def env() -> Environment:
    return Environment()


@pytest.fixture
def converged_env(env: Environment, settings: Settings) -> Environment:
    env.converge(settings)
    artifacts.write_sample_workload(settings)
    return env


@pytest.fixture
def output() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def service(settings: Settings, env: Environment, output: io.StringIO) -> ReconciliationService:
    return ReconciliationService(
        settings, collaborators=fake_collaborators(env), reporter=Reporter(settings, stream=output, color=False))
