from __future__ import annotations

import pytest

from reconciler.core.exceptions import RemediationError
from reconciler.models.probe import DeficiencyTag as T
from reconciler.models.remediation import RemediationStep, StepStatus
from reconciler.services.remediation_steps import RemediationActions, build_steps
from reconciler.services.remediator import Remediator, resolve_order

from .fakes import Environment, fake_collaborators


def _step(name, tags=(T.TOOLS_MISSING,), requires=(), action=None, log=None):
    def default_action():
        if log is not None:
            log.append(name)
        return f"{name} done"

    return RemediationStep(name, name, tuple(tags), action or default_action, requires=tuple(requires))


def test_declaration_order_is_kept_when_valid() -> None:
    steps = [_step("a"), _step("b", requires=["a"]), _step("c"), _step("d", requires=["b", "c"])]
    assert [s.name for s in resolve_order(steps)] == ["a", "b", "c", "d"]


def test_prerequisites_move_ahead_of_dependents() -> None:
    steps = [_step("binding", requires=["controller"]), _step("controller", requires=["cluster"]), _step("cluster")]
    assert [s.name for s in resolve_order(steps)] == ["cluster", "controller", "binding"]


def test_cycle_is_rejected() -> None:
    steps = [_step("a", requires=["b"]), _step("b", requires=["a"])]
    with pytest.raises(ValueError, match="cycle"):
        resolve_order(steps)


def test_unknown_prerequisite_is_rejected() -> None:
    with pytest.raises(ValueError, match="unknown step"):
        resolve_order([_step("a", requires=["missing"])])


def test_duplicate_step_is_rejected() -> None:
    with pytest.raises(ValueError, match="Duplicate"):
        resolve_order([_step("a"), _step("a")])


def test_only_triggered_steps_run() -> None:
    log = []
    remediator = Remediator([
        _step("tools", tags=[T.TOOLS_MISSING], log=log),
        _step("cluster", tags=[T.CLUSTER_UNAVAILABLE], log=log),
        _step("controller", tags=[T.CONTROLLER_NOT_INSTALLED, T.PLUGIN_CONFIG_MISSING], log=log),
    ])

    outcomes = remediator.run(frozenset({T.PLUGIN_CONFIG_MISSING}))

    assert log == ["controller"]
    assert [o.status for o in outcomes] == [StepStatus.SKIPPED, StepStatus.SKIPPED, StepStatus.REMEDIATED]
    assert outcomes[2].triggered_by == [T.PLUGIN_CONFIG_MISSING]
    assert outcomes[2].message == "controller done"


def test_empty_deficiency_set_runs_nothing() -> None:
    log = []
    remediator = Remediator([_step("a", log=log), _step("b", log=log)])

    assert remediator.plan(frozenset()) == []
    assert all(o.status == StepStatus.SKIPPED for o in remediator.run(frozenset()))
    assert log == []


def test_failure_aborts_with_partial_outcomes() -> None:
    log = []

    def explode():
        raise RuntimeError("helm timed out")

    seen = []
    remediator = Remediator([
        _step("first", log=log),
        _step("second", action=explode),
        _step("third", log=log),
    ], on_outcome=seen.append)

    with pytest.raises(RemediationError) as excinfo:
        remediator.run(frozenset({T.TOOLS_MISSING}))

    assert excinfo.value.step == "second"
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert [o.step for o in excinfo.value.outcomes] == ["first", "second"]
    assert excinfo.value.outcomes[1].status == StepStatus.FAILED
    assert excinfo.value.outcomes[1].error == "helm timed out"
    assert log == ["first"]
    assert seen == excinfo.value.outcomes


def test_demo_graph_order(settings) -> None:
    actions = RemediationActions(settings, fake_collaborators(Environment()))
    remediator = Remediator(build_steps(actions))

    names = [step.name for step in remediator.steps]
    for before, after in [
        ("container-runtime", "secrets-store"),
        ("container-runtime", "cluster"),
        ("tools", "cluster"),
        ("secrets-store", "auth-method"),
        ("secrets-store", "sample-secrets"),
        ("cluster", "controller"),
        ("controller", "auth-binding"),
        ("auth-method", "auth-binding"),
        ("app-manifests", "publish-artifacts"),
        ("repository", "publish-artifacts"),
    ]:
        assert names.index(before) < names.index(after)


def test_unreachable_store_also_enables_auth_method(settings) -> None:
    actions = RemediationActions(settings, fake_collaborators(Environment()))
    remediator = Remediator(build_steps(actions))

    planned = [step.name for step in remediator.plan(frozenset({T.SECRETS_STORE_UNREACHABLE}))]

    assert planned == ["secrets-store", "auth-method"]


def test_network_tag_plans_nothing(settings) -> None:
    actions = RemediationActions(settings, fake_collaborators(Environment()))
    remediator = Remediator(build_steps(actions))

    assert remediator.plan(frozenset({T.NETWORK_UNREACHABLE})) == []
