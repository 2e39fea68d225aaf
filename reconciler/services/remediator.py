# reconciler/services/remediator.py
import heapq
import logging
from graphlib import CycleError, TopologicalSorter
from typing import Callable, List, Optional, Sequence

from reconciler.core.exceptions import RemediationError
from reconciler.models.probe import DeficiencySet
from reconciler.models.remediation import RemediationStep, StepOutcome, StepStatus

logger = logging.getLogger(__name__)


def resolve_order(steps: Sequence[RemediationStep]) -> List[RemediationStep]:
    """Topologically orders ``steps`` by their prerequisites.

    Among steps whose prerequisites are all placed, declaration order wins, so a
    declared list that is already a valid order comes back unchanged.
    """
    by_name = {}
    for step in steps:
        if step.name in by_name:
            raise ValueError(f"Duplicate remediation step '{step.name}'")
        by_name[step.name] = step
    index = {step.name: i for i, step in enumerate(steps)}

    sorter = TopologicalSorter()
    for step in steps:
        unknown = [name for name in step.requires if name not in by_name]
        if unknown:
            raise ValueError(f"Step '{step.name}' requires unknown step(s): {', '.join(unknown)}")
        sorter.add(step.name, *step.requires)
    try:
        sorter.prepare()
    except CycleError as e:
        raise ValueError(f"Remediation steps form a cycle: {' -> '.join(e.args[1])}") from e

    ordered = []
    ready = [(index[name], name) for name in sorter.get_ready()]
    heapq.heapify(ready)
    while ready:
        _, name = heapq.heappop(ready)
        ordered.append(by_name[name])
        sorter.done(name)
        for next_name in sorter.get_ready():
            heapq.heappush(ready, (index[next_name], next_name))
    return ordered


class Remediator:
    """Runs the gated remediation steps in dependency order, stopping at the first failure."""

    def __init__(self, steps: Sequence[RemediationStep],
                 on_outcome: Optional[Callable[[StepOutcome], None]] = None):
        self.steps = resolve_order(steps)
        self.on_outcome = on_outcome

    def plan(self, deficiencies: DeficiencySet) -> List[RemediationStep]:
        """Steps that would run for ``deficiencies``, in execution order."""
        return [step for step in self.steps if step.is_triggered(deficiencies)]

    def run(self, deficiencies: DeficiencySet) -> List[StepOutcome]:
        """Executes triggered steps. Raises RemediationError (with ``outcomes`` attached) on failure."""
        outcomes: List[StepOutcome] = []
        for step in self.steps:
            triggered_by = [tag for tag in step.tags if tag in deficiencies]
            if not triggered_by:
                logger.debug(f"Skipping step '{step.name}': already satisfied.")
                self._record(outcomes, StepOutcome(step=step.name, status=StepStatus.SKIPPED))
                continue

            logger.info(f"Running step '{step.name}' ({step.description}); "
                        f"triggered by: {', '.join(t.value for t in triggered_by)}")
            try:
                message = step.action()
            except Exception as e:
                logger.error(f"Step '{step.name}' failed: {e}", exc_info=True)
                self._record(outcomes, StepOutcome(
                    step=step.name, status=StepStatus.FAILED, triggered_by=triggered_by, error=str(e)))
                raise RemediationError(step.name, str(e), outcomes) from e
            self._record(outcomes, StepOutcome(
                step=step.name, status=StepStatus.REMEDIATED, triggered_by=triggered_by, message=message))
        return outcomes

    def _record(self, outcomes: List[StepOutcome], outcome: StepOutcome):
        outcomes.append(outcome)
        if self.on_outcome is not None:
            self.on_outcome(outcome)
