# reconciler/api/v1/endpoints/reconcile.py
import logging
import time
from fastapi import APIRouter, HTTPException, Request, status, Depends
from reconciler.core.exceptions import PreconditionError, ReconcilerError
from reconciler.models.remediation import ProbeReport, ReconcileReport, StepStatus
from reconciler.services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)
router = APIRouter()


def get_reconciliation_service(request: Request) -> ReconciliationService:
    """Dependency returning the service built at startup."""
    service = getattr(request.app.state, "reconciliation_service", None)
    if service is None:
        logger.critical("Reconciliation service not initialized.")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Reconciliation service is not ready.",
        )
    return service


@router.get(
    "/probe",
    response_model=ProbeReport,
    summary="Probe the demo environment",
    description="Runs every read-only readiness check and returns the deficiency set. Performs no changes.",
)
def probe_environment(service: ReconciliationService = Depends(get_reconciliation_service)) -> ProbeReport:
    report = service.probe()
    logger.info(f"Probe finished: converged={report.converged}, deficiencies={[t.value for t in report.deficiencies]}")
    return report


@router.post(
    "",
    response_model=ReconcileReport,
    summary="Reconcile the demo environment",
    description="""
Probes every dependency, then runs only the remediation steps gated by the deficiencies found,
in dependency order. A failing step aborts the run; the failure is reported in the body
(`failed_step`, `error`) and a later call resumes from where it stopped.
    """,
)
def reconcile_environment(service: ReconciliationService = Depends(get_reconciliation_service)) -> ReconcileReport:
    start_time_ns = time.perf_counter_ns()
    try:
        report = service.reconcile()
    except PreconditionError as e:
        raise HTTPException(status_code=status.HTTP_412_PRECONDITION_FAILED, detail=str(e))

    duration_ms = (time.perf_counter_ns() - start_time_ns) / 1_000_000
    logger.info(
        f"Reconciliation finished in {duration_ms:.2f} ms. Converged={report.converged}, "
        f"Steps_Run={sum(1 for s in report.steps if s.status != StepStatus.SKIPPED)}, Failed_Step={report.failed_step}"
    )
    return report


@router.post(
    "/application",
    summary="Apply the generated Argo CD Application",
)
def deploy_application(service: ReconciliationService = Depends(get_reconciliation_service)):
    try:
        message = service.deploy_application()
    except ReconcilerError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return {"message": message}
