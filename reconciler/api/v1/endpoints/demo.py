# reconciler/api/v1/endpoints/demo.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from reconciler.api.v1.endpoints.reconcile import get_reconciliation_service
from reconciler.core.exceptions import ReconcilerError
from reconciler.models.remediation import DemoStatus, SecretRotation
from reconciler.services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)
router = APIRouter()


class RotateRequest(BaseModel):
    username: Optional[str] = Field(
        None, min_length=1, description="New username; the DEFAULT_ROTATED_USERNAME setting when omitted")


@router.get(
    "/status",
    response_model=DemoStatus,
    summary="Show the running demo",
    description="Vault secrets under the demo prefix, the Application's sync and health, Argo CD pods, "
                "the deployed workload's environment and its NodePort URL. Read-only.",
)
def demo_status(service: ReconciliationService = Depends(get_reconciliation_service)) -> DemoStatus:
    return service.demo_status()


@router.post(
    "/rotate",
    response_model=SecretRotation,
    summary="Rotate the demo database username",
)
def rotate_secret(
    request: Optional[RotateRequest] = None,
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> SecretRotation:
    username = request.username if request else None
    try:
        return service.rotate_secret(username)
    except ReconcilerError as e:
        logger.warning(f"Secret rotation failed: {e}")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
