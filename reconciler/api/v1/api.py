# reconciler/api/v1/api.py
from fastapi import APIRouter
from reconciler.api.v1.endpoints import demo, reconcile

api_router = APIRouter()

# Include routers from endpoint modules
api_router.include_router(reconcile.router, prefix="/reconcile", tags=["Reconcile"])
api_router.include_router(demo.router, prefix="/demo", tags=["Demo"])
