"""
Operational endpoints
"""
from fastapi import APIRouter, Depends

from api.dependencies import get_expiry_reconciler
from application.dtos.orders import ExpirySweepResponse
from application.services.expiry_service import ExpiryReconciler
from core.response import Response as ApiResponse, success_response


router = APIRouter(prefix="/admin", tags=["Admin"])


@router.post("/orders/expire", summary="Run expiry sweep", response_model=ApiResponse[ExpirySweepResponse])
async def expire_orders(reconciler: ExpiryReconciler = Depends(get_expiry_reconciler)):
    """Cancel every pending order whose claim window has passed."""
    result = await reconciler.sweep()
    data = ExpirySweepResponse(cancelled_count=result.cancelled_count, failed_count=result.failed_count)
    return success_response(data=data, message="Expiry sweep completed")
