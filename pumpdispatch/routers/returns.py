"""
Pump return endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session
from typing import Optional
import logging

from pumpdispatch.database import get_db
from pumpdispatch.schemas.order import OrderResponse, ReturnsListResponse
from pumpdispatch.services.returns_service import ReturnsService
from pumpdispatch.auth.auth_handler import employee_required, pharmacy_staff_required
from pumpdispatch.utils.error_handler import CLIENT_ERRORS
from pumpdispatch.utils.rate_limit import limiter

logger = logging.getLogger(__name__)

router = APIRouter()

@router.get("/", response_model=ReturnsListResponse)
@limiter.limit("60/minute")
async def list_returns(
    request: Request,
    filter_by: str = Query("all", alias="filter", description="all, pending or returned"),
    search: Optional[str] = Query(None, description="Pump number or scanner input"),
    current_user: dict = Depends(pharmacy_staff_required),
    db: Session = Depends(get_db)
):
    try:
        result = await ReturnsService(db).list_returns(current_user["pharmacy_id"], filter_by=filter_by, search=search)
        return ReturnsListResponse(**result)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to list returns: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve returns"
        )

@router.post("/{order_id}/pumps/{pump_number}/confirm", response_model=OrderResponse)
@limiter.limit("30/minute")
async def confirm_return(
    request: Request,
    order_id: int,
    pump_number: str,
    current_user: dict = Depends(employee_required),
    db: Session = Depends(get_db)
):
    """Pump is back at the pharmacy; it goes to maintenance"""
    try:
        return await ReturnsService(db).confirm_return(current_user, order_id, pump_number)
    except CLIENT_ERRORS:
        raise
    except Exception as e:
        logger.error(f"Failed to confirm return of {pump_number} on order {order_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to confirm return."
        )
