"""
Driver tracking endpoint for pharmacy staff
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session
from typing import List
import logging

from pumpdispatch.database import get_db
from pumpdispatch.schemas.order import DriverTrackingEntry
from pumpdispatch.services.driver_service import DriverService
from pumpdispatch.auth.auth_handler import pharmacy_staff_required
from pumpdispatch.utils.rate_limit import limiter

logger = logging.getLogger(__name__)

router = APIRouter()

@router.get("/drivers", response_model=List[DriverTrackingEntry])
@limiter.limit("60/minute")
async def driver_tracking(
    request: Request,
    current_user: dict = Depends(pharmacy_staff_required),
    db: Session = Depends(get_db)
):
    """Drivers currently working on the pharmacy's orders, with their last position"""
    try:
        return await DriverService(db).driver_tracking(current_user["pharmacy_id"])
    except Exception as e:
        logger.error(f"Failed to load driver tracking: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve driver tracking"
        )
