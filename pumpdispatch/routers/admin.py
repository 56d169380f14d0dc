"""
Admin endpoints: pharmacy activation, maintenance reconciliation and the activity log
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session
from typing import Optional, List
import logging

from pumpdispatch.database import get_db
from pumpdispatch.schemas.identity import PharmacyResponse, PharmacyStatusUpdate
from pumpdispatch.schemas.pump import ReconcileResponse
from pumpdispatch.services.identity_service import IdentityService
from pumpdispatch.services.pump_service import PumpService
from pumpdispatch.services.activity_logger import ActivityLogger
from pumpdispatch.auth.auth_handler import admin_required
from pumpdispatch.utils.rate_limit import limiter

logger = logging.getLogger(__name__)

router = APIRouter()

@router.get("/pharmacies", response_model=List[PharmacyResponse])
@limiter.limit("30/minute")
async def list_pharmacies(
    request: Request,
    current_user: dict = Depends(admin_required),
    db: Session = Depends(get_db)
):
    """All registered pharmacies, newest first"""
    try:
        return await IdentityService(db).list_pharmacies()
    except Exception as e:
        logger.error(f"Failed to list pharmacies: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve pharmacies"
        )

@router.patch("/pharmacies/{pharmacy_id}", response_model=PharmacyResponse)
@limiter.limit("20/minute")
async def set_pharmacy_status(
    request: Request,
    pharmacy_id: int,
    update: PharmacyStatusUpdate,
    current_user: dict = Depends(admin_required),
    db: Session = Depends(get_db)
):
    """Activate or deactivate a pharmacy"""
    try:
        pharmacy = await IdentityService(db).set_pharmacy_active(pharmacy_id, update.active)
        logger.info(f"Admin set pharmacy {pharmacy_id} active={update.active}")
        return pharmacy

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to update pharmacy {pharmacy_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update pharmacy"
        )

@router.post("/maintenance/reconcile", response_model=ReconcileResponse)
@limiter.limit("5/minute")
async def reconcile_maintenance(
    request: Request,
    dry_run: bool = Query(False, description="Report what would change without writing"),
    pharmacy_id: Optional[int] = Query(None, ge=1, description="Only pumps of this pharmacy"),
    limit: Optional[int] = Query(None, ge=1, description="Scan at most this many pumps"),
    current_user: dict = Depends(admin_required),
    db: Session = Depends(get_db)
):
    """Release fully maintained pumps that are still flagged for maintenance"""
    try:
        return await PumpService(db).reconcile_maintenance(pharmacy_id=pharmacy_id, limit=limit, dry_run=dry_run)
    except Exception as e:
        logger.error(f"Maintenance reconciliation failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Maintenance reconciliation failed"
        )

@router.get("/activity")
@limiter.limit("20/minute")
async def recent_activity(
    request: Request,
    limit: int = Query(100, ge=1, le=500),
    failures_only: bool = Query(False, description="Only entries with a 4xx or 5xx status"),
    current_user: dict = Depends(admin_required),
    db: Session = Depends(get_db)
):
    """Recent PIN logins and failed requests"""
    try:
        return [entry.to_dict() for entry in ActivityLogger(db).recent(limit, failures_only=failures_only)]
    except Exception as e:
        logger.error(f"Failed to read activity log: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve activity"
        )
