"""
Pump inventory and maintenance endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session
from typing import Optional, List
import logging

from pumpdispatch.database import get_db
from pumpdispatch.schemas.pump import (
    PumpCreate, PumpResponse, MaintenanceUpdate,
    ScanResolveRequest, ScanResolveResponse, PumpMovementResponse,
)
from pumpdispatch.services.pump_service import PumpService
from pumpdispatch.auth.auth_handler import employee_required, pharmacy_staff_required
from pumpdispatch.utils.error_handler import CLIENT_ERRORS
from pumpdispatch.utils.rate_limit import limiter

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("/", response_model=PumpResponse, status_code=201)
@limiter.limit("30/minute")
async def register_pump(
    request: Request,
    pump_data: PumpCreate,
    current_user: dict = Depends(employee_required),
    db: Session = Depends(get_db)
):
    """Register a pump for the employee's pharmacy"""
    try:
        return await PumpService(db).register_pump(current_user, pump_data)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to register pump: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to register pump"
        )

@router.get("/", response_model=List[PumpResponse])
@limiter.limit("60/minute")
async def list_pumps(
    request: Request,
    selectable: bool = Query(False, description="Only pumps that can go on a new order"),
    current_user: dict = Depends(pharmacy_staff_required),
    db: Session = Depends(get_db)
):
    try:
        pump_service = PumpService(db)
        if selectable:
            return await pump_service.list_selectable_pumps(current_user["pharmacy_id"])
        return await pump_service.list_pumps(current_user["pharmacy_id"])
    except Exception as e:
        logger.error(f"Failed to list pumps: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve pumps"
        )

@router.post("/resolve-scan", response_model=ScanResolveResponse)
@limiter.limit("120/minute")
async def resolve_scan(
    request: Request,
    scan: ScanResolveRequest,
    current_user: dict = Depends(employee_required),
    db: Session = Depends(get_db)
):
    """Turn barcode, QR or typed input into selectable pumps"""
    try:
        resolved, not_found = await PumpService(db).resolve_scanned(current_user["pharmacy_id"], scan.raw)
        return ScanResolveResponse(resolved=resolved, not_found=not_found)
    except Exception as e:
        logger.error(f"Failed to resolve scanned input: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to resolve scanned input"
        )

@router.get("/movements", response_model=List[PumpMovementResponse])
@limiter.limit("30/minute")
async def list_movements(
    request: Request,
    pump_id: Optional[int] = Query(None, ge=1),
    limit: int = Query(100, ge=1, le=500),
    current_user: dict = Depends(pharmacy_staff_required),
    db: Session = Depends(get_db)
):
    """Pump movement history, newest first"""
    try:
        return await PumpService(db).list_movements(current_user["pharmacy_id"], pump_id=pump_id, limit=limit)
    except Exception as e:
        logger.error(f"Failed to list pump movements: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve pump movements"
        )

@router.get("/maintenance", response_model=List[PumpResponse])
@limiter.limit("30/minute")
async def list_maintenance_due(
    request: Request,
    current_user: dict = Depends(pharmacy_staff_required),
    db: Session = Depends(get_db)
):
    try:
        return await PumpService(db).list_maintenance_due(current_user["pharmacy_id"])
    except Exception as e:
        logger.error(f"Failed to list maintenance pumps: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve maintenance pumps"
        )

@router.put("/{pump_id}/maintenance", response_model=PumpResponse)
@limiter.limit("30/minute")
async def save_maintenance(
    request: Request,
    pump_id: int,
    checklist: MaintenanceUpdate,
    current_user: dict = Depends(employee_required),
    db: Session = Depends(get_db)
):
    """Save the maintenance checklist; a complete checklist makes the pump available"""
    try:
        return await PumpService(db).save_maintenance(current_user["pharmacy_id"], pump_id, checklist)
    except CLIENT_ERRORS:
        raise
    except Exception as e:
        logger.error(f"Failed to save maintenance for pump {pump_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update maintenance"
        )

@router.delete("/{pump_id}")
@limiter.limit("10/minute")
async def delete_pump(
    request: Request,
    pump_id: int,
    current_user: dict = Depends(employee_required),
    db: Session = Depends(get_db)
):
    try:
        await PumpService(db).delete_pump(current_user["pharmacy_id"], pump_id)
        return {"message": "Pump deleted successfully"}
    except CLIENT_ERRORS:
        raise
    except Exception as e:
        logger.error(f"Failed to delete pump {pump_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete pump"
        )
