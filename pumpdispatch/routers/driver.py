"""
Driver dashboard endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session
from typing import List
import logging

from pumpdispatch.database import get_db
from pumpdispatch.schemas.order import (
    OrderResponse, PickupConfirm, DeliveryConfirm, LocationUpdate,
    ConnectPharmacyRequest, ConnectPharmacyResult, ConnectedPharmacyResponse,
)
from pumpdispatch.services.driver_service import DriverService
from pumpdispatch.services.storage_service import StorageService, get_storage
from pumpdispatch.auth.auth_handler import driver_required
from pumpdispatch.utils.error_handler import CLIENT_ERRORS, get_client_ip
from pumpdispatch.utils.rate_limit import limiter

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("/pharmacies/connect", response_model=ConnectPharmacyResult)
@limiter.limit("5/minute")
async def connect_pharmacy(
    request: Request,
    connect: ConnectPharmacyRequest,
    current_user: dict = Depends(driver_required),
    db: Session = Depends(get_db)
):
    """Connect to a pharmacy with its PIN"""
    try:
        driver_service = DriverService(db)
        already_connected, pharmacy = await driver_service.connect_pharmacy(current_user["id"], connect.pin)
        message = "Already connected to this pharmacy." if already_connected else "Pharmacy connected successfully."
        return ConnectPharmacyResult(
            message=message,
            already_connected=already_connected,
            pharmacies=await driver_service.connected_pharmacies(current_user["id"])
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to connect driver {current_user['id']} to pharmacy: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to connect pharmacy"
        )

@router.get("/pharmacies", response_model=List[ConnectedPharmacyResponse])
@limiter.limit("30/minute")
async def connected_pharmacies(
    request: Request,
    current_user: dict = Depends(driver_required),
    db: Session = Depends(get_db)
):
    try:
        return await DriverService(db).connected_pharmacies(current_user["id"])
    except Exception as e:
        logger.error(f"Failed to list pharmacies of driver {current_user['id']}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve pharmacies"
        )

@router.get("/orders/available", response_model=List[OrderResponse])
@limiter.limit("60/minute")
async def available_orders(
    request: Request,
    current_user: dict = Depends(driver_required),
    db: Session = Depends(get_db)
):
    """Pending orders of connected pharmacies"""
    try:
        return await DriverService(db).available_orders(current_user["id"])
    except Exception as e:
        logger.error(f"Failed to list available orders: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve orders"
        )

@router.get("/orders/active", response_model=List[OrderResponse])
@limiter.limit("60/minute")
async def active_orders(
    request: Request,
    current_user: dict = Depends(driver_required),
    db: Session = Depends(get_db)
):
    """The driver's orders that are not yet delivered"""
    try:
        return await DriverService(db).active_orders(current_user["id"])
    except Exception as e:
        logger.error(f"Failed to list active orders: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve orders"
        )

@router.post("/orders/{order_id}/accept", response_model=OrderResponse)
@limiter.limit("30/minute")
async def accept_order(
    request: Request,
    order_id: int,
    current_user: dict = Depends(driver_required),
    db: Session = Depends(get_db)
):
    try:
        return await DriverService(db).accept_order(current_user, order_id)
    except CLIENT_ERRORS:
        raise
    except Exception as e:
        logger.error(f"Failed to accept order {order_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to accept order"
        )

@router.post("/orders/{order_id}/depart", response_model=OrderResponse)
@limiter.limit("30/minute")
async def start_to_pharmacy(
    request: Request,
    order_id: int,
    current_user: dict = Depends(driver_required),
    db: Session = Depends(get_db)
):
    """Driver is on the way to the pharmacy"""
    try:
        return await DriverService(db).start_to_pharmacy(current_user, order_id)
    except CLIENT_ERRORS:
        raise
    except Exception as e:
        logger.error(f"Failed to start order {order_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update order"
        )

@router.post("/orders/{order_id}/pickup", response_model=OrderResponse)
@limiter.limit("20/minute")
async def confirm_pickup(
    request: Request,
    order_id: int,
    pickup: PickupConfirm,
    current_user: dict = Depends(driver_required),
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage)
):
    """Confirm pickup with pharmacy staff and driver signatures"""
    try:
        return await DriverService(db).confirm_pickup(current_user, order_id, pickup, storage)
    except CLIENT_ERRORS:
        raise
    except Exception as e:
        logger.error(f"Failed to confirm pickup for order {order_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to confirm pickup"
        )

@router.post("/orders/{order_id}/deliver", response_model=OrderResponse)
@limiter.limit("20/minute")
async def complete_delivery(
    request: Request,
    order_id: int,
    delivery: DeliveryConfirm,
    current_user: dict = Depends(driver_required),
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage)
):
    """Complete the delivery with signatures, location and the caller's IP"""
    try:
        return await DriverService(db).complete_delivery(
            current_user, order_id, delivery, get_client_ip(request), storage
        )
    except CLIENT_ERRORS:
        raise
    except Exception as e:
        logger.error(f"Failed to complete delivery for order {order_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to complete delivery"
        )

@router.post("/location")
@limiter.limit("120/minute")
async def update_location(
    request: Request,
    location: LocationUpdate,
    current_user: dict = Depends(driver_required),
    db: Session = Depends(get_db)
):
    """Location ping used for pharmacy-side tracking"""
    try:
        driver = await DriverService(db).update_location(current_user["id"], location.latitude, location.longitude)
        return {
            "latitude": driver.last_latitude,
            "longitude": driver.last_longitude,
            "updated_at": driver.last_location_at.isoformat() if driver.last_location_at else None,
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to update location of driver {current_user['id']}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update location"
        )
