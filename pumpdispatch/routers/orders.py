"""
Order management endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session
from typing import Optional, List
import logging

from pumpdispatch.database import get_db
from pumpdispatch.schemas.order import (
    OrderCreate, OrderResponse, OrderCreatedResponse, OrderListResponse,
    DeliveryBackupResponse, ShareDeliveryEmail,
)
from pumpdispatch.services.order_service import OrderService
from pumpdispatch.services.email_service import EmailService, get_email_service
from pumpdispatch.auth.auth_handler import employee_required, pharmacy_staff_required
from pumpdispatch.utils.error_handler import CLIENT_ERRORS
from pumpdispatch.utils.rate_limit import limiter

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("/", response_model=OrderCreatedResponse, status_code=201)
@limiter.limit("20/minute")
async def create_order(
    request: Request,
    order_data: OrderCreate,
    current_user: dict = Depends(employee_required),
    db: Session = Depends(get_db)
):
    """Create a delivery order and reserve its pumps"""
    try:
        order = await OrderService(db).create_order(current_user, order_data)
        return OrderCreatedResponse(
            order=order,
            message=f"Order created with {len(order.pumps)} pump(s)"
        )

    except CLIENT_ERRORS:
        raise
    except Exception as e:
        logger.error(f"Failed to create order: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create order"
        )

@router.get("/", response_model=OrderListResponse)
@limiter.limit("60/minute")
async def get_orders(
    request: Request,
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(10, ge=1, le=100, description="Items per page"),
    status_filter: Optional[str] = Query(None, alias="status", description="Filter by status"),
    current_user: dict = Depends(pharmacy_staff_required),
    db: Session = Depends(get_db)
):
    """Get paginated list of the pharmacy's orders, newest first"""
    try:
        result = await OrderService(db).list_orders(
            current_user["pharmacy_id"], page=page, page_size=page_size, status_filter=status_filter
        )
        return OrderListResponse(**result)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to get orders: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve orders"
        )

@router.get("/deliveries/backups", response_model=List[DeliveryBackupResponse])
@limiter.limit("30/minute")
async def delivery_backups(
    request: Request,
    limit: int = Query(10, ge=1, le=100),
    current_user: dict = Depends(pharmacy_staff_required),
    db: Session = Depends(get_db)
):
    """Latest delivered orders with a signed delivery PDF"""
    try:
        return await OrderService(db).delivery_backups(current_user["pharmacy_id"], limit=limit)
    except Exception as e:
        logger.error(f"Failed to load delivery backups: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve delivery backups"
        )

@router.get("/{order_id}", response_model=OrderResponse)
@limiter.limit("60/minute")
async def get_order(
    request: Request,
    order_id: int,
    current_user: dict = Depends(pharmacy_staff_required),
    db: Session = Depends(get_db)
):
    """Get a specific order by ID"""
    try:
        return OrderService(db).get_order(current_user["pharmacy_id"], order_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to get order {order_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve order"
        )

@router.post("/{order_id}/cancel", response_model=OrderResponse)
@limiter.limit("20/minute")
async def cancel_order(
    request: Request,
    order_id: int,
    current_user: dict = Depends(employee_required),
    db: Session = Depends(get_db)
):
    """Cancel an order that has not been picked up; its pumps become available"""
    try:
        return await OrderService(db).cancel_order(current_user, order_id)
    except CLIENT_ERRORS:
        raise
    except Exception as e:
        logger.error(f"Failed to cancel order {order_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to cancel order"
        )

@router.post("/{order_id}/share")
@limiter.limit("10/minute")
async def share_delivery_pdf(
    request: Request,
    order_id: int,
    share: ShareDeliveryEmail,
    current_user: dict = Depends(pharmacy_staff_required),
    db: Session = Depends(get_db),
    email_service: EmailService = Depends(get_email_service)
):
    """Email the delivery PDF link"""
    try:
        await OrderService(db).share_delivery_pdf(current_user["pharmacy_id"], order_id, share.to, email_service)
        return {"message": "Email sent."}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to share delivery PDF of order {order_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send email"
        )
