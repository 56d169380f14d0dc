"""
Customer endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session
from typing import List
import logging

from pumpdispatch.database import get_db
from pumpdispatch.schemas.customer import (
    CustomerCreate, CustomerResponse, CustomerPumpsResponse, ReturnReminderUpdate,
)
from pumpdispatch.services.customer_service import CustomerService
from pumpdispatch.services.order_service import OrderService
from pumpdispatch.auth.auth_handler import employee_required, pharmacy_staff_required
from pumpdispatch.utils.rate_limit import limiter

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("/", response_model=CustomerResponse, status_code=201)
@limiter.limit("30/minute")
async def register_customer(
    request: Request,
    customer_data: CustomerCreate,
    current_user: dict = Depends(employee_required),
    db: Session = Depends(get_db)
):
    """Register a customer for the employee's pharmacy"""
    try:
        return await CustomerService(db).register_customer(current_user, customer_data)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to register customer: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to register customer"
        )

@router.get("/", response_model=List[CustomerResponse])
@limiter.limit("60/minute")
async def list_customers(
    request: Request,
    current_user: dict = Depends(pharmacy_staff_required),
    db: Session = Depends(get_db)
):
    try:
        return await CustomerService(db).list_customers(current_user["pharmacy_id"])
    except Exception as e:
        logger.error(f"Failed to list customers: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve customers"
        )

@router.get("/pumps", response_model=List[CustomerPumpsResponse])
@limiter.limit("30/minute")
async def customer_pump_overview(
    request: Request,
    current_user: dict = Depends(pharmacy_staff_required),
    db: Session = Depends(get_db)
):
    """Pumps each customer has had, from order history"""
    try:
        return await CustomerService(db).customer_pump_overview(current_user["pharmacy_id"])
    except Exception as e:
        logger.error(f"Failed to build customer pump overview: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve customer pumps"
        )

@router.get("/{customer_id}/previous-pumps", response_model=List[str])
@limiter.limit("60/minute")
async def customer_previous_pumps(
    request: Request,
    customer_id: int,
    current_user: dict = Depends(employee_required),
    db: Session = Depends(get_db)
):
    """Pump numbers the customer already has, shown before a new order is created"""
    try:
        CustomerService(db).get_customer(current_user["pharmacy_id"], customer_id)
        return OrderService(db).customer_previous_pumps(current_user["pharmacy_id"], customer_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to load previous pumps of customer {customer_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve previous pumps"
        )

@router.put("/{customer_id}/return-reminder", response_model=CustomerResponse)
@limiter.limit("30/minute")
async def save_return_reminder(
    request: Request,
    customer_id: int,
    reminder: ReturnReminderUpdate,
    current_user: dict = Depends(employee_required),
    db: Session = Depends(get_db)
):
    """Save the return reminder note; an empty note clears it"""
    try:
        return await CustomerService(db).save_return_reminder(current_user, customer_id, reminder.note)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to save return reminder for customer {customer_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save return reminder"
        )
