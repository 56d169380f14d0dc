"""
Authentication endpoints: PIN login and self-service registration
"""

from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.orm import Session
from datetime import timedelta
import logging

from pumpdispatch.config import settings
from pumpdispatch.database import get_db
from pumpdispatch.schemas.identity import (
    PinLogin, TokenResponse, CurrentUserResponse,
    PharmacyCreate, PharmacyRegistered,
    EmployeeCreate, EmployeeRegistered,
    DriverCreate, DriverRegistered,
    SignatureUpload, SignatureResponse,
)
from pumpdispatch.services.identity_service import IdentityService
from pumpdispatch.services.activity_logger import ActivityLogger
from pumpdispatch.services.email_service import EmailService, get_email_service
from pumpdispatch.services.storage_service import StorageService, get_storage
from pumpdispatch.auth.auth_handler import auth_handler, get_current_user, employee_required
from pumpdispatch.utils.rate_limit import limiter

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("/login", response_model=TokenResponse)
@limiter.limit("5/minute")  # Four digits are easy to brute force
async def login(
    request: Request,
    login_data: PinLogin,
    db: Session = Depends(get_db)
):
    """Exchange a 4-digit PIN for an access token"""
    try:
        activity_logger = ActivityLogger(db)
        claims = await IdentityService(db).authenticate_pin(login_data.pin)

        if not claims:
            await activity_logger.record(request, status.HTTP_401_UNAUTHORIZED, error_message="Failed PIN login")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="INVALID PIN"
            )

        subject = claims["sub"]
        actor_id = int(subject) if subject.isdigit() else None
        await activity_logger.record(
            request,
            status.HTTP_200_OK,
            actor={"role": claims["role"], "id": actor_id, "name": claims.get("name")}
        )

        expires_minutes = settings.ACCESS_TOKEN_EXPIRE_MINUTES
        access_token = auth_handler.create_access_token(
            data=claims,
            expires_delta=timedelta(minutes=expires_minutes)
        )

        return TokenResponse(
            access_token=access_token,
            token_type="bearer",
            expires_in=expires_minutes * 60,
            role=claims["role"],
            id=actor_id,
            name=claims.get("name"),
            pharmacy_id=claims.get("pharmacy_id"),
            pharmacy_name=claims.get("pharmacy_name")
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Login failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Login failed"
        )

@router.get("/me", response_model=CurrentUserResponse)
@limiter.limit("30/minute")
async def get_current_user_info(
    request: Request,
    current_user: dict = Depends(get_current_user)
):
    """Identity carried by the bearer token"""
    return CurrentUserResponse(**current_user)

@router.post("/register/pharmacy", response_model=PharmacyRegistered, status_code=201)
@limiter.limit("5/minute")
async def register_pharmacy(
    request: Request,
    pharmacy_data: PharmacyCreate,
    db: Session = Depends(get_db)
):
    """Register a pharmacy; the generated PIN is shown once"""
    try:
        pharmacy, pin = await IdentityService(db).register_pharmacy(pharmacy_data)
        return PharmacyRegistered(pharmacy=pharmacy, pin=pin)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Pharmacy registration failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to register pharmacy"
        )

@router.post("/register/employee", response_model=EmployeeRegistered, status_code=201)
@limiter.limit("5/minute")
async def register_employee(
    request: Request,
    employee_data: EmployeeCreate,
    db: Session = Depends(get_db)
):
    """Register an employee under the pharmacy whose PIN is given"""
    try:
        employee, pin = await IdentityService(db).register_employee(employee_data)
        return EmployeeRegistered(employee=employee, pin=pin)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Employee registration failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to register employee"
        )

@router.post("/register/driver", response_model=DriverRegistered, status_code=201)
@limiter.limit("5/minute")
async def register_driver(
    request: Request,
    driver_data: DriverCreate,
    db: Session = Depends(get_db),
    email_service: EmailService = Depends(get_email_service)
):
    """Register a driver and email the PIN when email is configured"""
    try:
        driver, pin = await IdentityService(db).register_driver(driver_data)

        pin_emailed = email_service.send(
            to=driver.email,
            subject="Your driver PIN",
            html=f"<p>Hello {driver.full_name},</p><p>Your driver PIN is <strong>{pin}</strong>.</p>",
            text=f"Hello {driver.full_name}, your driver PIN is {pin}."
        )
        if not pin_emailed:
            logger.warning(f"PIN email was not sent to driver {driver.id}")

        return DriverRegistered(driver=driver, pin=pin, pin_emailed=pin_emailed)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Driver registration failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to register driver"
        )

@router.post("/signature", response_model=SignatureResponse, status_code=201)
@limiter.limit("10/minute")
async def save_employee_signature(
    request: Request,
    signature_data: SignatureUpload,
    current_user: dict = Depends(employee_required),
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage)
):
    """Keep the employee's signature on file"""
    try:
        return await IdentityService(db).save_employee_signature(
            current_user["id"], signature_data.signature, storage
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to save signature for employee {current_user['id']}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save signature"
        )
