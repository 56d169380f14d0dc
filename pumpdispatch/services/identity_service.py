"""
Identity service: registration of pharmacies, employees and drivers, and PIN login
"""

import secrets
from sqlalchemy.orm import Session
from fastapi import HTTPException, status
from typing import Optional
import logging

from pumpdispatch.config import settings
from pumpdispatch.models.pharmacy import Pharmacy
from pumpdispatch.models.employee import Employee
from pumpdispatch.models.driver import Driver
from pumpdispatch.models.signature import EmployeeSignature
from pumpdispatch.schemas.identity import PharmacyCreate, EmployeeCreate, DriverCreate
from pumpdispatch.auth.auth_handler import ROLE_ADMIN, ROLE_PHARMACY, ROLE_EMPLOYEE, ROLE_DRIVER
from pumpdispatch.services.storage_service import StorageService
from pumpdispatch.utils.error_handler import DatabaseError
from pumpdispatch.utils.signatures import sha256_hex

logger = logging.getLogger(__name__)

PIN_ATTEMPTS = 50

class IdentityService:
    """Service for account registration and PIN authentication"""

    def __init__(self, db: Session):
        self.db = db

    def _pin_in_use(self, pin: str) -> bool:
        if pin == settings.ADMIN_PIN:
            return True
        for model in (Pharmacy, Employee, Driver):
            if self.db.query(model.id).filter(model.pin == pin).first():
                return True
        return False

    def generate_unique_pin(self) -> str:
        """4-digit PIN not used by any pharmacy, employee or driver"""
        for _ in range(PIN_ATTEMPTS):
            pin = str(1000 + secrets.randbelow(9000))
            if not self._pin_in_use(pin):
                return pin
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not allocate a free PIN, please retry"
        )

    async def register_pharmacy(self, data: PharmacyCreate) -> tuple[Pharmacy, str]:
        """Register a pharmacy and return it with its generated PIN"""
        try:
            pin = self.generate_unique_pin()
            pharmacy = Pharmacy(**data.dict(), pin=pin, active=True)
            self.db.add(pharmacy)
            self.db.commit()
            self.db.refresh(pharmacy)

            logger.info(f"Registered pharmacy {pharmacy.id}: {pharmacy.pharmacy_name}")
            return pharmacy, pin

        except HTTPException:
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to register pharmacy: {e}")
            raise DatabaseError(f"Failed to register pharmacy: {str(e)}", e)

    async def find_active_pharmacy_by_pin(self, pin: str) -> Optional[Pharmacy]:
        return self.db.query(Pharmacy).filter(
            Pharmacy.pin == pin,
            Pharmacy.active == True
        ).first()

    async def register_employee(self, data: EmployeeCreate) -> tuple[Employee, str]:
        """Register an employee under the pharmacy identified by its PIN"""
        try:
            pharmacy = await self.find_active_pharmacy_by_pin(data.pharmacy_pin)
            if not pharmacy:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail="Invalid PIN or pharmacy not active"
                )

            pin = self.generate_unique_pin()
            employee = Employee(
                pharmacy_id=pharmacy.id,
                pharmacy_name=pharmacy.pharmacy_name,
                full_name=data.full_name,
                email=data.email.lower(),
                job_title=data.job_title,
                role="EMPLOYEE",
                pin=pin,
                country=pharmacy.country,
                state=pharmacy.state,
                city=pharmacy.city,
                active=True
            )
            self.db.add(employee)
            self.db.commit()
            self.db.refresh(employee)

            logger.info(f"Registered employee {employee.id} for pharmacy {pharmacy.id}")
            return employee, pin

        except HTTPException:
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to register employee: {e}")
            raise DatabaseError(f"Failed to register employee: {str(e)}", e)

    async def register_driver(self, data: DriverCreate) -> tuple[Driver, str]:
        """Register a driver and return it with its generated PIN"""
        try:
            pin = self.generate_unique_pin()
            driver = Driver(
                full_name=data.full_name,
                email=data.email.lower(),
                country=data.country,
                state=data.state,
                city=data.city,
                pin=pin,
                active=True
            )
            self.db.add(driver)
            self.db.commit()
            self.db.refresh(driver)

            logger.info(f"Registered driver {driver.id}: {driver.full_name}")
            return driver, pin

        except HTTPException:
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to register driver: {e}")
            raise DatabaseError(f"Failed to register driver: {str(e)}", e)

    async def authenticate_pin(self, pin: str) -> Optional[dict]:
        """
        Resolve a PIN to an identity.

        The admin PIN wins, then active pharmacies, employees and drivers in
        that order. Returns the token claims, or None for an unknown PIN.
        """
        if secrets.compare_digest(pin, settings.ADMIN_PIN):
            return {"sub": "admin", "role": ROLE_ADMIN, "name": "ADMIN"}

        pharmacy = await self.find_active_pharmacy_by_pin(pin)
        if pharmacy:
            return {
                "sub": str(pharmacy.id),
                "role": ROLE_PHARMACY,
                "name": pharmacy.pharmacy_name,
                "pharmacy_id": pharmacy.id,
                "pharmacy_name": pharmacy.pharmacy_name,
            }

        employee = self.db.query(Employee).filter(
            Employee.pin == pin,
            Employee.active == True
        ).first()
        if employee:
            return {
                "sub": str(employee.id),
                "role": ROLE_EMPLOYEE,
                "name": employee.full_name,
                "pharmacy_id": employee.pharmacy_id,
                "pharmacy_name": employee.pharmacy_name,
            }

        driver = self.db.query(Driver).filter(
            Driver.pin == pin,
            Driver.active == True
        ).first()
        if driver:
            return {"sub": str(driver.id), "role": ROLE_DRIVER, "name": driver.full_name}

        logger.warning("Login attempt with unknown PIN")
        return None

    async def list_pharmacies(self) -> list[Pharmacy]:
        return self.db.query(Pharmacy).order_by(Pharmacy.created_at.desc(), Pharmacy.id.desc()).all()

    async def set_pharmacy_active(self, pharmacy_id: int, active: bool) -> Pharmacy:
        """Activate or deactivate a pharmacy; inactive pharmacies cannot log in or be connected to"""
        try:
            pharmacy = self.db.query(Pharmacy).filter(Pharmacy.id == pharmacy_id).first()
            if not pharmacy:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Pharmacy not found")

            pharmacy.active = active
            self.db.commit()
            self.db.refresh(pharmacy)

            logger.info(f"Pharmacy {pharmacy_id} active={active}")
            return pharmacy

        except HTTPException:
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update pharmacy {pharmacy_id}: {e}")
            raise DatabaseError(f"Failed to update pharmacy: {str(e)}", e)

    async def save_employee_signature(
        self,
        employee_id: int,
        signature: str,
        storage: StorageService
    ) -> EmployeeSignature:
        """Store the employee's signature image and keep a record of it"""
        try:
            employee = self.db.query(Employee).filter(Employee.id == employee_id).first()
            if not employee:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Employee not found")

            record = EmployeeSignature(
                employee_id=employee.id,
                employee_name=employee.full_name,
                pharmacy_id=employee.pharmacy_id,
                signature_url="",
                signature_hash=sha256_hex(signature)
            )
            self.db.add(record)
            self.db.flush()

            record.signature_url = storage.upload_data_url(
                f"signatures/employees/{employee.id}-{record.id}.png", signature
            )
            self.db.commit()
            self.db.refresh(record)

            logger.info(f"Saved signature {record.id} for employee {employee.id}")
            return record

        except HTTPException:
            raise
        except ValueError as e:
            self.db.rollback()
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to save signature for employee {employee_id}: {e}")
            raise DatabaseError(f"Failed to save signature: {str(e)}", e)
