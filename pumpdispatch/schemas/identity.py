"""
Pydantic schemas for PIN login and account registration
"""

from pydantic import BaseModel, Field, validator, EmailStr
from typing import Optional
from datetime import datetime
import re

from pumpdispatch.utils.signatures import is_image_data_url

PIN_PATTERN = re.compile(r"^\d{4}$")

def _upper_stripped(v):
    if v is None:
        return v
    v = v.strip().upper()
    if not v:
        raise ValueError('Field cannot be blank')
    return v

class PinLogin(BaseModel):
    """Schema for PIN login"""
    pin: str = Field(..., description="4-digit PIN")

    @validator('pin')
    def validate_pin(cls, v):
        v = v.strip()
        if not PIN_PATTERN.match(v):
            raise ValueError('PIN must be exactly 4 digits')
        return v

class TokenResponse(BaseModel):
    """Schema for authentication token response"""
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    role: str
    id: Optional[int] = None
    name: Optional[str] = None
    pharmacy_id: Optional[int] = None
    pharmacy_name: Optional[str] = None

class CurrentUserResponse(BaseModel):
    """Identity carried by the bearer token"""
    role: str
    id: Optional[int] = None
    name: Optional[str] = None
    pharmacy_id: Optional[int] = None
    pharmacy_name: Optional[str] = None

class PharmacyCreate(BaseModel):
    """Schema for registering a pharmacy"""
    license_code: str = Field(..., min_length=1, max_length=50, description="License code issued to the pharmacy")
    pharmacy_name: str = Field(..., min_length=1, max_length=150)
    email: Optional[EmailStr] = None
    country: str = Field(..., min_length=1, max_length=60)
    state: str = Field(..., min_length=1, max_length=60)
    city: str = Field(..., min_length=1, max_length=100)
    address: str = Field(..., min_length=1, description="Physical address")

    @validator('license_code', 'pharmacy_name', 'country', 'state', 'city', 'address')
    def upper_case_fields(cls, v):
        return _upper_stripped(v)

class PharmacyResponse(BaseModel):
    """Schema for pharmacy responses (PIN excluded)"""
    id: int
    pharmacy_name: str
    license_code: str
    email: Optional[str] = None
    country: str
    state: str
    city: str
    address: str
    active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class PharmacyRegistered(BaseModel):
    pharmacy: PharmacyResponse
    pin: str

class PharmacyStatusUpdate(BaseModel):
    active: bool

class EmployeeCreate(BaseModel):
    """Schema for registering an employee with the pharmacy PIN"""
    pharmacy_pin: str = Field(..., description="4-digit PIN of the employee's pharmacy")
    full_name: str = Field(..., min_length=1, max_length=150)
    email: EmailStr
    job_title: str = Field(..., min_length=1, max_length=100)

    @validator('pharmacy_pin')
    def validate_pharmacy_pin(cls, v):
        v = v.strip()
        if not PIN_PATTERN.match(v):
            raise ValueError('Pharmacy PIN must be exactly 4 digits')
        return v

    @validator('full_name', 'job_title')
    def upper_case_fields(cls, v):
        return _upper_stripped(v)

class EmployeeResponse(BaseModel):
    id: int
    pharmacy_id: int
    pharmacy_name: str
    full_name: str
    email: str
    job_title: str
    role: str
    active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class EmployeeRegistered(BaseModel):
    employee: EmployeeResponse
    pin: str

class DriverCreate(BaseModel):
    """Schema for registering a driver"""
    full_name: str = Field(..., min_length=1, max_length=150)
    email: EmailStr
    country: str = Field(..., min_length=1, max_length=60)
    state: str = Field(..., min_length=1, max_length=60)
    city: str = Field(..., min_length=1, max_length=100)

    @validator('full_name', 'country', 'state', 'city')
    def upper_case_fields(cls, v):
        return _upper_stripped(v)

class DriverResponse(BaseModel):
    id: int
    full_name: str
    email: str
    country: str
    state: str
    city: str
    active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class DriverRegistered(BaseModel):
    driver: DriverResponse
    pin: str
    pin_emailed: bool

class SignatureUpload(BaseModel):
    """Signature image as a PNG data URL"""
    signature: str = Field(..., min_length=1)

    @validator('signature')
    def validate_signature(cls, v):
        if not is_image_data_url(v):
            raise ValueError('Signature must be a base64 PNG or JPEG data URL')
        return v.strip()

class SignatureResponse(BaseModel):
    id: int
    signature_url: str
    signature_hash: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
