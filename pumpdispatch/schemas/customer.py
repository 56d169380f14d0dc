"""
Pydantic schemas for customer operations
"""

from pydantic import BaseModel, Field, validator, EmailStr
from typing import Optional, List
from datetime import datetime

class CustomerCreate(BaseModel):
    """Schema for registering a customer"""
    customer_name: str = Field(..., min_length=1, max_length=150)
    representative: Optional[str] = Field(None, max_length=150)
    email: Optional[EmailStr] = None
    country: str = Field(..., min_length=1, max_length=60)
    state: str = Field(..., min_length=1, max_length=60)
    city: str = Field(..., min_length=1, max_length=100)
    address: Optional[str] = None

    @validator('customer_name', 'country', 'state', 'city')
    def required_not_blank(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Please complete all required fields')
        return v.upper()

class CustomerResponse(BaseModel):
    id: int
    pharmacy_id: int
    customer_name: str
    representative: Optional[str] = None
    email: Optional[str] = None
    country: str
    state: str
    city: str
    address: Optional[str] = None
    return_reminder_note: Optional[str] = None
    return_reminder_at: Optional[datetime] = None
    return_reminder_by: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class CustomerPumpsResponse(BaseModel):
    """Pumps a customer has had, based on order history"""
    customer_id: int
    customer_name: str
    city: Optional[str] = None
    return_reminder_note: Optional[str] = None
    pumps: List[str] = []

class ReturnReminderUpdate(BaseModel):
    note: str = Field("", max_length=2000)
