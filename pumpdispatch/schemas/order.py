"""
Pydantic schemas for Order operations
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List
from datetime import datetime

from pumpdispatch.utils.signatures import is_image_data_url

def _require_signature(v, label):
    if not v or not is_image_data_url(v):
        raise ValueError(f'{label} signature is required as a PNG data URL')
    return v.strip()

class OrderCreate(BaseModel):
    """Schema for creating a new order"""
    customer_id: int = Field(..., ge=1)
    pump_ids: List[int] = Field(..., description="Pumps in the order they were selected")

    @validator('pump_ids')
    def validate_pump_ids(cls, v):
        unique = list(dict.fromkeys(v))
        if not unique:
            raise ValueError('At least one pump and a customer are required')
        return unique

class PreviousPumpResponse(BaseModel):
    pump_number: str
    returned: Optional[bool] = None
    reason: Optional[str] = None
    returned_to_pharmacy: bool = False
    returned_to_pharmacy_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class OrderResponse(BaseModel):
    """Schema for order responses"""
    id: int
    pharmacy_id: int
    pharmacy_name: Optional[str] = None
    customer_id: int
    customer_name: str
    customer_city: Optional[str] = None
    customer_address: Optional[str] = None
    customer_state: Optional[str] = None
    customer_country: Optional[str] = None
    return_reminder_note: Optional[str] = None
    pump_ids: List[Optional[int]] = []
    pump_numbers: List[str] = []
    customer_previous_pumps: List[str] = []
    previous_pumps: List[PreviousPumpResponse] = []
    created_by_employee_id: int
    created_by_employee_name: str
    status: str
    driver_id: Optional[int] = None
    driver_name: Optional[str] = None
    created_at: Optional[datetime] = None
    status_updated_at: Optional[datetime] = None
    assigned_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    signature_url: Optional[str] = None
    signature_hash: Optional[str] = None
    driver_signature_url: Optional[str] = None
    driver_signature_hash: Optional[str] = None
    delivered_at: Optional[datetime] = None
    delivered_at_iso: Optional[str] = None
    delivered_from_ip: Optional[str] = None
    delivered_latitude: Optional[float] = None
    delivered_longitude: Optional[float] = None
    legal_pdf_url: Optional[str] = None

    class Config:
        from_attributes = True

class OrderCreatedResponse(BaseModel):
    order: OrderResponse
    message: str

class OrderListResponse(BaseModel):
    """Schema for paginated order list responses"""
    orders: List[OrderResponse]
    total: int
    page: int
    page_size: int
    total_pages: int

class PickupConfirm(BaseModel):
    """Signatures taken at the pharmacy counter"""
    employee_signature: str = Field(..., description="Pharmacy staff signature (PNG data URL)")
    driver_signature: str = Field(..., description="Driver signature (PNG data URL)")

    @validator('employee_signature')
    def validate_employee_signature(cls, v):
        return _require_signature(v, 'Pharmacy staff')

    @validator('driver_signature')
    def validate_driver_signature(cls, v):
        return _require_signature(v, 'Driver')

class PreviousPumpReport(BaseModel):
    """Driver's report on a pump the customer already had"""
    pump_number: str = Field(..., min_length=1)
    returned: bool
    reason: Optional[str] = Field(None, max_length=1000)

class DeliveryConfirm(BaseModel):
    """Everything captured at the customer's door"""
    customer_signature: str = Field(..., description="Customer signature (PNG data URL)")
    driver_signature: str = Field(..., description="Driver signature (PNG data URL)")
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    previous_pumps: List[PreviousPumpReport] = []

    @validator('customer_signature')
    def validate_customer_signature(cls, v):
        return _require_signature(v, 'Customer')

    @validator('driver_signature')
    def validate_driver_signature(cls, v):
        return _require_signature(v, 'Driver')

class ShareDeliveryEmail(BaseModel):
    to: str = Field("", description="Recipient email")

    @validator('to')
    def validate_recipient(cls, v):
        v = (v or "").strip()
        if not v:
            raise ValueError('Please enter recipient email first.')
        if "@" not in v:
            raise ValueError('Please enter a valid email address.')
        return v

class DeliveryBackupResponse(BaseModel):
    id: int
    customer_name: str
    driver_name: Optional[str] = None
    status: str
    delivered_at: Optional[datetime] = None
    delivered_at_iso: Optional[str] = None
    status_updated_at: Optional[datetime] = None
    legal_pdf_url: str

    class Config:
        from_attributes = True

class ReturnCounts(BaseModel):
    all: int
    pending: int
    returned: int

class ReturnsListResponse(BaseModel):
    orders: List[OrderResponse]
    counts: ReturnCounts

class LocationUpdate(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

class DriverTrackingEntry(BaseModel):
    driver_id: int
    driver_name: str
    order_id: int
    status: str
    last_update: Optional[datetime] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

class ConnectPharmacyRequest(BaseModel):
    pin: str

    @validator('pin')
    def validate_pin(cls, v):
        v = (v or "").strip()
        if len(v) != 4 or not v.isdigit():
            raise ValueError('Enter a valid PIN.')
        return v

class ConnectedPharmacyResponse(BaseModel):
    pharmacy_id: int
    pharmacy_name: str
    city: str
    state: str
    country: str
    connected_at: Optional[datetime] = None

class ConnectPharmacyResult(BaseModel):
    message: str
    already_connected: bool
    pharmacies: List[ConnectedPharmacyResponse]
