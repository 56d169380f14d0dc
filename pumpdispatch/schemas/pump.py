"""
Pydantic schemas for pump operations
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List
from datetime import datetime

class PumpCreate(BaseModel):
    """Schema for registering a pump"""
    pump_number: str = Field(..., min_length=1, max_length=60, description="Human-entered pump number")
    brand: Optional[str] = Field(None, max_length=100)

    @validator('pump_number')
    def validate_pump_number(cls, v):
        v = v.strip().upper()
        if not v:
            raise ValueError('Pump number is required')
        return v

    @validator('brand')
    def validate_brand(cls, v):
        if v is None:
            return v
        return v.strip().upper() or None

class MaintenanceStatus(BaseModel):
    cleaned: bool = False
    calibrated: bool = False
    inspected: bool = False

class PumpResponse(BaseModel):
    id: int
    pharmacy_id: int
    pump_number: str
    brand: Optional[str] = None
    active: bool
    status: str
    maintenance_due: bool
    maintenance_status: MaintenanceStatus
    maintenance_due_at: Optional[datetime] = None
    maintenance_updated_at: Optional[datetime] = None
    maintenance_completed_at: Optional[datetime] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class MaintenanceUpdate(MaintenanceStatus):
    """Checklist saved from the maintenance screen"""
    pass

class ScanResolveRequest(BaseModel):
    """Raw scanner or keyboard input; several codes may be separated by newlines, commas or semicolons"""
    raw: str = Field(..., min_length=1)

class ScanResolveResponse(BaseModel):
    resolved: List[PumpResponse] = []
    not_found: List[str] = []

class PumpMovementResponse(BaseModel):
    id: int
    pump_id: Optional[int] = None
    pump_number: str
    pharmacy_id: int
    order_id: Optional[int] = None
    action: str
    performed_by_id: int
    performed_by_name: str
    role: str
    timestamp: Optional[datetime] = None

    class Config:
        from_attributes = True

class ReconcileResponse(BaseModel):
    scanned: int
    updated: int
    dry_run: bool
    pump_ids: List[int] = []
