"""
Pump and pump movement models
"""

from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from pumpdispatch.database import Base
from pumpdispatch.services.order_workflow import PumpStatus

class Pump(Base):
    """Physical infusion pump tracked by a pharmacy"""
    __tablename__ = "pumps"
    __table_args__ = (UniqueConstraint("pharmacy_id", "pump_number", name="uq_pharmacy_pump_number"),)
    
    id = Column(Integer, primary_key=True, index=True)
    pharmacy_id = Column(Integer, ForeignKey("pharmacies.id"), index=True, nullable=False)
    pharmacy_name = Column(String(150), nullable=True)
    pump_number = Column(String(60), index=True, nullable=False)
    brand = Column(String(100), nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    status = Column(String(30), default=PumpStatus.AVAILABLE.value, nullable=False)
    maintenance_due = Column(Boolean, default=False, nullable=False)
    maintenance_due_at = Column(DateTime(timezone=True), nullable=True)
    cleaned = Column(Boolean, default=False, nullable=False)
    calibrated = Column(Boolean, default=False, nullable=False)
    inspected = Column(Boolean, default=False, nullable=False)
    maintenance_updated_at = Column(DateTime(timezone=True), nullable=True)
    maintenance_completed_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(String(150), nullable=True)
    created_by_id = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    version = Column(Integer, nullable=False)
    
    # Concurrent writers to the same pump row fail with StaleDataError
    __mapper_args__ = {"version_id_col": version}
    
    @property
    def maintenance_status(self) -> dict:
        return {
            "cleaned": bool(self.cleaned),
            "calibrated": bool(self.calibrated),
            "inspected": bool(self.inspected),
        }
    
    def __repr__(self):
        return f"<Pump(id={self.id}, pump_number='{self.pump_number}', status='{self.status}')>"

class PumpMovement(Base):
    """Append-only audit record of what happened to a pump on an order"""
    __tablename__ = "pump_movements"
    
    id = Column(Integer, primary_key=True, index=True)
    pump_id = Column(Integer, ForeignKey("pumps.id", ondelete="SET NULL"), index=True, nullable=True)
    pump_number = Column(String(60), nullable=False)
    pharmacy_id = Column(Integer, ForeignKey("pharmacies.id"), index=True, nullable=False)
    order_id = Column(Integer, ForeignKey("orders.id"), index=True, nullable=True)
    action = Column(String(20), nullable=False)
    performed_by_id = Column(Integer, nullable=False)
    performed_by_name = Column(String(150), nullable=False)
    role = Column(String(20), nullable=False)
    timestamp = Column(DateTime(timezone=True), server_default=func.now())
    
    def __repr__(self):
        return f"<PumpMovement(pump='{self.pump_number}', action='{self.action}', order_id={self.order_id})>"
