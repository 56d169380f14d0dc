"""
Pump service: inventory, scanner lookup, maintenance and the movement audit log
"""

from sqlalchemy.orm import Session
from sqlalchemy import or_, and_
from sqlalchemy.orm.exc import StaleDataError
from fastapi import HTTPException, status
from datetime import datetime
from typing import Optional
import logging

from pumpdispatch.models.pump import Pump, PumpMovement
from pumpdispatch.models.order import Order, OrderPump
from pumpdispatch.schemas.pump import PumpCreate, MaintenanceUpdate
from pumpdispatch.services.order_workflow import (
    PumpStatus, PumpAction,
    is_active, is_pump_selectable, is_fully_maintained,
)
from pumpdispatch.utils.error_handler import DatabaseError
from pumpdispatch.utils.pump_scanner import normalize_pump_scanner_input, split_scanner_batch

logger = logging.getLogger(__name__)

def log_pump_movement(
    db: Session,
    pump: Pump,
    action: PumpAction,
    performed_by_id: int,
    performed_by_name: str,
    role: str,
    order_id: Optional[int] = None
) -> PumpMovement:
    """Append a movement to the audit log; committed with the caller's transaction"""
    movement = PumpMovement(
        pump_id=pump.id,
        pump_number=pump.pump_number,
        pharmacy_id=pump.pharmacy_id,
        order_id=order_id,
        action=action.value,
        performed_by_id=performed_by_id,
        performed_by_name=performed_by_name,
        role=role,
    )
    db.add(movement)
    return movement

def active_orders_holding(db: Session, pharmacy_id: int, pump_ids: list, pump_numbers: list) -> list[Order]:
    """Orders that still hold any of the given pumps, by id or by number"""
    pump_match = []
    if pump_ids:
        pump_match.append(OrderPump.pump_id.in_(pump_ids))
    if pump_numbers:
        pump_match.append(and_(OrderPump.pump_number.in_(pump_numbers), Order.pharmacy_id == pharmacy_id))
    if not pump_match:
        return []

    candidates = (
        db.query(Order)
        .join(OrderPump, OrderPump.order_id == Order.id)
        .filter(or_(*pump_match))
        .distinct()
        .all()
    )
    return [o for o in candidates if is_active(o.status, o.delivered_at, o.delivered_at_iso)]

class PumpService:
    """Service for pump inventory operations"""

    def __init__(self, db: Session):
        self.db = db

    def _get_pump(self, pharmacy_id: int, pump_id: int) -> Pump:
        pump = self.db.query(Pump).filter(Pump.id == pump_id, Pump.pharmacy_id == pharmacy_id).first()
        if not pump:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Pump not found")
        return pump

    async def register_pump(self, actor: dict, data: PumpCreate) -> Pump:
        """Register a new pump as AVAILABLE"""
        try:
            existing = self.db.query(Pump).filter(
                Pump.pharmacy_id == actor["pharmacy_id"],
                Pump.pump_number == data.pump_number
            ).first()
            if existing:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Pump '{data.pump_number}' is already registered"
                )

            pump = Pump(
                pharmacy_id=actor["pharmacy_id"],
                pharmacy_name=actor.get("pharmacy_name"),
                pump_number=data.pump_number,
                brand=data.brand,
                active=True,
                status=PumpStatus.AVAILABLE.value,
                maintenance_due=False,
                created_by=actor.get("name"),
                created_by_id=actor.get("id"),
            )
            self.db.add(pump)
            self.db.commit()
            self.db.refresh(pump)

            logger.info(f"Registered pump {pump.pump_number} for pharmacy {pump.pharmacy_id}")
            return pump

        except (HTTPException, StaleDataError):
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to register pump: {e}")
            raise DatabaseError(f"Failed to register pump: {str(e)}", e)

    async def list_pumps(self, pharmacy_id: int) -> list[Pump]:
        return (
            self.db.query(Pump)
            .filter(Pump.pharmacy_id == pharmacy_id)
            .order_by(Pump.pump_number)
            .all()
        )

    async def list_selectable_pumps(self, pharmacy_id: int) -> list[Pump]:
        """Pumps that can be put on a new order"""
        pumps = (
            self.db.query(Pump)
            .filter(Pump.pharmacy_id == pharmacy_id, Pump.active == True)
            .order_by(Pump.pump_number)
            .all()
        )
        return [p for p in pumps if is_pump_selectable(p.status, p.maintenance_due, p.active)]

    async def resolve_scanned(self, pharmacy_id: int, raw: str) -> tuple[list[Pump], list[str]]:
        """
        Resolve scanner input to selectable pumps.

        Each entry is normalised, then matched exactly on pump number, falling
        back to the first pump whose number contains it. A pump is resolved
        at most once per call.
        """
        candidates = await self.list_selectable_pumps(pharmacy_id)
        resolved: list[Pump] = []
        not_found: list[str] = []

        for entry in split_scanner_batch(raw):
            code = normalize_pump_scanner_input(entry)
            if not code:
                continue
            taken = {p.id for p in resolved}
            remaining = [p for p in candidates if p.id not in taken]
            match = next((p for p in remaining if p.pump_number.upper() == code), None)
            if match is None:
                match = next((p for p in remaining if code in p.pump_number.upper()), None)
            if match is None:
                not_found.append(code)
            else:
                resolved.append(match)

        return resolved, not_found

    async def delete_pump(self, pharmacy_id: int, pump_id: int) -> None:
        """Delete a pump that is not on any active order; history keeps its number"""
        try:
            pump = self._get_pump(pharmacy_id, pump_id)
            holding = active_orders_holding(self.db, pharmacy_id, [pump.id], [pump.pump_number])
            if holding:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail=f"Pump '{pump.pump_number}' is on active order {holding[0].id}"
                )

            self.db.query(OrderPump).filter(OrderPump.pump_id == pump.id).update(
                {OrderPump.pump_id: None}, synchronize_session=False
            )
            self.db.query(PumpMovement).filter(PumpMovement.pump_id == pump.id).update(
                {PumpMovement.pump_id: None}, synchronize_session=False
            )
            self.db.delete(pump)
            self.db.commit()

            logger.info(f"Deleted pump {pump_id} from pharmacy {pharmacy_id}")

        except (HTTPException, StaleDataError):
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to delete pump {pump_id}: {e}")
            raise DatabaseError(f"Failed to delete pump: {str(e)}", e)

    async def list_movements(self, pharmacy_id: int, pump_id: Optional[int] = None, limit: int = 100) -> list[PumpMovement]:
        query = self.db.query(PumpMovement).filter(PumpMovement.pharmacy_id == pharmacy_id)
        if pump_id is not None:
            query = query.filter(PumpMovement.pump_id == pump_id)
        return query.order_by(PumpMovement.timestamp.desc(), PumpMovement.id.desc()).limit(limit).all()

    async def list_maintenance_due(self, pharmacy_id: int) -> list[Pump]:
        return (
            self.db.query(Pump)
            .filter(Pump.pharmacy_id == pharmacy_id, Pump.maintenance_due == True)
            .order_by(Pump.pump_number)
            .all()
        )

    async def save_maintenance(self, pharmacy_id: int, pump_id: int, data: MaintenanceUpdate) -> Pump:
        """
        Save the maintenance checklist.

        Only a fully cleaned, calibrated and inspected pump leaves maintenance
        and becomes AVAILABLE again.
        """
        try:
            pump = self._get_pump(pharmacy_id, pump_id)
            if not pump.maintenance_due and pump.status != PumpStatus.IN_MAINTENANCE.value:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Pump '{pump.pump_number}' is not in maintenance"
                )

            now = datetime.utcnow()
            all_done = is_fully_maintained(data.cleaned, data.calibrated, data.inspected)

            pump.cleaned = data.cleaned
            pump.calibrated = data.calibrated
            pump.inspected = data.inspected
            pump.maintenance_updated_at = now
            pump.maintenance_due = not all_done
            if all_done:
                pump.status = PumpStatus.AVAILABLE.value
                pump.maintenance_completed_at = now
            else:
                pump.status = PumpStatus.IN_MAINTENANCE.value
                pump.maintenance_completed_at = None

            self.db.commit()
            self.db.refresh(pump)

            logger.info(f"Maintenance {'completed' if all_done else 'updated'} for pump {pump.pump_number}")
            return pump

        except (HTTPException, StaleDataError):
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to save maintenance for pump {pump_id}: {e}")
            raise DatabaseError(f"Failed to update maintenance: {str(e)}", e)

    async def reconcile_maintenance(
        self,
        pharmacy_id: Optional[int] = None,
        limit: Optional[int] = None,
        dry_run: bool = False
    ) -> dict:
        """
        Release pumps whose checklist is complete but are still marked in maintenance.

        Returns scanned and updated counts plus the affected pump ids.
        """
        try:
            query = self.db.query(Pump).order_by(Pump.id)
            if pharmacy_id is not None:
                query = query.filter(Pump.pharmacy_id == pharmacy_id)
            if limit is not None:
                query = query.limit(limit)

            scanned = 0
            updated_ids = []
            now = datetime.utcnow()

            for pump in query.all():
                scanned += 1
                if not is_fully_maintained(pump.cleaned, pump.calibrated, pump.inspected):
                    continue
                if pump.status != PumpStatus.IN_MAINTENANCE.value and not pump.maintenance_due:
                    continue

                updated_ids.append(pump.id)
                if dry_run:
                    logger.info(f"[DRY RUN] Would release pump {pump.id} ({pump.pump_number}) from maintenance")
                    continue

                pump.status = PumpStatus.AVAILABLE.value
                pump.maintenance_due = False
                pump.maintenance_updated_at = now
                pump.maintenance_completed_at = now

            if not dry_run:
                self.db.commit()

            logger.info(f"Maintenance reconciliation finished: scanned={scanned} updated={len(updated_ids)} dry_run={dry_run}")
            return {"scanned": scanned, "updated": len(updated_ids), "dry_run": dry_run, "pump_ids": updated_ids}

        except Exception as e:
            self.db.rollback()
            logger.error(f"Maintenance reconciliation failed: {e}")
            raise DatabaseError(f"Maintenance reconciliation failed: {str(e)}", e)
