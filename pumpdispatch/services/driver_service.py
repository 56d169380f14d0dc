"""
Driver dashboard service: pharmacy connections, order queue, pickup and delivery
"""

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from fastapi import HTTPException, status
from datetime import datetime
from typing import Optional
import logging

from pumpdispatch.models.driver import Driver, DriverPharmacy
from pumpdispatch.models.order import Order
from pumpdispatch.models.pharmacy import Pharmacy
from pumpdispatch.models.signature import PickupSignature, DeliverySignature
from pumpdispatch.schemas.order import PickupConfirm, DeliveryConfirm
from pumpdispatch.services.identity_service import IdentityService
from pumpdispatch.services.order_service import apply_transition, MOVEMENT_ROLE_DRIVER
from pumpdispatch.services.order_workflow import (
    OrderStatus, InvalidTransitionError, DRIVER_ACTIVE_STATUSES, ensure_transition,
)
from pumpdispatch.services.pdf_service import generate_delivery_pdf
from pumpdispatch.services.storage_service import StorageService
from pumpdispatch.utils.error_handler import DatabaseError
from pumpdispatch.utils.signatures import decode_image_data_url, sha256_hex

logger = logging.getLogger(__name__)

class DriverService:
    """Service for everything a driver does from the dashboard"""

    def __init__(self, db: Session):
        self.db = db

    def _get_driver(self, driver_id: int) -> Driver:
        driver = self.db.query(Driver).filter(Driver.id == driver_id).first()
        if not driver:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Driver not found")
        return driver

    def _connected_pharmacy_ids(self, driver_id: int) -> list[int]:
        rows = self.db.query(DriverPharmacy.pharmacy_id).filter(DriverPharmacy.driver_id == driver_id).all()
        return [row[0] for row in rows]

    def _get_own_order(self, driver_id: int, order_id: int) -> Order:
        order = self.db.query(Order).filter(Order.id == order_id).first()
        if not order:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
        if order.driver_id != driver_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="This order is assigned to another driver"
            )
        return order

    async def connect_pharmacy(self, driver_id: int, pin: str) -> tuple[bool, Pharmacy]:
        """
        Connect a driver to the pharmacy owning the PIN.

        Returns:
            (already_connected, pharmacy)
        """
        try:
            self._get_driver(driver_id)
            pharmacy = await IdentityService(self.db).find_active_pharmacy_by_pin(pin)
            if not pharmacy:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail="Invalid PIN or pharmacy not active"
                )

            existing = self.db.query(DriverPharmacy).filter(
                DriverPharmacy.driver_id == driver_id,
                DriverPharmacy.pharmacy_id == pharmacy.id
            ).first()
            if existing:
                return True, pharmacy

            self.db.add(DriverPharmacy(driver_id=driver_id, pharmacy_id=pharmacy.id))
            self.db.commit()

            logger.info(f"Driver {driver_id} connected to pharmacy {pharmacy.id}")
            return False, pharmacy

        except HTTPException:
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to connect driver {driver_id} to pharmacy: {e}")
            raise DatabaseError(f"Failed to connect pharmacy: {str(e)}", e)

    async def connected_pharmacies(self, driver_id: int) -> list[dict]:
        rows = (
            self.db.query(DriverPharmacy, Pharmacy)
            .join(Pharmacy, Pharmacy.id == DriverPharmacy.pharmacy_id)
            .filter(DriverPharmacy.driver_id == driver_id)
            .order_by(Pharmacy.pharmacy_name)
            .all()
        )
        return [
            {
                "pharmacy_id": pharmacy.id,
                "pharmacy_name": pharmacy.pharmacy_name,
                "city": pharmacy.city,
                "state": pharmacy.state,
                "country": pharmacy.country,
                "connected_at": link.connected_at,
            }
            for link, pharmacy in rows
        ]

    async def available_orders(self, driver_id: int) -> list[Order]:
        """PENDING orders of the pharmacies the driver is connected to"""
        pharmacy_ids = self._connected_pharmacy_ids(driver_id)
        if not pharmacy_ids:
            return []
        return (
            self.db.query(Order)
            .filter(Order.pharmacy_id.in_(pharmacy_ids), Order.status == OrderStatus.PENDING.value)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .all()
        )

    async def active_orders(self, driver_id: int) -> list[Order]:
        return (
            self.db.query(Order)
            .filter(
                Order.driver_id == driver_id,
                Order.status.in_([s.value for s in DRIVER_ACTIVE_STATUSES])
            )
            .order_by(Order.status_updated_at.desc(), Order.id.desc())
            .all()
        )

    async def accept_order(self, actor: dict, order_id: int) -> Order:
        """PENDING -> ASSIGNED; the first driver to commit wins"""
        try:
            order = self.db.query(Order).filter(Order.id == order_id).first()
            if not order:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
            if order.pharmacy_id not in self._connected_pharmacy_ids(actor["id"]):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="Connect to this pharmacy before accepting its orders"
                )

            apply_transition(self.db, order, OrderStatus.ASSIGNED, actor["id"], actor.get("name") or "", MOVEMENT_ROLE_DRIVER)
            order.driver_id = actor["id"]
            order.driver_name = actor.get("name")
            order.assigned_at = order.status_updated_at

            self.db.commit()
            self.db.refresh(order)

            logger.info(f"Order {order_id} accepted by driver {actor['id']}")
            return order

        except (HTTPException, InvalidTransitionError, StaleDataError):
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to accept order {order_id}: {e}")
            raise DatabaseError(f"Failed to accept order: {str(e)}", e)

    async def start_to_pharmacy(self, actor: dict, order_id: int) -> Order:
        """ASSIGNED -> ON_WAY_TO_PHARMACY"""
        try:
            order = self._get_own_order(actor["id"], order_id)
            apply_transition(self.db, order, OrderStatus.ON_WAY_TO_PHARMACY, actor["id"], actor.get("name") or "", MOVEMENT_ROLE_DRIVER)
            order.started_at = order.status_updated_at

            self.db.commit()
            self.db.refresh(order)

            logger.info(f"Driver {actor['id']} on the way to pharmacy for order {order_id}")
            return order

        except (HTTPException, InvalidTransitionError, StaleDataError):
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to start order {order_id}: {e}")
            raise DatabaseError(f"Failed to update order: {str(e)}", e)

    async def confirm_pickup(self, actor: dict, order_id: int, data: PickupConfirm, storage: StorageService) -> Order:
        """ON_WAY_TO_PHARMACY -> ON_WAY_TO_CUSTOMER once both counter signatures are stored"""
        try:
            order = self._get_own_order(actor["id"], order_id)
            ensure_transition(order.status, OrderStatus.ON_WAY_TO_CUSTOMER)

            try:
                employee_url = storage.upload_data_url(f"pickup_signatures/{order.id}-employee.png", data.employee_signature)
                driver_url = storage.upload_data_url(f"pickup_signatures/{order.id}-driver.png", data.driver_signature)
            except ValueError as e:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

            self.db.add(PickupSignature(
                order_id=order.id,
                pharmacy_id=order.pharmacy_id,
                employee_signature_url=employee_url,
                employee_signature_hash=sha256_hex(data.employee_signature),
                driver_signature_url=driver_url,
                driver_signature_hash=sha256_hex(data.driver_signature),
            ))

            apply_transition(self.db, order, OrderStatus.ON_WAY_TO_CUSTOMER, actor["id"], actor.get("name") or "", MOVEMENT_ROLE_DRIVER)
            order.picked_up_at = order.status_updated_at

            self.db.commit()
            self.db.refresh(order)

            logger.info(f"Pickup confirmed for order {order_id} by driver {actor['id']}")
            return order

        except (HTTPException, InvalidTransitionError, StaleDataError):
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to confirm pickup for order {order_id}: {e}")
            raise DatabaseError(f"Failed to confirm pickup: {str(e)}", e)

    def _build_delivery_pdf(
        self,
        order: Order,
        driver_name: str,
        delivered_at_iso: str,
        ip: Optional[str],
        data: DeliveryConfirm,
        storage: StorageService
    ) -> Optional[str]:
        """Generate and store the legal PDF; returns None when either step fails"""
        try:
            pdf_bytes = generate_delivery_pdf(
                order_id=order.id,
                customer_name=order.customer_name,
                driver_name=driver_name,
                pump_numbers=order.pump_numbers,
                delivered_at=delivered_at_iso,
                ip=ip,
                latitude=data.latitude,
                longitude=data.longitude,
                customer_signature=decode_image_data_url(data.customer_signature),
                driver_signature=decode_image_data_url(data.driver_signature),
            )
            return storage.upload_bytes(f"delivery_pdfs/{order.id}.pdf", pdf_bytes)
        except Exception as e:
            logger.warning(f"Delivery PDF failed for order {order.id}: {e}")
            return None

    async def complete_delivery(
        self,
        actor: dict,
        order_id: int,
        data: DeliveryConfirm,
        ip: Optional[str],
        storage: StorageService
    ) -> Order:
        """
        ON_WAY_TO_CUSTOMER -> DELIVERED with the legal delivery proof.

        Signatures are stored and hashed, the PDF is generated best effort, a
        delivery signature record is written and the pumps move to DELIVERED,
        all in one commit.
        """
        try:
            order = self._get_own_order(actor["id"], order_id)
            ensure_transition(order.status, OrderStatus.DELIVERED)
            driver_name = actor.get("name") or order.driver_name or ""

            entries = {entry.pump_number.upper(): entry for entry in order.previous_pumps}
            for report in data.previous_pumps:
                entry = entries.get(report.pump_number.strip().upper())
                if entry is None:
                    raise HTTPException(
                        status_code=status.HTTP_400_BAD_REQUEST,
                        detail=f"Pump '{report.pump_number}' is not a previous pump of this customer"
                    )
                entry.returned = report.returned
                entry.reason = None if report.returned else ((report.reason or "").strip() or None)

            try:
                signature_url = storage.upload_data_url(f"signatures/{order.id}-customer.png", data.customer_signature)
                driver_signature_url = storage.upload_data_url(f"signatures/{order.id}-driver.png", data.driver_signature)
            except ValueError as e:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

            signature_hash = sha256_hex(data.customer_signature)
            driver_signature_hash = sha256_hex(data.driver_signature)
            now = datetime.utcnow()
            delivered_at_iso = now.isoformat(timespec="milliseconds") + "Z"

            legal_pdf_url = self._build_delivery_pdf(order, driver_name, delivered_at_iso, ip, data, storage)

            self.db.add(DeliverySignature(
                order_id=order.id,
                pharmacy_id=order.pharmacy_id,
                pharmacy_name=order.pharmacy_name,
                pump_numbers=",".join(order.pump_numbers),
                customer_name=order.customer_name,
                customer_address=order.customer_address,
                driver_id=actor["id"],
                driver_name=driver_name,
                signature_url=signature_url,
                signature_hash=signature_hash,
                driver_signature_url=driver_signature_url,
                driver_signature_hash=driver_signature_hash,
                delivered_at_iso=delivered_at_iso,
                delivered_from_ip=ip,
                delivered_latitude=data.latitude,
                delivered_longitude=data.longitude,
                legal_pdf_url=legal_pdf_url,
            ))

            apply_transition(self.db, order, OrderStatus.DELIVERED, actor["id"], driver_name, MOVEMENT_ROLE_DRIVER)
            order.status_updated_at = now
            order.signature_url = signature_url
            order.signature_hash = signature_hash
            order.driver_signature_url = driver_signature_url
            order.driver_signature_hash = driver_signature_hash
            order.delivered_at = now
            order.delivered_at_iso = delivered_at_iso
            order.delivered_from_ip = ip
            order.delivered_latitude = data.latitude
            order.delivered_longitude = data.longitude
            order.legal_pdf_url = legal_pdf_url

            self.db.commit()
            self.db.refresh(order)

            logger.info(f"Order {order_id} delivered by driver {actor['id']} (pdf={'yes' if legal_pdf_url else 'no'})")
            return order

        except (HTTPException, InvalidTransitionError, StaleDataError):
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to complete delivery for order {order_id}: {e}")
            raise DatabaseError(f"Failed to complete delivery: {str(e)}", e)

    async def update_location(self, driver_id: int, latitude: float, longitude: float) -> Driver:
        try:
            driver = self._get_driver(driver_id)
            driver.last_latitude = latitude
            driver.last_longitude = longitude
            driver.last_location_at = datetime.utcnow()

            self.db.commit()
            self.db.refresh(driver)
            return driver

        except HTTPException:
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update location for driver {driver_id}: {e}")
            raise DatabaseError(f"Failed to update location: {str(e)}", e)

    async def driver_tracking(self, pharmacy_id: int) -> list[dict]:
        """One entry per driver with an active order of the pharmacy, most recent order first"""
        rows = (
            self.db.query(Order, Driver)
            .join(Driver, Driver.id == Order.driver_id)
            .filter(
                Order.pharmacy_id == pharmacy_id,
                Order.status.in_([s.value for s in DRIVER_ACTIVE_STATUSES])
            )
            .order_by(Order.status_updated_at.desc(), Order.id.desc())
            .all()
        )

        entries = {}
        for order, driver in rows:
            if driver.id in entries:
                continue
            entries[driver.id] = {
                "driver_id": driver.id,
                "driver_name": order.driver_name or driver.full_name,
                "order_id": order.id,
                "status": order.status,
                "last_update": driver.last_location_at or order.status_updated_at,
                "latitude": driver.last_latitude,
                "longitude": driver.last_longitude,
            }
        return list(entries.values())
