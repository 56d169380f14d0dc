"""
Legal delivery PDF generation
"""

import logging
from io import BytesIO
from typing import Optional

from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

logger = logging.getLogger(__name__)

def generate_delivery_pdf(
    order_id: int,
    customer_name: str,
    driver_name: str,
    pump_numbers: list,
    delivered_at: str,
    ip: Optional[str],
    latitude: float,
    longitude: float,
    customer_signature: Optional[bytes] = None,
    driver_signature: Optional[bytes] = None
) -> bytes:
    """
    Build the one page delivery record.

    Args:
        order_id: Order being delivered
        customer_name: Customer name as snapshotted on the order
        driver_name: Driver completing the delivery
        pump_numbers: Pump numbers in order
        delivered_at: ISO-8601 delivery timestamp
        ip: Client IP the delivery was confirmed from
        latitude: Delivery latitude
        longitude: Delivery longitude
        customer_signature: PNG bytes of the customer signature
        driver_signature: PNG bytes of the driver signature

    Returns:
        The PDF document as bytes
    """
    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    width, height = A4

    y = height - 50
    c.setFont("Helvetica-Bold", 14)
    c.drawString(40, y, "Medical Equipment Delivery Record")
    y -= 28

    c.setFont("Helvetica", 11)
    lines = [
        f"Order ID: {order_id}",
        f"Customer: {customer_name}",
        f"Driver: {driver_name}",
        f"Pumps: {', '.join(pump_numbers)}",
        f"Delivered At: {delivered_at}",
        f"IP Address: {ip or 'N/A'}",
        f"Location: {latitude}, {longitude}",
    ]
    for line in lines:
        c.drawString(40, y, line)
        y -= 18

    y -= 12
    c.drawString(40, y, "Customer Signature:")
    c.drawString(300, y, "Driver Signature:")
    y -= 110

    # Signatures that cannot be decoded leave the record text-only
    for image_bytes, x in ((customer_signature, 40), (driver_signature, 300)):
        if not image_bytes:
            continue
        try:
            c.drawImage(ImageReader(BytesIO(image_bytes)), x, y, width=220, height=100, mask="auto")
        except Exception as e:
            logger.warning(f"Failed to add signature image to PDF for order {order_id}: {e}")

    c.showPage()
    c.save()
    return buffer.getvalue()
