# =============================================================================
# lib/qr.py - Ticket QR Codes
# =============================================================================
# Renders the ticket payload as a PNG QR code (high error correction so a
# scuffed phone screen still scans) and hashes it for door validation.
# =============================================================================

import base64
import hashlib
import io
import json
from typing import Any

import qrcode
from qrcode.constants import ERROR_CORRECT_H

QR_TARGET_WIDTH = 300
QR_BORDER = 2


def ticket_qr_payload(
    ticket_id: str,
    order_id: str,
    event_id: str,
    ticket_number: str,
    timestamp_ms: int,
) -> str:
    """JSON encoded into each ticket's QR code."""
    return json.dumps({
        "ticketId": ticket_id,
        "orderId": order_id,
        "eventId": event_id,
        "ticketNumber": ticket_number,
        "timestamp": timestamp_ms,
    }, separators=(",", ":"))


def qr_hash(data: str) -> str:
    """sha256 hex digest of the QR payload."""
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def qr_png(data: str | dict[str, Any]) -> bytes:
    """Render data as a ~300px PNG QR code."""
    if not isinstance(data, str):
        data = json.dumps(data)

    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_H, border=QR_BORDER)
    qr.add_data(data)
    qr.make(fit=True)

    modules = qr.modules_count + 2 * QR_BORDER
    qr.box_size = max(1, QR_TARGET_WIDTH // modules)

    buffer = io.BytesIO()
    qr.make_image().save(buffer, format="PNG")
    return buffer.getvalue()


def qr_data_url(data: str | dict[str, Any]) -> str:
    """PNG QR code as a data: URL for inline display."""
    encoded = base64.b64encode(qr_png(data)).decode("ascii")
    return f"data:image/png;base64,{encoded}"
