"""
WhatsApp invoice delivery for completed sales.

The messaging gateway takes ``{number, message, type, media_url}`` and answers
``{success, message}``. Delivery is best effort: every failure is turned into
an ``InvoiceResult`` with ``ok=False`` so the caller can warn the operator
without touching the already-recorded sale.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Optional

import requests

from models.sales import SellRecord, format_currency

LOG = logging.getLogger(__name__)

FAILURE_TEXT = "Failed to send WhatsApp invoice message."


@dataclass(frozen=True)
class InvoiceResult:
    ok: bool
    message: str


def build_invoice_message(record: SellRecord, business_name: str, currency: str = "₹") -> str:
    ts = record.sold_at_local()
    sold = ts.strftime("%d/%m/%Y, %I:%M:%S %p") if ts else "-"
    lines = [
        "Hello,",
        "",
        "*Thank you for your purchase!* Here are your invoice details:",
        "",
        f"*Product Name:* {record.name}",
        f"*Unit Price:* {currency}{format_currency(record.unit_price)}",
        f"*Quantity:* {record.quantity}",
        f"*Total Calculated Price:* {currency}{format_currency(record.total_price_calculated)}",
        f"*Discount:* {currency}{format_currency(record.discount)}",
        f"*Final Price Charged:* {currency}{format_currency(record.final_price_charged)}",
        f"*Payment Method:* {record.payment_method.capitalize()}",
        f"*Date:* {sold}",
        "",
        "If you have any *questions,* feel free to contact us.",
        "",
        "Best regards,",
        f"*{business_name}*",
    ]
    return "\n".join(lines)


def build_payload(record: SellRecord, phone_number: str, cfg: Dict, currency: str = "₹") -> Dict:
    return {
        "number": phone_number,
        "message": build_invoice_message(record, cfg.get("business_name", ""), currency),
        "type": "media",
        "media_url": cfg.get("media_url", ""),
    }


def send_invoice(record: SellRecord, cfg: Dict, currency: str = "₹",
                 phone_number: Optional[str] = None) -> InvoiceResult:
    number = phone_number or record.phone_number
    if not number:
        return InvoiceResult(ok=False, message="No phone number on sale")

    payload = build_payload(record, number, cfg, currency)
    try:
        response = requests.post(
            cfg["endpoint"],
            json=payload,
            headers={"Content-Type": "application/json"},
            timeout=float(cfg.get("timeout_seconds", 10)),
        )
        response.raise_for_status()
        body = response.json()
    except requests.RequestException as e:
        LOG.warning("Invoice for sale %s could not be delivered: %s", record.id, e)
        return InvoiceResult(ok=False, message=FAILURE_TEXT)
    except Exception as e:
        LOG.exception("Unexpected error sending invoice for sale %s: %s", record.id, e)
        return InvoiceResult(ok=False, message=FAILURE_TEXT)

    if not isinstance(body, dict) or not body.get("success"):
        reason = body.get("message") if isinstance(body, dict) else body
        LOG.warning("Invoice gateway rejected sale %s: %s", record.id, reason)
        return InvoiceResult(ok=False, message=FAILURE_TEXT)

    LOG.info("Invoice for sale %s sent to %s", record.id, number)
    return InvoiceResult(ok=True, message=body.get("message") or "Invoice sent")
