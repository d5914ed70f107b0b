from dataclasses import replace
from unittest.mock import MagicMock, patch

import requests

from models.sales import SellRecord
from utils.invoice_notifier import FAILURE_TEXT, build_invoice_message, build_payload, send_invoice

CFG = {
    "endpoint": "http://gateway.test/api/send-whatsapp",
    "media_url": "http://gateway.test/logo.png",
    "business_name": "AQSA TRAVELS",
    "timeout_seconds": 3,
}

RECORD = SellRecord(
    id="sale-1",
    product_id="svc-visa",
    name="Visa Service",
    description="",
    unit_price=500.0,
    quantity=2,
    total_price_calculated=1000.0,
    final_price_charged=900.0,
    discount=100.0,
    payment_method="online",
    sold_at="2026-10-17T14:05:09",
    phone_number="+911234567890",
)


def _response(body, status=200):
    resp = MagicMock()
    resp.json.return_value = body
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    return resp


def test_message_lists_sale_fields():
    text = build_invoice_message(RECORD, "AQSA TRAVELS")
    assert "*Product Name:* Visa Service" in text
    assert "*Unit Price:* ₹500.00" in text
    assert "*Quantity:* 2" in text
    assert "*Discount:* ₹100.00" in text
    assert "*Final Price Charged:* ₹900.00" in text
    assert "*Payment Method:* Online" in text
    assert "*Date:* 17/10/2026, 02:05:09 PM" in text
    assert text.endswith("*AQSA TRAVELS*")
    assert build_invoice_message(RECORD, "AQSA TRAVELS") == text


def test_message_without_sale_date():
    text = build_invoice_message(replace(RECORD, sold_at=""), "AQSA TRAVELS")
    assert "*Date:* -" in text


def test_payload_shape():
    payload = build_payload(RECORD, "+911234567890", CFG)
    assert payload["number"] == "+911234567890"
    assert payload["type"] == "media"
    assert payload["media_url"] == CFG["media_url"]


def test_successful_send():
    with patch("requests.post", return_value=_response({"success": True, "message": "queued"})) as mock_post:
        result = send_invoice(RECORD, CFG)
    assert result.ok and result.message == "queued"
    args, kwargs = mock_post.call_args
    assert args[0] == CFG["endpoint"]
    assert kwargs["json"]["number"] == RECORD.phone_number
    assert kwargs["timeout"] == 3.0


def test_gateway_rejection_is_a_warning():
    with patch("requests.post", return_value=_response({"success": False, "message": "bad number"})):
        result = send_invoice(RECORD, CFG)
    assert not result.ok
    assert result.message == FAILURE_TEXT


def test_http_error_status_is_a_warning():
    with patch("requests.post", return_value=_response({}, status=502)):
        assert send_invoice(RECORD, CFG).ok is False


def test_transport_error_is_a_warning():
    with patch("requests.post") as mock_post:
        mock_post.side_effect = requests.Timeout("Request timed out")
        result = send_invoice(RECORD, CFG)
    assert result.ok is False
    assert result.message == FAILURE_TEXT


def test_unexpected_error_is_a_warning():
    with patch("requests.post", side_effect=RuntimeError("boom")):
        assert send_invoice(RECORD, CFG).message == FAILURE_TEXT


def test_no_phone_number_sends_nothing():
    record = SellRecord(**{**RECORD.to_dict(), "phone_number": None})
    with patch("requests.post") as mock_post:
        assert send_invoice(record, CFG).ok is False
    mock_post.assert_not_called()
