import logging
import threading
from typing import Callable, Dict, List, Optional

from models.catalog import ServiceDetail, search
from models.sales import (
    PAYMENT_METHODS,
    SellRecord,
    StoreWriteError,
    build_sale,
    format_currency,
    record_sale,
)

LOG = logging.getLogger(__name__)

SUCCESS_TEXT = "Product sold successfully. Invoice sent via WhatsApp (if number provided)."
NO_PRODUCT_TEXT = "No product selected to sell."
BAD_PRICE_TEXT = "Final price calculation error. Please review the inputs."
STORE_FAILURE_TEXT = "Failed to sell product."


class SaleValidationError(ValueError):
    pass


def _parse_float(value) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class SaleForm:
    """Working sale draft behind the sale-entry screen.

    Text fields (unit price, discount, final price) are kept as the strings the
    screen shows; `total` is numeric. `dispatch_invoice` receives each recorded
    sale that carries a phone number and must not block.
    """

    def __init__(self, products: List[ServiceDetail],
                 dispatch_invoice: Optional[Callable[[SellRecord], None]] = None):
        self.products = list(products)
        self.dispatch_invoice = dispatch_invoice
        self.message: Optional[Dict[str, str]] = None
        self._message_lock = threading.Lock()
        self._clear()

    def _clear(self):
        self.search_term = ""
        self.suggestions: List[ServiceDetail] = []
        self.show_suggestions = False
        self.selected: Optional[ServiceDetail] = None
        self.unit_price = ""
        self.quantity = 1
        self.total = 0.0
        self.discount_input = ""
        self.final_price = ""
        self.phone_number = ""
        self.payment_method = "cash"

    # -------- Lookup --------
    def search(self, term: str) -> List[ServiceDetail]:
        self.search_term = term
        self.suggestions = search(self.products, term)
        self.show_suggestions = bool(term.strip())
        return self.suggestions

    def select_product(self, product: ServiceDetail):
        self.selected = product
        self.unit_price = format_currency(product.price)
        self.quantity = 1
        self.discount_input = ""
        self.search_term = product.name
        self.show_suggestions = False
        with self._message_lock:
            self.message = None
        self._recalculate()

    # -------- Entry --------
    def set_quantity(self, value):
        try:
            qty = int(value)
        except (TypeError, ValueError):
            qty = 1
        self.quantity = max(1, qty)
        self.discount_input = ""
        self._recalculate()

    def set_unit_price(self, value):
        self.unit_price = str(value)
        self.discount_input = ""
        self._recalculate()

    def set_discount(self, value):
        self.discount_input = "" if value is None else str(value)
        self._recalculate()

    def set_phone_number(self, value: str):
        self.phone_number = value or ""

    def set_payment_method(self, method: str):
        if method not in PAYMENT_METHODS:
            raise SaleValidationError(f"Payment method must be one of: {', '.join(PAYMENT_METHODS)}")
        self.payment_method = method

    def _recalculate(self):
        price = _parse_float(self.unit_price)
        if self.selected is None or not self.unit_price or price is None:
            self.total = 0.0
            self.discount_input = ""
            self.final_price = ""
            return

        self.total = price * self.quantity
        discount = _parse_float(self.discount_input)
        if discount is None or discount < 0:
            discount = 0.0
        final = self.total - discount
        if final < 0:
            final = 0.0
            # the displayed discount snaps back to the total
            self.discount_input = format_currency(self.total)
        self.final_price = format_currency(final)

    # -------- Submit --------
    def sell(self) -> SellRecord:
        if self.selected is None:
            self._set_message("error", NO_PRODUCT_TEXT)
            raise SaleValidationError(NO_PRODUCT_TEXT)

        final = _parse_float(self.final_price)
        if final is None or final < 0:
            self._set_message("error", BAD_PRICE_TEXT)
            raise SaleValidationError(BAD_PRICE_TEXT)

        record = build_sale(
            self.selected,
            unit_price=float(self.unit_price),
            quantity=self.quantity,
            final_price=final,
            payment_method=self.payment_method,
            phone_number=self.phone_number,
        )
        try:
            record = record_sale(record)
        except StoreWriteError:
            LOG.exception("Could not record sale of %s", self.selected.name)
            self._set_message("error", STORE_FAILURE_TEXT)
            raise

        LOG.info("Sold %s x%d for %.2f (%s)", record.name, record.quantity,
                 record.final_price_charged, record.payment_method)
        self._set_message("success", SUCCESS_TEXT, sale_id=record.id)
        self._clear()

        if record.phone_number and self.dispatch_invoice is not None:
            self.dispatch_invoice(record)
        return record

    def _set_message(self, kind: str, text: str, sale_id: Optional[str] = None):
        message = {"type": kind, "text": text}
        if sale_id:
            message["sale_id"] = sale_id
        with self._message_lock:
            self.message = message

    def warn(self, text: str, sale_id: Optional[str] = None):
        """Report a failure from a background job; `sale_id` names the sale it concerns."""
        self._set_message("error", text, sale_id=sale_id)

    def as_dict(self) -> Dict:
        return {
            "search_term": self.search_term,
            "suggestions": [p.to_dict() for p in self.suggestions] if self.show_suggestions else [],
            "selected": self.selected.to_dict() if self.selected else None,
            "unit_price": self.unit_price,
            "quantity": self.quantity,
            "total": format_currency(self.total),
            "discount": self.discount_input,
            "final_price": self.final_price,
            "phone_number": self.phone_number,
            "payment_method": self.payment_method,
            "message": self.message,
        }
