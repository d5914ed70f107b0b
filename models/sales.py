from dataclasses import dataclass, asdict, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional

from utils.record_store import SALES, append, read_collection

PAYMENT_METHODS = ("cash", "online")

# attribute name -> key in the shared `sell` collection
STORED_KEYS = {
    "product_id": "productId",
    "name": "name",
    "description": "description",
    "unit_price": "unitPrice",
    "quantity": "quantity",
    "total_price_calculated": "totalPriceCalculated",
    "final_price_charged": "finalPriceCharged",
    "discount": "discount",
    "payment_method": "paymentMethod",
    "sold_at": "soldAt",
    "phone_number": "phoneNumber",
}


class StoreWriteError(Exception):
    """The record store refused or failed a write."""


def format_currency(value: float) -> str:
    return f"{value:.2f}"


@dataclass(frozen=True)
class SellRecord:
    product_id: str
    name: str
    description: str
    unit_price: float
    quantity: int
    total_price_calculated: float
    final_price_charged: float
    discount: float
    payment_method: str
    sold_at: str
    phone_number: Optional[str] = None
    id: str = ""

    def to_dict(self) -> Dict:
        return asdict(self)

    def stored_fields(self) -> Dict:
        d = asdict(self)
        return {stored: d[attr] for attr, stored in STORED_KEYS.items()}

    def sold_at_local(self) -> Optional[datetime]:
        return parse_timestamp(self.sold_at)


def _number(value) -> float:
    # records written by older clients may carry null or missing numbers
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def parse_timestamp(value) -> Optional[datetime]:
    """Parse an ISO timestamp into naive local time. Naive inputs are taken as local.

    Missing or malformed values give None.
    """
    if not value or not isinstance(value, str):
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone().replace(tzinfo=None)
    return dt


def _field(data: Dict, attr: str, default=None):
    # snake_case keys are still accepted from records written before the camelCase layout
    stored = STORED_KEYS[attr]
    if stored in data:
        return data[stored]
    return data.get(attr, default)


def record_from_dict(key: str, data: Dict) -> SellRecord:
    return SellRecord(
        id=key,
        product_id=_field(data, "product_id") or "",
        name=_field(data, "name") or "",
        description=_field(data, "description") or "",
        unit_price=_number(_field(data, "unit_price")),
        quantity=int(_number(_field(data, "quantity"))),
        total_price_calculated=_number(_field(data, "total_price_calculated")),
        final_price_charged=_number(_field(data, "final_price_charged")),
        discount=_number(_field(data, "discount")),
        payment_method=_field(data, "payment_method") or "cash",
        sold_at=_field(data, "sold_at") or "",
        phone_number=_field(data, "phone_number") or None,
    )


def records_from_snapshot(snapshot: Optional[Dict]) -> List[SellRecord]:
    if not snapshot:
        return []
    return [record_from_dict(key, value) for key, value in snapshot.items()]


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_sale(product, unit_price: float, quantity: int, final_price: float,
               payment_method: str, phone_number: Optional[str] = None,
               sold_at: Optional[str] = None) -> SellRecord:
    """Assemble a SellRecord; the stored discount is derived from total and final price."""
    if payment_method not in PAYMENT_METHODS:
        raise ValueError(f"Unknown payment method: {payment_method}")
    total = unit_price * quantity
    discount = total - final_price
    return SellRecord(
        product_id=product.id,
        name=product.name,
        description=product.description,
        unit_price=unit_price,
        quantity=int(quantity),
        total_price_calculated=round(total, 2),
        final_price_charged=round(final_price, 2),
        discount=round(discount, 2) if discount > 0 else 0.0,
        payment_method=payment_method,
        sold_at=sold_at or now_iso(),
        phone_number=(phone_number or "").strip() or None,
    )


def record_sale(record: SellRecord) -> SellRecord:
    try:
        key = append(SALES, record.stored_fields())
    except OSError as e:
        raise StoreWriteError(str(e)) from e
    return replace(record, id=key)


def all_sales() -> List[SellRecord]:
    return records_from_snapshot(read_collection(SALES))
