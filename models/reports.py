import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional

from models.sales import SellRecord

MODES = ("today", "all", "day", "month", "year", "range", "this_week", "last_week")
SORT_KEYS = ("total_quantity", "total_amount", "total_discount")
MONTH_LABELS = [calendar.month_abbr[i] for i in range(1, 13)]


@dataclass(frozen=True)
class FilterSelection:
    mode: str = "today"
    value: str = ""  # YYYY-MM-DD for day, YYYY-MM for month, YYYY for year
    start: str = ""  # YYYY-MM-DD, range only
    end: str = ""

    def to_dict(self) -> Dict:
        return {"mode": self.mode, "value": self.value, "start": self.start, "end": self.end}


class FilterState:
    """The dashboard's one active filter; choosing a mode clears the others' inputs."""

    def __init__(self):
        self.selection = FilterSelection()

    def select(self, mode: str, value: str = "", start: str = "", end: str = "") -> FilterSelection:
        if mode not in MODES:
            raise ValueError(f"Unknown filter mode: {mode}")
        if mode == "range":
            self.selection = FilterSelection(mode=mode, start=start or "", end=end or "")
        elif mode in ("day", "month", "year"):
            self.selection = FilterSelection(mode=mode, value=value or "")
        else:
            self.selection = FilterSelection(mode=mode)
        return self.selection

    def reset(self) -> FilterSelection:
        self.selection = FilterSelection()
        return self.selection


def start_of_week(today: date) -> datetime:
    # weeks start on Sunday; date.weekday() has Monday=0
    offset = (today.weekday() + 1) % 7
    return datetime.combine(today - timedelta(days=offset), time.min)


def _predicate(selection: FilterSelection, now: datetime):
    mode = selection.mode
    if mode == "today":
        today = now.date()
        return lambda ts: ts.date() == today
    if mode == "day":
        if not selection.value:
            return None
        day = date.fromisoformat(selection.value)
        return lambda ts: ts.date() == day
    if mode == "month":
        if not selection.value:
            return None
        year, month = (int(p) for p in selection.value.split("-")[:2])
        return lambda ts: ts.year == year and ts.month == month
    if mode == "year":
        if not selection.value:
            return None
        year = int(selection.value)
        return lambda ts: ts.year == year
    if mode == "range":
        if not selection.start or not selection.end:
            return None
        lo = datetime.combine(date.fromisoformat(selection.start), time.min)
        hi = datetime.combine(date.fromisoformat(selection.end), time.max)
        return lambda ts: lo <= ts <= hi
    if mode == "this_week":
        lo = start_of_week(now.date())
        return lambda ts: ts >= lo
    if mode == "last_week":
        lo = start_of_week(now.date()) - timedelta(days=7)
        hi = datetime.combine(lo.date() + timedelta(days=6), time.max)
        return lambda ts: lo <= ts <= hi
    raise ValueError(f"Unknown filter mode: {mode}")


def filter_sales(records: List[SellRecord], selection: FilterSelection,
                 now: Optional[datetime] = None) -> List[SellRecord]:
    """Return the records matching `selection`; the input list is left untouched.

    A mode whose value is still empty matches nothing. Records without a
    readable timestamp only match `all`.
    """
    if selection.mode == "all":
        return list(records)
    pred = _predicate(selection, now or datetime.now())
    if pred is None:
        return []
    matched = []
    for r in records:
        ts = r.sold_at_local()
        if ts is not None and pred(ts):
            matched.append(r)
    return matched


def sales_stats(records: List[SellRecord]) -> Dict:
    cash = [r for r in records if r.payment_method == "cash"]
    online = [r for r in records if r.payment_method == "online"]
    return {
        "total_quantity_sold": sum(r.quantity for r in records),
        "total_money_collected": round(sum(r.final_price_charged for r in records), 2),
        "total_discount_given": round(sum(r.discount for r in records), 2),
        "total_cash_sales": round(sum(r.final_price_charged for r in cash), 2),
        "total_online_sales": round(sum(r.final_price_charged for r in online), 2),
        "cash_transactions": len(cash),
        "online_transactions": len(online),
    }


def product_rollup(records: List[SellRecord]) -> List[Dict]:
    """Group by product name in first-seen order."""
    agg: Dict[str, Dict] = {}
    for r in records:
        row = agg.setdefault(r.name, {
            "name": r.name,
            "total_quantity": 0,
            "total_amount": 0.0,
            "total_discount": 0.0,
        })
        row["total_quantity"] += r.quantity
        row["total_amount"] += r.final_price_charged
        row["total_discount"] += r.discount
    for row in agg.values():
        row["total_amount"] = round(row["total_amount"], 2)
        row["total_discount"] = round(row["total_discount"], 2)
    return list(agg.values())


def sort_rollup(rows: List[Dict], key: str = "total_quantity", direction: str = "descending") -> List[Dict]:
    if key not in SORT_KEYS:
        raise ValueError(f"Cannot sort by {key}")
    # sorted() is stable for reverse=True too, so ties keep input order
    return sorted(rows, key=lambda row: row[key], reverse=(direction == "descending"))


class SortState:
    def __init__(self, key: str = "total_quantity"):
        self.key = key
        self.direction = "descending"

    def request_sort(self, key: str):
        if key not in SORT_KEYS:
            raise ValueError(f"Cannot sort by {key}")
        if self.key == key and self.direction == "descending":
            self.direction = "ascending"
        else:
            self.direction = "descending"
        self.key = key

    def apply(self, rows: List[Dict]) -> List[Dict]:
        return sort_rollup(rows, self.key, self.direction)

    def to_dict(self) -> Dict:
        return {"key": self.key, "direction": self.direction}


def monthly_series(records: List[SellRecord]) -> List[Dict]:
    """Cash/online revenue per calendar month. Months of different years share a bucket."""
    buckets = [{"month": label, "cash": 0.0, "online": 0.0} for label in MONTH_LABELS]
    for r in records:
        ts = r.sold_at_local()
        if ts is None or r.payment_method not in ("cash", "online"):
            continue
        bucket = buckets[ts.month - 1]
        bucket[r.payment_method] += r.final_price_charged
    for b in buckets:
        b["cash"] = round(b["cash"], 2)
        b["online"] = round(b["online"], 2)
    return buckets


def filter_title(selection: FilterSelection) -> str:
    if selection.mode == "today":
        return "Today's Sales"
    if selection.mode == "all":
        return "All Sales"
    if selection.mode in ("day", "month", "year") and selection.value:
        return f"Sales for {selection.value}"
    if selection.mode == "range" and selection.start and selection.end:
        return f"Sales from {selection.start} to {selection.end}"
    if selection.mode == "this_week":
        return "This Week's Sales"
    if selection.mode == "last_week":
        return "Last Week's Sales"
    return "Sales Overview"


def day_options(year: int, month: int) -> List[int]:
    return list(range(1, calendar.monthrange(year, month)[1] + 1))


def dashboard_summary(records: List[SellRecord], selection: FilterSelection,
                      now: Optional[datetime] = None) -> Dict:
    filtered = filter_sales(records, selection, now)
    rollup = product_rollup(filtered)
    return {
        "filter": selection.to_dict(),
        "title": filter_title(selection),
        "stats": sales_stats(filtered),
        "by_quantity": sort_rollup(rollup, "total_quantity"),
        "by_amount": sort_rollup(rollup, "total_amount"),
        "monthly": monthly_series(records),
        "count": len(filtered),
    }
