"""
Local MCP server for the service sales counter.

Exposes the catalog, sale recording and the sales reports as FastMCP tools so
an agent can record a sale or read the dashboard figures. Every tool returns
an MCP content array holding a single JSON text item.
"""
import asyncio
import json
import logging
from typing import Any, Dict

from fastmcp import FastMCP

from utils.record_store import ensure_defaults, read_config
from utils.invoice_notifier import send_invoice
from models.catalog import load_catalog, search, find_product
from models.sale_form import SaleForm
from models.sales import StoreWriteError, all_sales
from models.reports import FilterState, dashboard_summary, filter_sales, monthly_series

LOG = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)

server_instructions = """
This MCP server gives access to a travel agency's service catalog and sales
log. It can search services, record a sale and report sales totals for a
period (today, a day, month, year, date range, this/last week or all time).
"""


def _text(payload) -> Dict[str, Any]:
    return {"content": [{"type": "text", "text": json.dumps(payload)}]}


def _parse_arg(arg: str) -> Dict:
    data = json.loads(arg) if arg and arg.strip() else {}
    if not isinstance(data, dict):
        raise ValueError("Argument must be a JSON object")
    return data


def _selection(data: Dict):
    return FilterState().select(
        data.get("mode", "today"),
        value=str(data.get("value") or ""),
        start=str(data.get("start") or ""),
        end=str(data.get("end") or ""),
    )


async def catalog_search(term: str) -> Dict[str, Any]:
    """
    Find catalog services whose name contains `term` (case-insensitive).

    Returns:
        MCP content array with JSON: {"results": [{id, name, description, price, created_at}, ...]}

    Edge cases:
        - A blank term returns no results rather than the whole catalog.
    """
    hits = search(load_catalog(), term)
    return _text({"results": [p.to_dict() for p in hits]})


async def record_sale(arg: str) -> Dict[str, Any]:
    """
    Record one sale.

    The `arg` parameter is a JSON object:
        {"product_id": "svc-visa", "quantity": 2, "discount": 50,
         "payment_method": "cash", "phone_number": "+91..."}

    Only `product_id` is required. A discount larger than the total is
    capped so the final price is never negative. When a phone number is
    given an invoice is sent afterwards; an invoice failure is reported
    under `invoice` but the sale stays recorded.

    Returns:
        MCP content array with {"sale": {...}, "invoice": {...}|null} or {"error": "..."}.
    """
    try:
        data = _parse_arg(arg)
        form = SaleForm(load_catalog())
        form.select_product(find_product(form.products, data.get("product_id")))
        if "quantity" in data:
            form.set_quantity(data["quantity"])
        if "discount" in data:
            form.set_discount(data["discount"])
        form.set_payment_method(data.get("payment_method", "cash"))
        form.set_phone_number(str(data.get("phone_number") or ""))
        record = form.sell()
    except (ValueError, StoreWriteError) as e:
        return _text({"error": str(e)})

    invoice = None
    if record.phone_number:
        cfg = read_config()
        # the gateway call blocks for up to its timeout; keep it off the event loop
        result = await asyncio.to_thread(send_invoice, record, cfg["invoice"], cfg.get("currency", "₹"))
        invoice = {"ok": result.ok, "message": result.message}
    return _text({"sale": record.to_dict(), "invoice": invoice})


async def sales_summary(arg: str = "") -> Dict[str, Any]:
    """
    Summary totals and product rollups for a period.

    The `arg` parameter is an optional JSON filter:
        {"mode": "today"} (default), {"mode": "all"},
        {"mode": "day", "value": "2026-10-17"},
        {"mode": "month", "value": "2026-10"},
        {"mode": "year", "value": "2026"},
        {"mode": "range", "start": "2026-10-01", "end": "2026-10-15"},
        {"mode": "this_week"} or {"mode": "last_week"}.

    Returns:
        MCP content array with {"summary": {title, stats, by_quantity, by_amount, monthly, count}}.

    Edge cases:
        - A day/month/year/range filter without its value yields zero totals.
    """
    try:
        summary = dashboard_summary(all_sales(), _selection(_parse_arg(arg)))
    except ValueError as e:
        return _text({"error": str(e)})
    return _text({"summary": summary})


async def sales_list(arg: str = "") -> Dict[str, Any]:
    """
    Individual sale records for a period; `arg` takes the same JSON filter as `sales_summary`.

    Edge cases:
        - Large periods ("all") may produce big payloads.
    """
    try:
        rows = filter_sales(all_sales(), _selection(_parse_arg(arg)))
    except ValueError as e:
        return _text({"error": str(e)})
    return _text({"sales": [r.to_dict() for r in rows]})


async def monthly_sales() -> Dict[str, Any]:
    """Cash and online revenue per calendar month over every recorded sale."""
    try:
        monthly = monthly_series(all_sales())
    except ValueError as e:
        return _text({"error": str(e)})
    return _text({"monthly": monthly})


TOOLS = (catalog_search, record_sale, sales_summary, sales_list, monthly_sales)


def create_server() -> FastMCP:
    ensure_defaults()
    mcp = FastMCP(name="Service Sales MCP", instructions=server_instructions)
    for tool in TOOLS:
        mcp.tool()(tool)
    return mcp


def main():
    server = create_server()
    LOG.info("Starting local MCP server on 0.0.0.0:8000 (HTTP)")
    server.run(transport="http", host="0.0.0.0", port=8000, path="/mcp")


if __name__ == "__main__":
    main()
