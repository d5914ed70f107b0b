import atexit
import logging

from flask import Flask, jsonify, request, render_template
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from utils.record_store import ensure_defaults, read_config, write_json, poll_changes
from utils.invoice_notifier import send_invoice
from models.catalog import load_catalog, search, find_product
from models.feed import SalesFeed
from models.sale_form import SaleForm, SaleValidationError
from models.sales import StoreWriteError
from models.reports import (
    FilterState,
    SortState,
    dashboard_summary,
    day_options,
    filter_sales,
    product_rollup,
)

LOG = logging.getLogger(__name__)


class Station:
    """Per-process state of one sales counter: the draft sale, the dashboard and its feed."""

    def __init__(self, catalog, dispatch_invoice):
        self.catalog = catalog
        self.form = SaleForm(catalog, dispatch_invoice=dispatch_invoice)
        self.filters = FilterState()
        self.sort = SortState("total_quantity")
        self.feed = SalesFeed()


def _payload():
    return request.get_json(force=True, silent=True) or {}


def _error(message, status=400):
    return jsonify({"ok": False, "error": message}), status


def create_app(test_config=None):
    ensure_defaults()
    app = Flask(__name__)
    app.config.update(START_SCHEDULER=True, INVOICE_DISPATCH=None)
    if test_config:
        app.config.update(test_config)

    scheduler = BackgroundScheduler(daemon=True)

    def deliver_invoice(record):
        cfg = read_config()
        result = send_invoice(record, cfg["invoice"], cfg.get("currency", "₹"))
        if not result.ok:
            station.form.warn(result.message, sale_id=record.id)
        return result

    def dispatch_invoice(record):
        # one-shot job, runs as soon as the scheduler picks it up
        scheduler.add_job(deliver_invoice, args=[record], id=f"invoice-{record.id}")

    station = Station(load_catalog(), app.config["INVOICE_DISPATCH"] or dispatch_invoice)
    station.feed.start()
    app.extensions["station"] = station

    def schedule_jobs():
        cfg = read_config()
        seconds = int(cfg.get("feed_poll_seconds", 5))
        scheduler.add_job(poll_changes, trigger=IntervalTrigger(seconds=seconds),
                          id="feed_poll", replace_existing=True)
        if not scheduler.running:
            scheduler.start()

    if app.config["START_SCHEDULER"]:
        schedule_jobs()

    def shutdown():
        station.feed.stop()
        if scheduler.running:
            scheduler.shutdown(wait=False)

    atexit.register(shutdown)

    # -------- Catalog --------
    @app.get("/catalog")
    def catalog_list():
        return jsonify({"ok": True, "catalog": [p.to_dict() for p in station.catalog]})

    @app.get("/catalog/search")
    def catalog_search():
        hits = search(station.catalog, request.args.get("q", ""))
        return jsonify({"ok": True, "results": [p.to_dict() for p in hits]})

    # -------- Sale entry --------
    def form_state(status=200):
        return jsonify({"ok": True, "form": station.form.as_dict()}), status

    @app.get("/sale/state")
    def sale_state():
        return form_state()

    @app.post("/sale/search")
    def sale_search():
        station.form.search(str(_payload().get("term", "")))
        return form_state()

    @app.post("/sale/select")
    def sale_select():
        try:
            product = find_product(station.catalog, _payload().get("product_id"))
        except ValueError as e:
            return _error(str(e), 404)
        station.form.select_product(product)
        return form_state()

    @app.post("/sale/quantity")
    def sale_quantity():
        station.form.set_quantity(_payload().get("quantity"))
        return form_state()

    @app.post("/sale/unit-price")
    def sale_unit_price():
        station.form.set_unit_price(_payload().get("unit_price", ""))
        return form_state()

    @app.post("/sale/discount")
    def sale_discount():
        station.form.set_discount(_payload().get("discount", ""))
        return form_state()

    @app.post("/sale/details")
    def sale_details():
        data = _payload()
        if "phone_number" in data:
            station.form.set_phone_number(str(data["phone_number"] or ""))
        if "payment_method" in data:
            try:
                station.form.set_payment_method(data["payment_method"])
            except SaleValidationError as e:
                return _error(str(e))
        return form_state()

    @app.post("/sale/submit")
    def sale_submit():
        try:
            record = station.form.sell()
        except SaleValidationError as e:
            return _error(str(e))
        except StoreWriteError:
            return _error(station.form.message["text"], 500)
        return jsonify({"ok": True, "sale": record.to_dict(), "form": station.form.as_dict()})

    # -------- Dashboard --------
    @app.get("/sales")
    def sales_list():
        try:
            rows = filter_sales(station.feed.records, station.filters.selection)
        except ValueError as e:
            return _error(str(e))
        return jsonify({"ok": True, "filter": station.filters.selection.to_dict(),
                        "sales": [r.to_dict() for r in rows]})

    @app.get("/dashboard/summary")
    def dashboard():
        records = station.feed.records
        try:
            summary = dashboard_summary(records, station.filters.selection)
            rows = filter_sales(records, station.filters.selection)
        except ValueError as e:
            return _error(str(e))
        summary["report"] = station.sort.apply(product_rollup(rows))
        summary["sort"] = station.sort.to_dict()
        return jsonify({"ok": True, "summary": summary})

    @app.post("/dashboard/filter")
    def dashboard_filter():
        data = _payload()
        try:
            selection = station.filters.select(
                data.get("mode", "today"),
                value=str(data.get("value") or ""),
                start=str(data.get("start") or ""),
                end=str(data.get("end") or ""),
            )
        except ValueError as e:
            return _error(str(e))
        return jsonify({"ok": True, "filter": selection.to_dict()})

    @app.post("/dashboard/filter/reset")
    def dashboard_filter_reset():
        return jsonify({"ok": True, "filter": station.filters.reset().to_dict()})

    @app.post("/dashboard/sort")
    def dashboard_sort():
        try:
            station.sort.request_sort(_payload().get("key", ""))
        except ValueError as e:
            return _error(str(e))
        return jsonify({"ok": True, "sort": station.sort.to_dict()})

    @app.get("/dashboard/days")
    def dashboard_days():
        try:
            year = int(request.args["year"])
            month = int(request.args["month"])
            days = day_options(year, month)
        except (KeyError, ValueError) as e:
            return _error(f"Provide a valid year and month ({e})")
        return jsonify({"ok": True, "days": days})

    # -------- Admin --------
    @app.post("/config")
    def config_update():
        data = _payload()
        cfg = read_config()
        allowed = {"invoice", "currency", "feed_poll_seconds"}
        changed = {}
        for k, v in data.items():
            if k in allowed:
                cfg[k] = v
                changed[k] = v
        write_json("config.json", cfg)
        if "feed_poll_seconds" in changed and scheduler.running:
            schedule_jobs()
        return jsonify({"ok": True, "changed": changed, "config": cfg})

    # -------- Pages --------
    @app.get("/")
    def index():
        return render_template("dashboard.html", currency=read_config().get("currency", "₹"))

    @app.get("/sale")
    def sale_page():
        return render_template("sale.html", currency=read_config().get("currency", "₹"))

    return app


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    create_app().run(host="0.0.0.0", port=5000, debug=True)
