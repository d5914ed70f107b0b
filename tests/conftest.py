import pytest

import utils.record_store as store
from models.sales import SellRecord


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    # Redirect the record store into a throwaway directory
    monkeypatch.setattr(store, "_DATA_DIR", tmp_path / "data")
    store.reset_subscriptions()
    store.ensure_defaults()
    yield tmp_path / "data"
    store.reset_subscriptions()


@pytest.fixture
def make_sale():
    counter = {"n": 0}

    def _make(name="Visa Service", final=100.0, method="cash", sold_at="2026-10-17T10:00:00",
              quantity=1, discount=0.0, unit_price=None):
        counter["n"] += 1
        unit = unit_price if unit_price is not None else (final + discount) / quantity
        return SellRecord(
            id=f"sale-{counter['n']}",
            product_id=name.lower().replace(" ", "-"),
            name=name,
            description="",
            unit_price=unit,
            quantity=quantity,
            total_price_calculated=unit * quantity,
            final_price_charged=final,
            discount=discount,
            payment_method=method,
            sold_at=sold_at,
        )

    return _make
