import utils.record_store as store
from models.catalog import ServiceDetail
from models.feed import SalesFeed
from models.sales import build_sale, record_sale

VISA = ServiceDetail(id="svc-visa", name="Visa Service", description="", price=500.0)


def test_feed_tracks_store_until_stopped(data_dir):
    record_sale(build_sale(VISA, 500.0, 1, 500.0, "cash"))
    feed = SalesFeed().start()
    assert feed.active
    assert len(feed.records) == 1

    record_sale(build_sale(VISA, 500.0, 2, 800.0, "online"))
    assert len(feed.records) == 2
    assert feed.deliveries == 2

    feed.stop()
    assert not feed.active
    record_sale(build_sale(VISA, 500.0, 1, 500.0, "cash"))
    assert len(feed.records) == 2
    assert store.subscriber_count(store.SALES) == 0


def test_each_snapshot_replaces_the_list(data_dir):
    with SalesFeed() as feed:
        record_sale(build_sale(VISA, 500.0, 1, 500.0, "cash"))
        assert len(feed.records) == 1
        # an external rewrite shrinks the collection; the feed follows it
        store.write_json("sell.json", {})
        store._publish(store.SALES)
        assert feed.records == []
    assert not feed.active


def test_start_twice_subscribes_once(data_dir):
    feed = SalesFeed()
    feed.start()
    feed.start()
    assert store.subscriber_count(store.SALES) == 1
    feed.stop()
    feed.stop()
