import logging
import threading
from typing import Callable, Dict, List, Optional

from models.sales import SellRecord, records_from_snapshot
from utils import record_store

LOG = logging.getLogger(__name__)


class SalesFeed:
    """Live list of every sale, kept current by a store subscription.

    Each snapshot replaces the whole list. Use start()/stop() (or a with-block)
    to tie the subscription to the lifetime of the consuming view.
    """

    def __init__(self, collection: str = record_store.SALES):
        self.collection = collection
        self._records: List[SellRecord] = []
        self._lock = threading.Lock()
        self._unsubscribe: Optional[Callable[[], None]] = None
        self.deliveries = 0

    @property
    def active(self) -> bool:
        return self._unsubscribe is not None

    @property
    def records(self) -> List[SellRecord]:
        with self._lock:
            return list(self._records)

    def _on_snapshot(self, snapshot: Dict):
        records = records_from_snapshot(snapshot)
        with self._lock:
            self._records = records
            self.deliveries += 1

    def start(self):
        if self.active:
            return self
        self._unsubscribe = record_store.subscribe(self.collection, self._on_snapshot)
        LOG.info("Sales feed subscribed to %s (%d records)", self.collection, len(self._records))
        return self

    def stop(self):
        if not self.active:
            return
        self._unsubscribe()
        self._unsubscribe = None
        LOG.info("Sales feed unsubscribed from %s", self.collection)

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc, tb):
        self.stop()
