import json
import logging
import os
import random
import tempfile
import threading
import time
from typing import Callable, Dict, List, Optional

LOG = logging.getLogger(__name__)

_DATA_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "data")
_FILE_LOCK = threading.RLock()

CATALOG = "servicedetails"
SALES = "sell"

DEFAULTS = {
    "servicedetails.json": {
        "svc-visa": {
            "name": "Visa Service",
            "description": "Tourist visa application and processing",
            "price": 500.0,
            "createdAt": "2024-01-01T00:00:00+00:00",
        },
        "svc-ticket": {
            "name": "Air Ticket Booking",
            "description": "Domestic or international flight booking",
            "price": 250.0,
            "createdAt": "2024-01-01T00:00:00+00:00",
        },
        "svc-passport": {
            "name": "Passport Assistance",
            "description": "Form filling and appointment booking",
            "price": 300.0,
            "createdAt": "2024-01-01T00:00:00+00:00",
        },
    },
    "sell.json": {},
    "config.json": {
        "invoice": {
            "endpoint": "http://localhost:3000/api/send-whatsapp",
            "media_url": "https://raw.githubusercontent.com/mudassir47/public/refs/heads/main/aqsa.png",
            "business_name": "AQSA TRAVELS",
            "timeout_seconds": 10,
        },
        "currency": "₹",
        "feed_poll_seconds": 5,
    },
}

# collection name -> list of snapshot callbacks
_subscribers: Dict[str, List[Callable[[Dict], None]]] = {}
# collection name -> mtime of the file at the last published snapshot
_seen_mtimes: Dict[str, float] = {}

_PUSH_CHARS = "-0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz"


def data_path(filename: str) -> str:
    os.makedirs(_DATA_DIR, exist_ok=True)
    return os.path.join(_DATA_DIR, filename)


def _collection_file(name: str) -> str:
    return f"{name}.json"


def _atomic_write(path: str, data_obj):
    tmp_fd, tmp_path = tempfile.mkstemp(prefix=".tmp_", dir=os.path.dirname(path))
    try:
        with os.fdopen(tmp_fd, "w", encoding="utf-8") as f:
            json.dump(data_obj, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)


def ensure_defaults():
    os.makedirs(_DATA_DIR, exist_ok=True)
    for fname, default in DEFAULTS.items():
        path = data_path(fname)
        if not os.path.exists(path):
            with _FILE_LOCK:
                _atomic_write(path, default)


def read_json(filename: str):
    path = data_path(filename)
    with _FILE_LOCK:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)


def write_json(filename: str, obj):
    path = data_path(filename)
    with _FILE_LOCK:
        _atomic_write(path, obj)


def read_config() -> Dict:
    return read_json("config.json")


def generate_key(now_ms: Optional[int] = None) -> str:
    """Chronologically sortable record key: 8 chars of timestamp + 12 random chars."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    stamp = []
    for _ in range(8):
        stamp.append(_PUSH_CHARS[now_ms % 64])
        now_ms //= 64
    suffix = "".join(random.choice(_PUSH_CHARS) for _ in range(12))
    return "".join(reversed(stamp)) + suffix


def read_collection(name: str) -> Dict[str, Dict]:
    """Return every record of a collection keyed by record id ({} when empty)."""
    path = data_path(_collection_file(name))
    if not os.path.exists(path):
        return {}
    data = read_json(_collection_file(name))
    # an emptied collection may have been written as null or []
    return data if isinstance(data, dict) else {}


def append(name: str, record: Dict) -> str:
    """Store `record` under a freshly generated key and notify subscribers."""
    with _FILE_LOCK:
        data = read_collection(name)
        key = generate_key()
        while key in data:
            key = generate_key()
        data[key] = record
        write_json(_collection_file(name), data)
    LOG.info("Appended record %s to %s", key, name)
    _publish(name)
    return key


def subscribe(name: str, callback: Callable[[Dict], None]) -> Callable[[], None]:
    """Register a snapshot callback; it fires once now and after every change.

    Returns a callable that removes the registration.
    """
    _subscribers.setdefault(name, []).append(callback)
    _seen_mtimes.setdefault(name, _mtime(name))
    callback(read_collection(name))

    def unsubscribe():
        callbacks = _subscribers.get(name, [])
        if callback in callbacks:
            callbacks.remove(callback)
        if not callbacks:
            _subscribers.pop(name, None)
            _seen_mtimes.pop(name, None)

    return unsubscribe


def subscriber_count(name: str) -> int:
    return len(_subscribers.get(name, []))


def _mtime(name: str) -> Optional[float]:
    path = data_path(_collection_file(name))
    if not os.path.exists(path):
        return None
    return os.path.getmtime(path)


def _publish(name: str):
    callbacks = list(_subscribers.get(name, []))
    if not callbacks:
        return
    snapshot = read_collection(name)
    _seen_mtimes[name] = _mtime(name)
    for cb in callbacks:
        cb(snapshot)


def poll_changes() -> List[str]:
    """Republish snapshots of subscribed collections whose file changed on disk.

    Picks up records appended by another process sharing the same data directory.
    """
    changed = []
    for name in list(_subscribers):
        current = _mtime(name)
        if current != _seen_mtimes.get(name):
            _publish(name)
            changed.append(name)
    return changed


def reset_subscriptions():
    _subscribers.clear()
    _seen_mtimes.clear()
