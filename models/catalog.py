from dataclasses import dataclass
from typing import List

from utils.record_store import CATALOG, read_collection


@dataclass(frozen=True)
class ServiceDetail:
    id: str
    name: str
    description: str
    price: float
    created_at: str = ""

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "created_at": self.created_at,
        }


def load_catalog() -> List[ServiceDetail]:
    """Fetch the whole catalog once. A changed catalog needs a reload."""
    data = read_collection(CATALOG)
    return [
        ServiceDetail(
            id=key,
            name=v.get("name", ""),
            description=v.get("description", ""),
            price=float(v.get("price") or 0),
            created_at=v.get("createdAt", ""),
        )
        for key, v in data.items()
    ]


def search(products: List[ServiceDetail], term: str) -> List[ServiceDetail]:
    if not term or term.strip() == "":
        return []
    needle = term.lower()
    return [p for p in products if needle in p.name.lower()]


def find_product(products: List[ServiceDetail], product_id: str) -> ServiceDetail:
    for p in products:
        if p.id == product_id:
            return p
    raise ValueError(f"Unknown product: {product_id}")
