"""Key/value persistence for per-session cart state.

The storefront keeps a shopper's cart between requests the way a browser
keeps it in localStorage: a flat namespace of string values under a few
well-known keys. ``KeyValueStore`` is the port; ``MongoSessionStore`` keeps
one document per (session, key) pair.
"""
import json
import logging
from typing import Any, Optional, Protocol

from pymongo.collection import Collection

logger = logging.getLogger("kstore.storage")

CART_ITEMS_KEY = "cartItems"
SHIPPING_ADDRESS_KEY = "shippingAddress"
PAYMENT_METHOD_KEY = "paymentMethod"
APPLIED_COUPON_KEY = "appliedCoupon"


class KeyValueStore(Protocol):
    def get_item(self, key: str) -> Optional[str]:
        ...

    def set_item(self, key: str, value: str) -> None:
        ...

    def remove_item(self, key: str) -> None:
        ...


class MongoSessionStore:
    """Session-scoped key/value store backed by a MongoDB collection."""

    def __init__(self, collection: Collection, session_id: str):
        self.collection = collection
        self.session_id = session_id

    def get_item(self, key: str) -> Optional[str]:
        doc = self.collection.find_one({"session_id": self.session_id, "key": key})
        return doc.get("value") if doc else None

    def set_item(self, key: str, value: str) -> None:
        self.collection.update_one(
            {"session_id": self.session_id, "key": key},
            {"$set": {"value": value}},
            upsert=True,
        )

    def remove_item(self, key: str) -> None:
        self.collection.delete_one({"session_id": self.session_id, "key": key})


def read_json(store: KeyValueStore, key: str, default: Any = None) -> Any:
    """Load a JSON value, dropping the key if it cannot be parsed."""
    raw = store.get_item(key)
    if raw is None:
        return default
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning("Dropping unreadable %s from session storage", key)
        store.remove_item(key)
        return default


def write_json(store: KeyValueStore, key: str, value: Any) -> None:
    store.set_item(key, json.dumps(value))
