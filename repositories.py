"""MongoDB-backed repositories.

Business code depends on the Protocols; ``main`` wires the Mongo classes and
tests wire in-memory doubles.
"""
from datetime import datetime
from typing import List, Optional, Protocol

from pymongo import DESCENDING
from pymongo.database import Database

from database import create_document, get_documents, to_document, to_object_id, to_str_id
from schemas import Coupon, CouponUsage, Order, Product, UserInfo, utc_now


class ProductRepository(Protocol):
    def get(self, product_id: str) -> Optional[Product]:
        ...

    def list(self, q: Optional[str] = None, category: Optional[str] = None) -> List[Product]:
        ...

    def create(self, product: Product) -> Product:
        ...

    def adjust_stock(self, product_id: str, delta: int) -> None:
        ...


class CouponRepository(Protocol):
    def find_by_code(self, code: str) -> Optional[Coupon]:
        ...

    def list_active(self, now: datetime) -> List[Coupon]:
        ...

    def record_usage(self, code: str, usage: CouponUsage) -> None:
        ...


class OrderRepository(Protocol):
    def insert(self, order: Order) -> Order:
        ...

    def get(self, order_id: str) -> Optional[Order]:
        ...

    def list_for_user(self, user_id: str) -> List[Order]:
        ...

    def save(self, order: Order) -> Order:
        ...


class UserRepository(Protocol):
    def get(self, user_id: str) -> Optional[UserInfo]:
        ...


class MongoProductRepository:
    collection = "product"

    def __init__(self, db: Database):
        self.db = db

    def get(self, product_id: str) -> Optional[Product]:
        oid = to_object_id(product_id)
        if oid is None:
            return None
        doc = self.db[self.collection].find_one({"_id": oid})
        return Product.model_validate(to_str_id(doc)) if doc else None

    def list(self, q: Optional[str] = None, category: Optional[str] = None) -> List[Product]:
        filt = {}
        if q:
            filt["$or"] = [
                {"name": {"$regex": q, "$options": "i"}},
                {"description": {"$regex": q, "$options": "i"}},
            ]
        if category:
            filt["category"] = category
        return [Product.model_validate(d) for d in get_documents(self.db, self.collection, filt, limit=200)]

    def create(self, product: Product) -> Product:
        pid = create_document(self.db, self.collection, product)
        return product.model_copy(update={"id": pid})

    def adjust_stock(self, product_id: str, delta: int) -> None:
        self.db[self.collection].update_one(
            {"_id": to_object_id(product_id)},
            {"$inc": {"countInStock": delta, "salesCount": -delta}},
        )


class MongoCouponRepository:
    collection = "coupon"

    def __init__(self, db: Database):
        self.db = db

    def find_by_code(self, code: str) -> Optional[Coupon]:
        doc = self.db[self.collection].find_one({"code": code.upper()})
        return Coupon.model_validate(to_str_id(doc)) if doc else None

    def list_active(self, now: datetime) -> List[Coupon]:
        filt = {
            "isActive": True,
            "startDate": {"$lte": now},
            "endDate": {"$gte": now},
            "$or": [
                {"usageLimit": None},
                {"$expr": {"$lt": ["$usageCount", "$usageLimit"]}},
            ],
        }
        return [Coupon.model_validate(d) for d in get_documents(self.db, self.collection, filt)]

    def record_usage(self, code: str, usage: CouponUsage) -> None:
        self.db[self.collection].update_one(
            {"code": code.upper()},
            {
                "$push": {"usedBy": usage.model_dump(by_alias=True)},
                "$inc": {"usageCount": 1},
            },
        )


class MongoOrderRepository:
    collection = "order"

    def __init__(self, db: Database):
        self.db = db

    def insert(self, order: Order) -> Order:
        oid = create_document(self.db, self.collection, order)
        return order.model_copy(update={"id": oid})

    def get(self, order_id: str) -> Optional[Order]:
        oid = to_object_id(order_id)
        if oid is None:
            return None
        doc = self.db[self.collection].find_one({"_id": oid})
        return Order.model_validate(to_str_id(doc)) if doc else None

    def list_for_user(self, user_id: str) -> List[Order]:
        cursor = self.db[self.collection].find({"user": user_id}).sort("createdAt", DESCENDING)
        return [Order.model_validate(to_str_id(d)) for d in cursor]

    def save(self, order: Order) -> Order:
        doc = {**to_document(order), "updatedAt": utc_now()}
        self.db[self.collection].replace_one({"_id": to_object_id(order.id)}, doc)
        return order


class MongoUserRepository:
    collection = "user"

    def __init__(self, db: Database):
        self.db = db

    def get(self, user_id: str) -> Optional[UserInfo]:
        oid = to_object_id(user_id)
        if oid is None:
            return None
        doc = self.db[self.collection].find_one({"_id": oid}, {"password": 0})
        return UserInfo.model_validate(to_str_id(doc)) if doc else None
