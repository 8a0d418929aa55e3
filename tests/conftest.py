"""Pytest fixtures for the K-Store cart tests."""

import os

os.environ.setdefault("JWT_SECRET", "kstore-test-secret-0123456789abcdef0123456789")

from datetime import datetime, timezone

import pytest

from cart import CartLedger
from coupons import CouponEvaluator
from fakes import (
    Clock,
    InMemoryCouponRepository,
    InMemoryOrderRepository,
    InMemoryProductRepository,
    InMemoryUserRepository,
    MemoryStore,
    RecordingNotifier,
)
from orders import OrderAssembler
from schemas import Coupon, CouponUsage, Product, ShippingAddress, UserInfo

ALWAYS = {
    "start_date": datetime(2020, 1, 1, tzinfo=timezone.utc),
    "end_date": datetime(2099, 12, 31, tzinfo=timezone.utc),
}


@pytest.fixture
def customer():
    return UserInfo(id="u1", name="Asha Rao", email="asha@kstore.in")


@pytest.fixture
def other_customer():
    return UserInfo(id="u2", name="Ravi Kumar", email="ravi@kstore.in")


@pytest.fixture
def admin():
    return UserInfo(id="a1", name="Store Admin", email="admin@kstore.in", is_admin=True)


@pytest.fixture
def address():
    return ShippingAddress(
        first_name="Asha",
        last_name="Rao",
        address="12 MG Road",
        city="Bengaluru",
        state="Karnataka",
        zip_code="560001",
        phone="9876543210",
    )


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def ledger(store):
    return CartLedger(store)


@pytest.fixture
def products():
    return InMemoryProductRepository([
        Product(id="p1", name="Basmati Rice 1kg", price=100, count_in_stock=10, category="groceries", sku="RICE-1"),
        Product(id="p2", name="Masala Chips", price=250, count_in_stock=2, category="snacks", sku="CHIP-1"),
        Product(id="p3", name="Ghee 500ml", price=400, count_in_stock=0, category="oil-ghee", sku="GHEE-1"),
    ])


@pytest.fixture
def coupon_repo():
    return InMemoryCouponRepository([
        Coupon(code="SAVE10", description="10% off", discount_type="percentage", discount_value=10, **ALWAYS),
        Coupon(code="FLAT50", description="₹50 off", discount_type="fixed", discount_value=50,
               min_order_amount=300, **ALWAYS),
        Coupon(code="HALF", description="Half price, capped", discount_type="percentage",
               discount_value=50, max_discount_amount=100, **ALWAYS),
        Coupon(code="SNACKS20", description="20% off snacks", discount_type="percentage",
               discount_value=20, applicable_categories=["snacks"], **ALWAYS),
        Coupon(code="OLD5", description="Expired", discount_type="percentage", discount_value=5,
               start_date=datetime(2020, 1, 1, tzinfo=timezone.utc),
               end_date=datetime(2021, 1, 1, tzinfo=timezone.utc)),
        Coupon(code="PAUSED", description="Switched off", discount_type="fixed", discount_value=10,
               is_active=False, **ALWAYS),
        Coupon(code="ONCE", description="Already used by u1", discount_type="fixed", discount_value=25,
               used_by=[CouponUsage(user="u1", order_amount=200, discount_amount=25)], usage_count=1,
               **ALWAYS),
    ])


@pytest.fixture
def evaluator(coupon_repo, clock):
    return CouponEvaluator(coupon_repo, clock=clock)


@pytest.fixture
def order_repo():
    return InMemoryOrderRepository()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def assembler(order_repo, products, evaluator, notifier, clock):
    return OrderAssembler(order_repo, products, evaluator, notifier, clock=clock)


@pytest.fixture
def users(customer, other_customer, admin):
    return InMemoryUserRepository([customer, other_customer, admin])
