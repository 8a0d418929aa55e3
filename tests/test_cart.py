"""Tests for the cart reducers and ledger."""

import json

import pytest

import cart as reducers
from cart import CartLedger, load_cart
from errors import InvalidQuantityError
from fakes import MemoryStore, make_item
from schemas import Cart, CouponSummary, CouponValidation, round_money


def assert_totals_consistent(c: Cart):
    assert c.total_quantity == sum(i.quantity for i in c.items)
    assert c.total_amount == round_money(sum(i.price * i.quantity for i in c.items))


class TestReducers:
    def test_add_new_item(self):
        c = reducers.add_item(Cart(), make_item("p1", price=100), 2)
        assert len(c.items) == 1
        assert c.items[0].quantity == 2
        assert c.total_amount == 200
        assert c.total_quantity == 2

    def test_add_same_id_merges_quantities(self):
        c = reducers.add_item(Cart(), make_item("p1"), 2)
        c = reducers.add_item(c, make_item("p1"), 3)
        assert len(c.items) == 1
        assert c.items[0].quantity == 5

    def test_add_does_not_clamp_to_stock(self):
        c = reducers.add_item(Cart(), make_item("p1", stock=1), 4)
        assert c.items[0].quantity == 4

    def test_add_rejects_non_positive_quantity(self):
        with pytest.raises(InvalidQuantityError):
            reducers.add_item(Cart(), make_item("p1"), 0)

    def test_reducers_do_not_mutate_input(self):
        original = reducers.add_item(Cart(), make_item("p1"), 1)
        reducers.add_item(original, make_item("p1"), 1)
        assert original.items[0].quantity == 1

    def test_remove_item(self):
        c = reducers.add_item(Cart(), make_item("p1"), 1)
        c = reducers.add_item(c, make_item("p2", price=50), 1)
        c = reducers.remove_item(c, "p1")
        assert [i.id for i in c.items] == ["p2"]
        assert c.total_amount == 50

    def test_set_quantity_overwrites(self):
        c = reducers.add_item(Cart(), make_item("p1", price=30), 1)
        c = reducers.set_quantity(c, "p1", 4)
        assert c.items[0].quantity == 4
        assert c.total_amount == 120

    def test_set_quantity_unknown_id_is_noop(self):
        c = reducers.add_item(Cart(), make_item("p1"), 1)
        assert reducers.set_quantity(c, "missing", 3).items == c.items

    def test_set_quantity_unknown_id_ignores_bad_quantity(self):
        c = reducers.add_item(Cart(), make_item("p1"), 1)
        assert reducers.set_quantity(c, "missing", 0) == c

    def test_total_amount_rounded_to_cents(self):
        c = reducers.add_item(Cart(), make_item("p1", price=19.99), 3)
        assert c.total_amount == 59.97

    def test_set_quantity_rejects_zero(self):
        c = reducers.add_item(Cart(), make_item("p1"), 1)
        with pytest.raises(InvalidQuantityError):
            reducers.set_quantity(c, "p1", 0)

    def test_clear(self):
        c = reducers.add_item(Cart(), make_item("p1"), 3)
        c = reducers.clear(c)
        assert c.items == []
        assert c.total_amount == 0
        assert c.total_quantity == 0

    def test_totals_hold_after_every_operation(self):
        c = Cart()
        ops = [
            lambda c: reducers.add_item(c, make_item("p1", price=19.99), 2),
            lambda c: reducers.add_item(c, make_item("p2", price=5.5), 1),
            lambda c: reducers.add_item(c, make_item("p1", price=19.99), 1),
            lambda c: reducers.set_quantity(c, "p2", 7),
            lambda c: reducers.remove_item(c, "p1"),
            lambda c: reducers.add_item(c, make_item("p3", price=0), 3),
            lambda c: reducers.set_quantity(c, "p3", 1),
            lambda c: reducers.remove_item(c, "p2"),
        ]
        for op in ops:
            c = op(c)
            assert_totals_consistent(c)


class TestCartLedger:
    def test_add_persists_items(self, ledger, store):
        ledger.add_item(make_item("p1", price=100), 2)
        saved = json.loads(store.get_item("cartItems"))
        assert saved[0]["id"] == "p1"
        assert saved[0]["quantity"] == 2
        assert saved[0]["countInStock"] == 10

    def test_remove_and_set_quantity_persist(self, ledger, store):
        ledger.add_item(make_item("p1"), 1)
        ledger.add_item(make_item("p2"), 1)
        ledger.set_quantity("p2", 5)
        ledger.remove_item("p1")
        saved = json.loads(store.get_item("cartItems"))
        assert [(i["id"], i["quantity"]) for i in saved] == [("p2", 5)]

    def test_clear_removes_persisted_items(self, ledger, store):
        ledger.add_item(make_item("p1"), 1)
        cart = ledger.clear()
        assert cart.items == []
        assert store.get_item("cartItems") is None

    def test_shipping_and_payment_persist_independently(self, ledger, store, address):
        ledger.save_shipping_address(address)
        ledger.save_payment_method("cod")
        assert json.loads(store.get_item("shippingAddress"))["zipCode"] == "560001"
        assert store.get_item("paymentMethod") == "cod"
        assert store.get_item("cartItems") is None

    def test_clear_keeps_shipping_and_payment(self, ledger, address):
        ledger.add_item(make_item("p1"), 1)
        ledger.save_shipping_address(address)
        ledger.save_payment_method("upi")
        cart = ledger.clear()
        assert cart.shipping_address == address
        assert cart.payment_method == "upi"

    def test_rehydrates_from_store(self, ledger, store, address):
        ledger.add_item(make_item("p1", price=40), 3)
        ledger.save_shipping_address(address)
        ledger.save_payment_method("stripe")

        restored = CartLedger(store).cart
        assert restored.total_quantity == 3
        assert restored.total_amount == 120
        assert restored.shipping_address == address
        assert restored.payment_method == "stripe"

    def test_coupon_is_a_singleton(self, ledger, store):
        first = CouponValidation(discount_amount=10, coupon=CouponSummary(
            code="A", discount_type="fixed", discount_value=10))
        second = CouponValidation(discount_amount=20, coupon=CouponSummary(
            code="B", discount_type="fixed", discount_value=20))
        ledger.apply_coupon(first)
        cart = ledger.apply_coupon(second)
        assert cart.applied_coupon.coupon.code == "B"
        assert json.loads(store.get_item("appliedCoupon"))["coupon"]["code"] == "B"

        cart = ledger.clear_coupon()
        assert cart.applied_coupon is None
        assert store.get_item("appliedCoupon") is None

    def test_failed_mutation_leaves_state_and_store_unchanged(self, ledger, store):
        ledger.add_item(make_item("p1"), 2)
        before = store.get_item("cartItems")
        with pytest.raises(InvalidQuantityError):
            ledger.set_quantity("p1", -1)
        assert ledger.cart.items[0].quantity == 2
        assert store.get_item("cartItems") == before


class TestLoadCart:
    def test_empty_store_gives_empty_cart(self):
        cart = load_cart(MemoryStore())
        assert cart.items == []
        assert cart.shipping_address is None
        assert cart.payment_method is None

    def test_unparsable_items_are_dropped(self):
        store = MemoryStore({"cartItems": "{not json", "paymentMethod": "cod"})
        cart = load_cart(store)
        assert cart.items == []
        assert cart.payment_method == "cod"
        assert store.get_item("cartItems") is None

    def test_invalid_items_are_dropped(self):
        store = MemoryStore({"cartItems": json.dumps([{"id": "p1", "price": -5}])})
        cart = load_cart(store)
        assert cart.items == []
        assert store.get_item("cartItems") is None

    def test_unknown_payment_method_is_dropped(self):
        store = MemoryStore({"paymentMethod": "bitcoin"})
        cart = load_cart(store)
        assert cart.payment_method is None
        assert store.get_item("paymentMethod") is None

    def test_incomplete_address_is_dropped(self):
        store = MemoryStore({"shippingAddress": json.dumps({"city": "Pune"})})
        cart = load_cart(store)
        assert cart.shipping_address is None
        assert store.get_item("shippingAddress") is None
