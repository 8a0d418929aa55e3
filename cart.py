"""Cart ledger.

Reducers are pure: each takes the current ``Cart`` and returns a new one.
``CartLedger`` owns the current state for a session and writes the touched
slice back to its ``KeyValueStore`` after every successful reducer.
Totals are computed properties of ``Cart`` and are never stored.
"""
import logging
from typing import Any, Callable, Optional, Type

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError

from errors import InvalidQuantityError
from schemas import Cart, CartItem, CouponValidation, PaymentMethod, ShippingAddress
from storage import (
    APPLIED_COUPON_KEY,
    CART_ITEMS_KEY,
    PAYMENT_METHOD_KEY,
    SHIPPING_ADDRESS_KEY,
    KeyValueStore,
    read_json,
    write_json,
)

logger = logging.getLogger("kstore.cart")

_payment_method = TypeAdapter(PaymentMethod)


# Reducers

def add_item(cart: Cart, item: CartItem, qty: int = 1) -> Cart:
    if qty < 1:
        raise InvalidQuantityError(qty)
    items = []
    merged = False
    for existing in cart.items:
        if existing.id == item.id:
            existing = existing.model_copy(update={"quantity": existing.quantity + qty})
            merged = True
        items.append(existing)
    if not merged:
        items.append(item.model_copy(update={"quantity": qty}))
    return cart.model_copy(update={"items": items})


def remove_item(cart: Cart, item_id: str) -> Cart:
    return cart.model_copy(update={"items": [i for i in cart.items if i.id != item_id]})


def set_quantity(cart: Cart, item_id: str, qty: int) -> Cart:
    if cart.find(item_id) is None:
        return cart
    if qty < 1:
        raise InvalidQuantityError(qty)
    items = [
        i.model_copy(update={"quantity": qty}) if i.id == item_id else i
        for i in cart.items
    ]
    return cart.model_copy(update={"items": items})


def clear(cart: Cart) -> Cart:
    return cart.model_copy(update={"items": [], "applied_coupon": None})


def save_shipping_address(cart: Cart, address: ShippingAddress) -> Cart:
    return cart.model_copy(update={"shipping_address": address})


def save_payment_method(cart: Cart, method: PaymentMethod) -> Cart:
    return cart.model_copy(update={"payment_method": method})


def apply_coupon(cart: Cart, result: CouponValidation) -> Cart:
    return cart.model_copy(update={"applied_coupon": result})


def clear_coupon(cart: Cart) -> Cart:
    return cart.model_copy(update={"applied_coupon": None})


# Rehydration

def _load_model(store: KeyValueStore, key: str, model: Type[BaseModel]) -> Optional[Any]:
    data = read_json(store, key)
    if data is None:
        return None
    try:
        return model.model_validate(data)
    except ValidationError:
        logger.warning("Dropping invalid %s from session storage", key)
        store.remove_item(key)
        return None


def load_cart(store: KeyValueStore) -> Cart:
    """Rebuild a cart from storage, falling back to defaults key by key."""
    items = []
    raw_items = read_json(store, CART_ITEMS_KEY, [])
    try:
        items = [CartItem.model_validate(i) for i in raw_items]
    except (ValidationError, TypeError):
        logger.warning("Dropping invalid %s from session storage", CART_ITEMS_KEY)
        store.remove_item(CART_ITEMS_KEY)

    payment_method = store.get_item(PAYMENT_METHOD_KEY)
    if payment_method is not None:
        try:
            payment_method = _payment_method.validate_python(payment_method)
        except ValidationError:
            logger.warning("Dropping invalid %s from session storage", PAYMENT_METHOD_KEY)
            store.remove_item(PAYMENT_METHOD_KEY)
            payment_method = None

    return Cart(
        items=items,
        shipping_address=_load_model(store, SHIPPING_ADDRESS_KEY, ShippingAddress),
        payment_method=payment_method,
        applied_coupon=_load_model(store, APPLIED_COUPON_KEY, CouponValidation),
    )


# Ledger

class CartLedger:
    """Holds one session's cart and persists it after each mutation."""

    def __init__(self, store: KeyValueStore, cart: Optional[Cart] = None):
        self.store = store
        self.cart = cart if cart is not None else load_cart(store)

    def _apply(self, reducer: Callable[..., Cart], *args: Any) -> Cart:
        self.cart = reducer(self.cart, *args)
        return self.cart

    def _persist_items(self) -> None:
        write_json(
            self.store,
            CART_ITEMS_KEY,
            [i.model_dump(mode="json", by_alias=True) for i in self.cart.items],
        )

    def add_item(self, item: CartItem, qty: int = 1) -> Cart:
        self._apply(add_item, item, qty)
        self._persist_items()
        return self.cart

    def remove_item(self, item_id: str) -> Cart:
        self._apply(remove_item, item_id)
        self._persist_items()
        return self.cart

    def set_quantity(self, item_id: str, qty: int) -> Cart:
        self._apply(set_quantity, item_id, qty)
        self._persist_items()
        return self.cart

    def clear(self) -> Cart:
        self._apply(clear)
        self.store.remove_item(CART_ITEMS_KEY)
        self.store.remove_item(APPLIED_COUPON_KEY)
        return self.cart

    def save_shipping_address(self, address: ShippingAddress) -> Cart:
        self._apply(save_shipping_address, address)
        write_json(self.store, SHIPPING_ADDRESS_KEY, address.model_dump(mode="json", by_alias=True))
        return self.cart

    def save_payment_method(self, method: PaymentMethod) -> Cart:
        self._apply(save_payment_method, method)
        self.store.set_item(PAYMENT_METHOD_KEY, method)
        return self.cart

    def apply_coupon(self, result: CouponValidation) -> Cart:
        self._apply(apply_coupon, result)
        write_json(self.store, APPLIED_COUPON_KEY, result.model_dump(mode="json", by_alias=True))
        return self.cart

    def clear_coupon(self) -> Cart:
        self._apply(clear_coupon)
        self.store.remove_item(APPLIED_COUPON_KEY)
        return self.cart
