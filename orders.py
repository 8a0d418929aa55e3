"""Order assembly and the order status machine.

    pending -> confirmed -> processing -> shipped -> delivered
       |           |                                    |
       +-----------+--> cancelled                       +--> returned
"""
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, FrozenSet, List, Optional

from cart import CartLedger
from config import settings
from coupons import CouponEvaluator
from errors import (
    EmptyCartError,
    IncompleteAddressError,
    InvalidTransitionError,
    OrderNotFoundError,
    OutOfStockError,
    PermissionDeniedError,
    ProductNotFoundError,
    RequestError,
)
from notifications import Notifier
from repositories import OrderRepository, ProductRepository
from schemas import (
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    PaymentResult,
    ShippingAddress,
    StatusChange,
    UserInfo,
    as_utc,
    round_money,
    utc_now,
)

logger = logging.getLogger("kstore.orders")

TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "pending": frozenset({"confirmed", "cancelled"}),
    "confirmed": frozenset({"processing", "cancelled"}),
    "processing": frozenset({"shipped"}),
    "shipped": frozenset({"delivered"}),
    "delivered": frozenset({"returned"}),
    "cancelled": frozenset(),
    "returned": frozenset(),
}

CANCELLABLE = frozenset({"pending", "confirmed"})


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def transition(order: Order, target: OrderStatus, note: Optional[str] = None, at: Optional[datetime] = None) -> Order:
    """Return a copy of ``order`` moved to ``target``, with history appended."""
    if not can_transition(order.status, target):
        raise InvalidTransitionError(order.status, target)
    change = StatusChange(status=target, date=at or utc_now(), note=note)
    return order.model_copy(update={
        "status": target,
        "status_history": [*order.status_history, change],
    })


@dataclass(frozen=True)
class PriceBreakdown:
    items_price: float
    tax_price: float
    shipping_price: float
    coupon_discount: float
    total_price: float


@dataclass(frozen=True)
class Pricing:
    tax_rate: float = settings.TAX_RATE
    free_shipping_threshold: float = settings.FREE_SHIPPING_THRESHOLD
    shipping_fee: float = settings.SHIPPING_FEE

    def price(self, items_price: float, discount: float = 0) -> PriceBreakdown:
        items_price = round_money(items_price)
        tax_price = round_money(items_price * self.tax_rate)
        shipping_price = 0.0 if items_price > self.free_shipping_threshold else float(self.shipping_fee)
        total_price = round_money(items_price + tax_price + shipping_price - discount)
        return PriceBreakdown(
            items_price=items_price,
            tax_price=tax_price,
            shipping_price=shipping_price,
            coupon_discount=discount,
            total_price=total_price,
        )


def generate_order_number(now: datetime) -> str:
    return f"ORD-{int(now.timestamp() * 1000)}-{random.randint(0, 999):03d}"


class OrderAssembler:
    """Turns a checked-out cart into an order and drives its status afterwards."""

    def __init__(
        self,
        orders: OrderRepository,
        products: ProductRepository,
        coupons: CouponEvaluator,
        notifier: Notifier,
        pricing: Optional[Pricing] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.orders = orders
        self.products = products
        self.coupons = coupons
        self.notifier = notifier
        self.pricing = pricing or Pricing()
        self.clock = clock

    def place_order(
        self,
        ledger: CartLedger,
        user: UserInfo,
        shipping_address: Optional[ShippingAddress] = None,
        payment_method: Optional[PaymentMethod] = None,
        coupon_code: Optional[str] = None,
    ) -> Order:
        """
        Validate the cart, create the order and clear the cart.

        Shipping address, payment method and coupon default to whatever the
        shopper saved on the cart. Nothing is written unless every check passes.
        """
        cart = ledger.cart
        if not cart.items:
            raise EmptyCartError()
        shipping_address = shipping_address or cart.shipping_address
        if shipping_address is None:
            raise IncompleteAddressError()
        payment_method = payment_method or cart.payment_method
        if payment_method is None:
            raise RequestError("Payment method is required")

        for item in cart.items:
            product = self.products.get(item.id)
            if product is None:
                raise ProductNotFoundError(item.id)
            if product.count_in_stock < item.quantity:
                raise OutOfStockError(item.name)

        if coupon_code is None and cart.applied_coupon is not None:
            coupon_code = cart.applied_coupon.coupon.code
        applied = None
        if coupon_code:
            applied = self.coupons.evaluate(coupon_code, cart.total_amount, cart.items, user.id)

        prices = self.pricing.price(cart.total_amount, applied.discount_amount if applied else 0)
        now = self.clock()
        order = Order(
            order_number=generate_order_number(now),
            user=user.id,
            order_items=[
                OrderItem(
                    product=item.id,
                    name=item.name,
                    quantity=item.quantity,
                    price=item.price,
                    image=item.image,
                    sku=item.sku,
                )
                for item in cart.items
            ],
            shipping_address=shipping_address,
            payment_method=payment_method,
            items_price=prices.items_price,
            tax_price=prices.tax_price,
            shipping_price=prices.shipping_price,
            coupon_discount=prices.coupon_discount,
            coupon_code=applied.coupon.code if applied else None,
            total_price=prices.total_price,
            estimated_delivery_date=now + timedelta(days=settings.DELIVERY_DAYS),
            status_history=[StatusChange(status="pending", date=now, note="Order created")],
            created_at=now,
        )
        if payment_method == "cod":
            order = transition(order, "confirmed", "Cash on delivery accepted", now)

        order = self.orders.insert(order)
        for item in order.order_items:
            self.products.adjust_stock(item.product, -item.quantity)
        if applied:
            self.coupons.redeem(applied, user.id, prices.items_price)
        ledger.clear()
        logger.info("Placed order %s for user %s (%s)", order.order_number, user.id, order.status)

        try:
            self.notifier.order_placed(order)
        except Exception:
            logger.exception("Failed to send confirmation for order %s", order.order_number)
        return order

    def get_order(self, order_id: str, actor: UserInfo) -> Order:
        order = self.orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        if order.user != actor.id and not actor.is_admin:
            raise PermissionDeniedError()
        return order

    def my_orders(self, user: UserInfo) -> List[Order]:
        return self.orders.list_for_user(user.id)

    def mark_paid(self, order: Order, result: PaymentResult) -> Order:
        if order.status not in CANCELLABLE:
            raise InvalidTransitionError(order.status, "confirmed", "Order cannot be paid")
        now = self.clock()
        if order.status == "pending":
            order = transition(order, "confirmed", "Payment received", now)
        order = order.model_copy(update={"is_paid": True, "paid_at": now, "payment_result": result})
        logger.info("Order %s paid", order.order_number)
        return self.orders.save(order)

    def cancel_order(self, order: Order, reason: str, actor: UserInfo) -> Order:
        if order.user != actor.id and not actor.is_admin:
            raise PermissionDeniedError()
        reason = (reason or "").strip()
        if not reason:
            raise RequestError("A cancellation reason is required")
        if order.status not in CANCELLABLE:
            raise InvalidTransitionError(order.status, "cancelled", "Order cannot be cancelled")

        order = transition(order, "cancelled", reason, self.clock())
        order = order.model_copy(update={"cancel_reason": reason})
        self._restore_stock(order)
        logger.info("Order %s cancelled", order.order_number)
        return self.orders.save(order)

    def request_return(self, order: Order, reason: str, actor: UserInfo) -> Order:
        if order.user != actor.id:
            raise PermissionDeniedError()
        reason = (reason or "").strip()
        if not reason:
            raise RequestError("A return reason is required")
        if order.status != "delivered" or not self._within_return_window(order):
            raise InvalidTransitionError(order.status, "returned", "Order cannot be returned")

        order = order.model_copy(update={"return_status": "requested", "return_reason": reason})
        logger.info("Return requested for order %s", order.order_number)
        return self.orders.save(order)

    def update_status(
        self,
        order: Order,
        status: OrderStatus,
        note: Optional[str] = None,
        tracking_number: Optional[str] = None,
        delivery_partner: Optional[str] = None,
    ) -> Order:
        now = self.clock()
        order = transition(order, status, note, now)
        updates = {}
        if status == "shipped" and tracking_number:
            updates.update(tracking_number=tracking_number, delivery_partner=delivery_partner)
        elif status == "delivered":
            updates.update(is_delivered=True, delivered_at=now)
        elif status == "returned":
            updates.update(return_status="completed")
        elif status == "cancelled":
            self._restore_stock(order)
        if updates:
            order = order.model_copy(update=updates)
        logger.info("Order %s moved to %s", order.order_number, status)
        return self.orders.save(order)

    def _within_return_window(self, order: Order) -> bool:
        if order.delivered_at is None:
            return False
        elapsed = self.clock() - as_utc(order.delivered_at)
        return elapsed <= timedelta(days=settings.RETURN_WINDOW_DAYS)

    def _restore_stock(self, order: Order) -> None:
        for item in order.order_items:
            self.products.adjust_stock(item.product, item.quantity)
