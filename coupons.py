import logging
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from errors import CouponError, UnknownCouponError
from repositories import CouponRepository
from schemas import CartItem, Coupon, CouponSummary, CouponUsage, CouponValidation, as_utc, round_money, utc_now

logger = logging.getLogger("kstore.coupons")


def is_valid(coupon: Coupon, now: datetime) -> bool:
    return (
        coupon.is_active
        and as_utc(coupon.start_date) <= now <= as_utc(coupon.end_date)
        and (coupon.usage_limit is None or coupon.usage_count < coupon.usage_limit)
    )


def can_user_use(coupon: Coupon, user_id: str, now: datetime) -> bool:
    if not is_valid(coupon, now):
        return False
    uses = sum(1 for usage in coupon.used_by if usage.user == user_id)
    return uses < coupon.user_usage_limit


def _item_qualifies(coupon: Coupon, item: CartItem) -> bool:
    ok = True
    if coupon.applicable_categories:
        ok = item.category in coupon.applicable_categories
    if coupon.excluded_categories:
        ok = ok and item.category not in coupon.excluded_categories
    if coupon.applicable_products:
        ok = ok and item.id in coupon.applicable_products
    if coupon.excluded_products:
        ok = ok and item.id not in coupon.excluded_products
    return ok


def calculate_discount(coupon: Coupon, order_amount: float, items: Sequence[CartItem] = ()) -> float:
    """Discount for an order, before any validity checks.

    Restricted coupons only discount the qualifying lines. The result never
    exceeds ``maxDiscountAmount`` or the discountable amount.
    """
    if order_amount < coupon.min_order_amount:
        return 0.0

    applicable = order_amount
    if coupon.has_restrictions:
        applicable = sum(i.line_total for i in items if _item_qualifies(coupon, i))

    if coupon.discount_type == "percentage":
        discount = applicable * coupon.discount_value / 100
    else:
        discount = coupon.discount_value

    if coupon.max_discount_amount and discount > coupon.max_discount_amount:
        discount = coupon.max_discount_amount
    if discount > applicable:
        discount = applicable
    return round_money(discount)


class CouponEvaluator:
    """Validates coupon codes against an order and records redemptions."""

    def __init__(self, coupons: CouponRepository, clock: Callable[[], datetime] = utc_now):
        self.coupons = coupons
        self.clock = clock

    def evaluate(
        self,
        code: str,
        order_amount: float,
        order_items: Sequence[CartItem] = (),
        user_id: Optional[str] = None,
    ) -> CouponValidation:
        coupon = self.coupons.find_by_code(code.strip().upper())
        if coupon is None:
            logger.info("Rejected unknown coupon %s", code)
            raise UnknownCouponError(code)

        now = self.clock()
        if not is_valid(coupon, now):
            raise CouponError("Coupon has expired or is not active")
        if user_id is not None and not can_user_use(coupon, user_id, now):
            raise CouponError("You have already used this coupon maximum times")
        if order_amount < coupon.min_order_amount:
            raise CouponError(f"Minimum order amount is ₹{coupon.min_order_amount:g}")

        discount = calculate_discount(coupon, order_amount, order_items)
        if discount == 0:
            raise CouponError("This coupon is not applicable to your order")

        return CouponValidation(valid=True, discount_amount=discount, coupon=coupon.summary())

    def active_coupons(self, user_id: str) -> List[CouponSummary]:
        now = self.clock()
        return [
            c.summary()
            for c in self.coupons.list_active(now)
            if can_user_use(c, user_id, now)
        ]

    def redeem(self, result: CouponValidation, user_id: str, order_amount: float) -> None:
        usage = CouponUsage(
            user=user_id,
            used_at=self.clock(),
            order_amount=order_amount,
            discount_amount=result.discount_amount,
        )
        self.coupons.record_usage(result.coupon.code, usage)
