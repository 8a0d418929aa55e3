"""
Database Schemas for K-Store Cart

Each Pydantic model represents a MongoDB collection or an embedded document.
The collection name is the lowercased class name (e.g., Order -> "order").
Fields are snake_case in Python and camelCase on the wire and in storage.
"""
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel


def round_money(value: float) -> float:
    """Round half-up to cents."""
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # pymongo hands back naive UTC datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


# Catalog

class Product(CamelModel):
    id: Optional[str] = None
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    price: float = Field(..., ge=0)
    count_in_stock: int = Field(0, ge=0)
    category: Optional[str] = None
    sku: Optional[str] = None
    image: Optional[str] = None
    sales_count: int = 0


# Cart

PaymentMethod = Literal[
    "stripe", "razorpay", "cod", "upi", "netbanking", "credit", "wallet", "loyalty_points"
]


class CartItem(CamelModel):
    id: str
    name: str
    image: Optional[str] = None
    price: float = Field(..., ge=0)
    count_in_stock: int = Field(0, ge=0)
    quantity: int = Field(1, ge=1)
    category: Optional[str] = None
    sku: Optional[str] = None

    @property
    def line_total(self) -> float:
        return self.price * self.quantity


class ShippingAddress(CamelModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)
    country: str = Field("India", min_length=1)
    phone: str = Field(..., min_length=7, max_length=15)


class CouponSummary(CamelModel):
    code: str
    description: Optional[str] = None
    discount_type: Literal["percentage", "fixed"]
    discount_value: float
    min_order_amount: float = 0
    max_discount_amount: Optional[float] = None


class CouponValidation(CamelModel):
    """Result of evaluating a coupon against an order amount."""

    valid: bool = True
    discount_amount: float = Field(..., ge=0)
    coupon: CouponSummary


class Cart(CamelModel):
    items: List[CartItem] = []
    shipping_address: Optional[ShippingAddress] = None
    payment_method: Optional[PaymentMethod] = None
    applied_coupon: Optional[CouponValidation] = None

    @computed_field(alias="totalQuantity")
    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)

    @computed_field(alias="totalAmount")
    @property
    def total_amount(self) -> float:
        return round_money(sum(item.line_total for item in self.items))

    def find(self, item_id: str) -> Optional[CartItem]:
        return next((item for item in self.items if item.id == item_id), None)


# Coupons

class CouponUsage(CamelModel):
    user: str
    used_at: datetime = Field(default_factory=utc_now)
    order_amount: float
    discount_amount: float


class Coupon(CamelModel):
    id: Optional[str] = None
    code: str = Field(..., min_length=1)
    description: str = ""
    discount_type: Literal["percentage", "fixed"]
    discount_value: float = Field(..., ge=0)
    min_order_amount: float = Field(0, ge=0)
    max_discount_amount: Optional[float] = Field(None, ge=0)
    usage_limit: Optional[int] = Field(None, ge=1)
    usage_count: int = 0
    user_usage_limit: int = Field(1, ge=1)
    applicable_categories: List[str] = []
    excluded_categories: List[str] = []
    applicable_products: List[str] = []
    excluded_products: List[str] = []
    start_date: datetime
    end_date: datetime
    is_active: bool = True
    used_by: List[CouponUsage] = []
    terms: Optional[str] = None

    @field_validator("code")
    @classmethod
    def upper_code(cls, v: str) -> str:
        return v.upper()

    @property
    def has_restrictions(self) -> bool:
        return bool(
            self.applicable_categories
            or self.excluded_categories
            or self.applicable_products
            or self.excluded_products
        )

    def summary(self) -> CouponSummary:
        return CouponSummary(
            code=self.code,
            description=self.description,
            discount_type=self.discount_type,
            discount_value=self.discount_value,
            min_order_amount=self.min_order_amount,
            max_discount_amount=self.max_discount_amount,
        )


# Orders

OrderStatus = Literal[
    "pending", "confirmed", "processing", "shipped", "delivered", "cancelled", "returned"
]
ReturnStatus = Literal["not-requested", "requested", "approved", "rejected", "completed"]


class OrderItem(CamelModel):
    product: str
    name: str
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0)
    image: Optional[str] = None
    sku: Optional[str] = None


class PaymentResult(CamelModel):
    id: str
    status: str
    update_time: Optional[str] = None
    email_address: Optional[str] = None


class StatusChange(CamelModel):
    status: OrderStatus
    date: datetime = Field(default_factory=utc_now)
    note: Optional[str] = None


class Order(CamelModel):
    id: Optional[str] = None
    order_number: str
    user: str
    order_items: List[OrderItem]
    shipping_address: ShippingAddress
    payment_method: PaymentMethod
    payment_result: Optional[PaymentResult] = None
    items_price: float = Field(..., ge=0)
    tax_price: float = Field(0, ge=0)
    shipping_price: float = Field(0, ge=0)
    coupon_discount: float = Field(0, ge=0)
    coupon_code: Optional[str] = None
    total_price: float = Field(..., ge=0)
    status: OrderStatus = "pending"
    is_paid: bool = False
    paid_at: Optional[datetime] = None
    is_delivered: bool = False
    delivered_at: Optional[datetime] = None
    estimated_delivery_date: Optional[datetime] = None
    status_history: List[StatusChange] = []
    cancel_reason: Optional[str] = None
    return_reason: Optional[str] = None
    return_status: ReturnStatus = "not-requested"
    tracking_number: Optional[str] = None
    delivery_partner: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


# Users

class UserInfo(CamelModel):
    id: str
    name: str
    email: EmailStr
    is_admin: bool = False


class Notification(CamelModel):
    user: str
    title: str
    message: str
    type: Literal["order", "promotion", "system"] = "order"
    read: bool = False
