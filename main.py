import logging
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import Field
from pymongo.database import Database

from auth import Session, TokenVerifier, can_checkout, require_admin, require_user
from cart import CartLedger
from config import settings
from coupons import CouponEvaluator
from database import get_db
from errors import CouponError, EmptyCartError, KStoreError, OutOfStockError, ProductNotFoundError
from notifications import MongoNotifier, Notifier
from orders import OrderAssembler, Pricing
from repositories import (
    CouponRepository,
    MongoCouponRepository,
    MongoOrderRepository,
    MongoProductRepository,
    MongoUserRepository,
    OrderRepository,
    ProductRepository,
    UserRepository,
)
from schemas import (
    CamelModel,
    Cart,
    CartItem,
    CouponSummary,
    CouponValidation,
    Order,
    OrderStatus,
    PaymentMethod,
    PaymentResult,
    Product,
    ShippingAddress,
    UserInfo,
)
from storage import KeyValueStore, MongoSessionStore

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("kstore.api")

app = FastAPI(title="K-Store Cart API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(KStoreError)
async def kstore_error_handler(request: Request, exc: KStoreError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# Dependencies

def get_database() -> Database:
    return get_db()


def get_product_repository(db: Database = Depends(get_database)) -> ProductRepository:
    return MongoProductRepository(db)


def get_coupon_repository(db: Database = Depends(get_database)) -> CouponRepository:
    return MongoCouponRepository(db)


def get_order_repository(db: Database = Depends(get_database)) -> OrderRepository:
    return MongoOrderRepository(db)


def get_user_repository(db: Database = Depends(get_database)) -> UserRepository:
    return MongoUserRepository(db)


def get_notifier(db: Database = Depends(get_database)) -> Notifier:
    return MongoNotifier(db)


def get_session_store(
    x_session_id: str = Header(..., min_length=1),
    db: Database = Depends(get_database),
) -> KeyValueStore:
    return MongoSessionStore(db["session_storage"], x_session_id)


def get_ledger(store: KeyValueStore = Depends(get_session_store)) -> CartLedger:
    return CartLedger(store)


def get_session(
    authorization: Optional[str] = Header(None),
    users: UserRepository = Depends(get_user_repository),
) -> Session:
    return TokenVerifier(users).session(authorization)


def current_user(session: Session = Depends(get_session)) -> UserInfo:
    return require_user(session)


def admin_user(session: Session = Depends(get_session)) -> UserInfo:
    return require_admin(session)


def get_evaluator(coupons: CouponRepository = Depends(get_coupon_repository)) -> CouponEvaluator:
    return CouponEvaluator(coupons)


def get_assembler(
    orders: OrderRepository = Depends(get_order_repository),
    products: ProductRepository = Depends(get_product_repository),
    evaluator: CouponEvaluator = Depends(get_evaluator),
    notifier: Notifier = Depends(get_notifier),
) -> OrderAssembler:
    return OrderAssembler(orders, products, evaluator, notifier)


@app.get("/")
def root():
    return {"name": "K-Store Cart", "status": "ok"}


# Products

@app.get("/api/products", response_model=List[Product])
def list_products(
    q: Optional[str] = None,
    category: Optional[str] = None,
    products: ProductRepository = Depends(get_product_repository),
):
    return products.list(q=q, category=category)


@app.get("/api/products/{product_id}", response_model=Product)
def get_product(product_id: str, products: ProductRepository = Depends(get_product_repository)):
    product = products.get(product_id)
    if product is None:
        raise ProductNotFoundError(product_id)
    return product


@app.post("/api/products", response_model=Product, status_code=201)
def create_product(
    product: Product,
    _: UserInfo = Depends(admin_user),
    products: ProductRepository = Depends(get_product_repository),
):
    return products.create(product)


# Cart (one per X-Session-Id)

class CartItemAdd(CamelModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class QuantityUpdate(CamelModel):
    quantity: int


class PaymentMethodUpdate(CamelModel):
    payment_method: PaymentMethod


class CouponCode(CamelModel):
    code: str = Field(..., min_length=1)


class CheckoutSummary(CamelModel):
    cart: Cart
    items_price: float
    tax_price: float
    shipping_price: float
    coupon_discount: float
    total_price: float
    can_checkout: bool


def refresh_coupon(ledger: CartLedger, evaluator: CouponEvaluator, session: Session) -> Cart:
    """Re-evaluate the applied coupon against the cart's current items."""
    cart = ledger.cart
    if cart.applied_coupon is None:
        return cart
    code = cart.applied_coupon.coupon.code
    if not cart.items:
        return ledger.clear_coupon()
    user_id = session.user.id if session.user else None
    try:
        result = evaluator.evaluate(code, cart.total_amount, cart.items, user_id)
    except CouponError as exc:
        logger.info("Dropping coupon %s from cart: %s", code, exc.message)
        return ledger.clear_coupon()
    return ledger.apply_coupon(result)


@app.get("/api/cart", response_model=Cart)
def get_cart(ledger: CartLedger = Depends(get_ledger)):
    return ledger.cart


@app.get("/api/cart/summary", response_model=CheckoutSummary)
def get_cart_summary(
    ledger: CartLedger = Depends(get_ledger),
    session: Session = Depends(get_session),
    evaluator: CouponEvaluator = Depends(get_evaluator),
):
    cart = refresh_coupon(ledger, evaluator, session)
    discount = cart.applied_coupon.discount_amount if cart.applied_coupon else 0
    prices = Pricing().price(cart.total_amount, discount)
    return CheckoutSummary(
        cart=cart,
        items_price=prices.items_price,
        tax_price=prices.tax_price,
        shipping_price=prices.shipping_price,
        coupon_discount=prices.coupon_discount,
        total_price=prices.total_price,
        can_checkout=can_checkout(session, cart),
    )


@app.post("/api/cart/items", response_model=Cart)
def add_to_cart(
    payload: CartItemAdd,
    ledger: CartLedger = Depends(get_ledger),
    products: ProductRepository = Depends(get_product_repository),
    session: Session = Depends(get_session),
    evaluator: CouponEvaluator = Depends(get_evaluator),
):
    product = products.get(payload.product_id)
    if product is None:
        raise ProductNotFoundError(payload.product_id)
    existing = ledger.cart.find(product.id)
    available = product.count_in_stock - (existing.quantity if existing else 0)
    if available < 1:
        raise OutOfStockError(product.name)
    item = CartItem(
        id=product.id,
        name=product.name,
        image=product.image,
        price=product.price,
        count_in_stock=product.count_in_stock,
        category=product.category,
        sku=product.sku,
    )
    ledger.add_item(item, min(payload.quantity, available))
    return refresh_coupon(ledger, evaluator, session)


@app.put("/api/cart/items/{item_id}", response_model=Cart)
def update_cart_item(
    item_id: str,
    payload: QuantityUpdate,
    ledger: CartLedger = Depends(get_ledger),
    products: ProductRepository = Depends(get_product_repository),
    session: Session = Depends(get_session),
    evaluator: CouponEvaluator = Depends(get_evaluator),
):
    quantity = payload.quantity
    if ledger.cart.find(item_id) is not None and quantity >= 1:
        product = products.get(item_id)
        if product is not None:
            if product.count_in_stock < 1:
                raise OutOfStockError(product.name)
            quantity = min(quantity, product.count_in_stock)
    ledger.set_quantity(item_id, quantity)
    return refresh_coupon(ledger, evaluator, session)


@app.delete("/api/cart/items/{item_id}", response_model=Cart)
def remove_from_cart(
    item_id: str,
    ledger: CartLedger = Depends(get_ledger),
    session: Session = Depends(get_session),
    evaluator: CouponEvaluator = Depends(get_evaluator),
):
    ledger.remove_item(item_id)
    return refresh_coupon(ledger, evaluator, session)


@app.delete("/api/cart", response_model=Cart)
def clear_cart(ledger: CartLedger = Depends(get_ledger)):
    return ledger.clear()


@app.put("/api/cart/shipping-address", response_model=Cart)
def save_shipping_address(address: ShippingAddress, ledger: CartLedger = Depends(get_ledger)):
    return ledger.save_shipping_address(address)


@app.put("/api/cart/payment-method", response_model=Cart)
def save_payment_method(payload: PaymentMethodUpdate, ledger: CartLedger = Depends(get_ledger)):
    return ledger.save_payment_method(payload.payment_method)


@app.post("/api/cart/coupon", response_model=Cart)
def apply_cart_coupon(
    payload: CouponCode,
    ledger: CartLedger = Depends(get_ledger),
    user: UserInfo = Depends(current_user),
    evaluator: CouponEvaluator = Depends(get_evaluator),
):
    cart = ledger.cart
    result = evaluator.evaluate(payload.code, cart.total_amount, cart.items, user.id)
    return ledger.apply_coupon(result)


@app.delete("/api/cart/coupon", response_model=Cart)
def clear_cart_coupon(ledger: CartLedger = Depends(get_ledger)):
    return ledger.clear_coupon()


# Coupons

class CouponCheck(CamelModel):
    code: str = Field(..., min_length=1)
    order_amount: float = Field(..., ge=0)
    order_items: List[CartItem] = []


@app.post("/api/coupons/validate", response_model=CouponValidation)
def validate_coupon(
    payload: CouponCheck,
    user: UserInfo = Depends(current_user),
    evaluator: CouponEvaluator = Depends(get_evaluator),
):
    return evaluator.evaluate(payload.code, payload.order_amount, payload.order_items, user.id)


@app.get("/api/coupons/active", response_model=List[CouponSummary])
def active_coupons(
    user: UserInfo = Depends(current_user),
    evaluator: CouponEvaluator = Depends(get_evaluator),
):
    return evaluator.active_coupons(user.id)


# Orders

class OrderRequest(CamelModel):
    shipping_address: Optional[ShippingAddress] = None
    payment_method: Optional[PaymentMethod] = None
    coupon_code: Optional[str] = None


class Reason(CamelModel):
    reason: str = Field(..., min_length=1)


class StatusUpdate(CamelModel):
    status: OrderStatus
    note: Optional[str] = None
    tracking_number: Optional[str] = None
    delivery_partner: Optional[str] = None


@app.post("/api/orders", response_model=Order, status_code=201)
def place_order(
    payload: Optional[OrderRequest] = None,
    ledger: CartLedger = Depends(get_ledger),
    session: Session = Depends(get_session),
    assembler: OrderAssembler = Depends(get_assembler),
):
    user = require_user(session)
    if not can_checkout(session, ledger.cart):
        raise EmptyCartError()
    payload = payload or OrderRequest()
    return assembler.place_order(
        ledger,
        user,
        shipping_address=payload.shipping_address,
        payment_method=payload.payment_method,
        coupon_code=payload.coupon_code,
    )


@app.get("/api/orders/myorders", response_model=List[Order])
def my_orders(
    user: UserInfo = Depends(current_user),
    assembler: OrderAssembler = Depends(get_assembler),
):
    return assembler.my_orders(user)


@app.get("/api/orders/{order_id}", response_model=Order)
def get_order(
    order_id: str,
    user: UserInfo = Depends(current_user),
    assembler: OrderAssembler = Depends(get_assembler),
):
    return assembler.get_order(order_id, user)


@app.put("/api/orders/{order_id}/pay", response_model=Order)
def pay_order(
    order_id: str,
    payment: PaymentResult,
    user: UserInfo = Depends(current_user),
    assembler: OrderAssembler = Depends(get_assembler),
):
    order = assembler.get_order(order_id, user)
    return assembler.mark_paid(order, payment)


@app.put("/api/orders/{order_id}/cancel", response_model=Order)
def cancel_order(
    order_id: str,
    payload: Reason,
    user: UserInfo = Depends(current_user),
    assembler: OrderAssembler = Depends(get_assembler),
):
    order = assembler.get_order(order_id, user)
    return assembler.cancel_order(order, payload.reason, user)


@app.put("/api/orders/{order_id}/return", response_model=Order)
def request_return(
    order_id: str,
    payload: Reason,
    user: UserInfo = Depends(current_user),
    assembler: OrderAssembler = Depends(get_assembler),
):
    order = assembler.get_order(order_id, user)
    return assembler.request_return(order, payload.reason, user)


@app.put("/api/orders/{order_id}/status", response_model=Order)
def update_order_status(
    order_id: str,
    payload: StatusUpdate,
    admin: UserInfo = Depends(admin_user),
    assembler: OrderAssembler = Depends(get_assembler),
):
    order = assembler.get_order(order_id, admin)
    return assembler.update_status(
        order,
        payload.status,
        note=payload.note,
        tracking_number=payload.tracking_number,
        delivery_partner=payload.delivery_partner,
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
