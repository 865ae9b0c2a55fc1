"""
Checkout and order administration.

A checkout runs TokenRequested -> PaymentSubmitted -> Approved | Declined.
Only an approved sale is persisted as an order; nothing is retried and no
stock is reserved.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Iterable, List, Optional

from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

from catalog import NO_PHOTO
from database import create_document, now_utc, ref_id
from logger import get_logger
from schemas import CartItem, Order

logger = get_logger("orders")

CENTS = Decimal("0.01")


class PaymentState(str, Enum):
    TOKEN_REQUESTED = "TokenRequested"
    PAYMENT_SUBMITTED = "PaymentSubmitted"
    APPROVED = "Approved"
    DECLINED = "Declined"
    ORDER_PERSISTED = "OrderPersisted"


class CartError(ValueError):
    pass


class OrderNotFound(LookupError):
    pass


@dataclass
class PaymentOutcome:
    state: PaymentState
    amount: Decimal
    message: Optional[str] = None
    order_id: Optional[str] = None
    transaction: dict = field(default_factory=dict)

    @property
    def approved(self) -> bool:
        return self.state == PaymentState.ORDER_PERSISTED


def cart_total(cart: Iterable[CartItem]) -> Decimal:
    """Sum of cart prices, rounded to cents.

    Raises CartError for an empty cart, prices that are not finite numbers,
    or a total that is not positive.
    """
    items = list(cart)
    if not items:
        raise CartError("Cart is empty")
    total = Decimal("0")
    for item in items:
        if isinstance(item.price, bool) or item.price is None:
            raise CartError(f"Invalid price in cart: {item.price!r}")
        try:
            price = Decimal(str(item.price))
        except InvalidOperation:
            raise CartError(f"Invalid price in cart: {item.price!r}")
        if not price.is_finite():
            raise CartError(f"Invalid price in cart: {item.price!r}")
        total += price
    if not total.is_finite():
        raise CartError("Cart total is out of range")
    try:
        total = total.quantize(CENTS)
    except InvalidOperation:
        raise CartError("Cart total is out of range")
    if total <= 0:
        raise CartError("Cart total must be greater than 0")
    return total


class OrderWorkflow:
    def __init__(self, db: Database, gateway=None):
        self.db = db
        self.orders = db["order"]
        self.gateway = gateway

    def generate_client_token(self) -> str:
        logger.debug("Client token %s", PaymentState.TOKEN_REQUESTED.value)
        return self.gateway.generate_client_token()

    def submit_payment(self, nonce: str, cart: List[CartItem], buyer_id) -> PaymentOutcome:
        """Charge the cart total and persist an order if the gateway approves.

        CartError is raised before the gateway is contacted. Gateway exceptions
        propagate to the caller and nothing is written.
        """
        amount = cart_total(cart)
        logger.debug("%s: %s for buyer %s", PaymentState.PAYMENT_SUBMITTED.value, amount, buyer_id)
        result = self.gateway.sale(nonce, amount)

        if not result.success:
            logger.warning("Payment declined for buyer %s: %s", buyer_id, result.message)
            return PaymentOutcome(
                state=PaymentState.DECLINED,
                amount=amount,
                message=result.message,
                transaction=result.transaction,
            )

        order = Order(
            products=[ref_id(item.id) for item in cart if item.id],
            buyer=ref_id(buyer_id),
            payment=dict(result.transaction, success=True),
        )
        order_id = create_document(self.db, "order", order)
        logger.info("Order %s created for buyer %s (%s)", order_id, buyer_id, amount)
        return PaymentOutcome(
            state=PaymentState.ORDER_PERSISTED,
            amount=amount,
            order_id=order_id,
            transaction=result.transaction,
        )

    def update_status(self, order_id: str, status: str) -> dict:
        updated = self.orders.find_one_and_update(
            {"_id": ref_id(order_id)},
            {"$set": {"status": status, "updated_at": now_utc()}},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            raise OrderNotFound(order_id)
        logger.info("Order %s status set to %s", order_id, status)
        return updated

    def _populate(self, orders: List[dict]) -> List[dict]:
        product_ids = {pid for o in orders for pid in o.get("products", [])}
        buyer_ids = {o.get("buyer") for o in orders if o.get("buyer") is not None}
        products = {
            p["_id"]: p for p in self.db["product"].find({"_id": {"$in": list(product_ids)}}, NO_PHOTO)
        } if product_ids else {}
        buyers = {
            u["_id"]: u for u in self.db["user"].find({"_id": {"$in": list(buyer_ids)}}, {"name": 1})
        } if buyer_ids else {}
        for o in orders:
            # deleted products drop out of the list, a deleted buyer becomes None
            o["products"] = [products[pid] for pid in o.get("products", []) if pid in products]
            o["buyer"] = buyers.get(o.get("buyer"))
        return orders

    def orders_for_user(self, buyer_id) -> List[dict]:
        return self._populate(list(self.orders.find({"buyer": ref_id(buyer_id)})))

    def all_orders(self) -> List[dict]:
        cursor = self.orders.find({}).sort([("created_at", DESCENDING), ("_id", DESCENDING)])
        return self._populate(list(cursor))
