"""
Order lifecycle.

    Processing -> Shipped -> Delivered
    Processing | Shipped -> Cancelled

Delivered and Cancelled are terminal. By default update_status applies whatever
status an admin sends (clients rely on jumping straight to Delivered); with
Settings.enforce_status_transitions only the edges in TRANSITIONS are allowed.
Cancellation is always refused once an order is delivered.

Totals are taken from the caller unless Settings.recompute_order_totals is set,
in which case line items are re-priced from the product collection.
"""

import time
from datetime import datetime, timezone
from typing import Dict, Iterable, List

import errors
from database import NEWEST_FIRST, create_document, get_db, get_documents, now, oid, serialize
from logger import get_logger
from schemas import (
    CASH_ON_DELIVERY,
    CreateOrderRequest,
    Order,
    OrderItem,
    PaymentResult,
    UpdatePaymentRequest,
    UpdateStatusRequest,
)
from settings import Settings

_logger = get_logger(__name__)

TRANSITIONS = {
    "Processing": {"Shipped", "Cancelled"},
    "Shipped": {"Delivered", "Cancelled"},
    "Delivered": set(),
    "Cancelled": set(),
}

USER_FIELDS = {"name": 1, "email": 1}


def display_id(order_id) -> str:
    return f"ORD-{str(order_id)[-6:].upper()}"


def compute_totals(items: Iterable[OrderItem], settings: Settings) -> Dict[str, float]:
    subtotal = round(sum(i.price * i.quantity for i in items), 2)
    shipping = settings.shipping_cost if subtotal > 0 else 0.0
    tax = round(subtotal * settings.tax_rate, 2)
    return {
        "subtotal": subtotal,
        "shipping_cost": shipping,
        "tax": tax,
        "total": round(subtotal + shipping + tax, 2),
    }


def _present(docs: List[dict]) -> List[dict]:
    """Serialize orders with the owner resolved to {id, name, email} and the display id."""
    user_ids = {d["user_id"] for d in docs}
    users = {}
    if user_ids:
        wanted = [oid(u) for u in user_ids]
        for u in get_db()["user"].find({"_id": {"$in": wanted}}, USER_FIELDS):
            users[str(u["_id"])] = serialize(u)

    out = []
    for doc in docs:
        order = serialize(doc)
        order["order_id"] = display_id(order["id"])
        order["user"] = users.get(doc["user_id"])
        out.append(order)
    return out


def _load(order_id: str) -> dict:
    doc = get_db()["order"].find_one({"_id": oid(order_id)})
    if not doc:
        raise errors.NotFound("Order not found")
    return doc


def _check_access(doc: dict, caller_id: str, caller_role: str, action: str) -> None:
    if caller_role != "admin" and doc["user_id"] != caller_id:
        raise errors.Forbidden(f"Not authorized to {action} this order")


def _snapshot_items(payload: CreateOrderRequest, settings: Settings) -> List[OrderItem]:
    items = []
    products = get_db()["product"]
    for index, item in enumerate(payload.order_items):
        if settings.recompute_order_totals:
            product = products.find_one({"_id": oid(item.product_id)})
            if not product:
                raise errors.ValidationError(f"Invalid product: {item.product_id}")
            items.append(OrderItem(
                product_id=str(product["_id"]),
                name=product["name"],
                quantity=item.quantity,
                price=float(product["price"]),
                image=(product.get("image") or {}).get("url", ""),
            ))
            continue

        for field in ("name", "price", "image"):
            if getattr(item, field) is None:
                raise errors.ValidationError(f"order_items[{index}].{field} is required")
        items.append(OrderItem(**item.model_dump()))
    return items


def create_order(user_id: str, payload: CreateOrderRequest, settings: Settings) -> dict:
    if not payload.order_items:
        raise errors.ValidationError("No order items provided")

    users = get_db()["user"]
    user = users.find_one({"_id": oid(user_id)}, {"email": 1})
    if not user:
        raise errors.NotFound("User not found")

    items = _snapshot_items(payload, settings)
    if settings.recompute_order_totals:
        totals = compute_totals(items, settings)
    else:
        totals = payload.model_dump(include={"subtotal", "shipping_cost", "tax", "total"})

    order = Order(
        user_id=user_id,
        order_items=items,
        shipping_address=payload.shipping_address,
        payment_method=payload.payment_method,
        **totals,
    )

    if payload.payment_method != CASH_ON_DELIVERY:
        # Payment is captured by the client before the order is placed
        order.is_paid = True
        order.paid_at = now()
        order.payment_result = PaymentResult(
            id="SIMULATED_PAYMENT_ID",
            status="COMPLETED",
            update_time=datetime.now(timezone.utc).isoformat(),
            email_address=user.get("email"),
        )

    order_id = create_document("order", order)
    users.update_one({"_id": user["_id"]}, {"$push": {"orders": order_id}})
    _logger.info(f"Order {display_id(order_id)} created for user {user_id} ({order.payment_method})")

    return _present([_load(order_id)])[0]


def list_orders(caller_id: str, caller_role: str) -> List[dict]:
    """Admins see every order; everyone else only their own."""
    query = {} if caller_role == "admin" else {"user_id": caller_id}
    return _present(get_documents("order", query, sort=NEWEST_FIRST))


def get_order(order_id: str, caller_id: str, caller_role: str) -> dict:
    doc = _load(order_id)
    _check_access(doc, caller_id, caller_role, "access")
    return _present([doc])[0]


def cancel_order(order_id: str, caller_id: str, caller_role: str) -> dict:
    doc = _load(order_id)
    _check_access(doc, caller_id, caller_role, "cancel")
    if doc.get("is_delivered"):
        raise errors.InvalidTransition("Cannot cancel an order that has been delivered")

    result = get_db()["order"].update_one(
        {"_id": doc["_id"], "is_delivered": False},
        {"$set": {"status": "Cancelled", "updated_at": now()}},
    )
    if result.matched_count == 0:
        raise errors.InvalidTransition("Cannot cancel an order that has been delivered")

    _logger.info(f"Order {display_id(doc['_id'])} cancelled by {caller_role} {caller_id}")
    return _present([_load(order_id)])[0]


def update_status(order_id: str, payload: UpdateStatusRequest, settings: Settings) -> dict:
    doc = _load(order_id)
    current = doc.get("status", "Processing")
    if settings.enforce_status_transitions and payload.status != current:
        if payload.status not in TRANSITIONS.get(current, set()):
            raise errors.InvalidTransition(f"Cannot change order status from {current} to {payload.status}")

    changes = {"status": payload.status, "updated_at": now()}
    if payload.tracking_number:
        changes["tracking_number"] = payload.tracking_number
    if payload.status == "Delivered":
        changes["is_delivered"] = True
        changes["delivered_at"] = now()

    get_db()["order"].update_one({"_id": doc["_id"]}, {"$set": changes})
    _logger.info(f"Order {display_id(doc['_id'])} status {current} -> {payload.status}")
    return _present([_load(order_id)])[0]


def update_payment_status(order_id: str, payload: UpdatePaymentRequest) -> dict:
    doc = _load(order_id)

    if payload.is_paid:
        result = payload.payment_result or PaymentResult(
            id=f"MANUAL-{int(time.time() * 1000)}",
            status="COMPLETED",
            update_time=datetime.now(timezone.utc).isoformat(),
            email_address="manual@update.com",
        )
        changes = {"is_paid": True, "paid_at": now(), "payment_result": result.model_dump()}
    else:
        changes = {"is_paid": False, "paid_at": None, "payment_result": None}
    changes["updated_at"] = now()

    get_db()["order"].update_one({"_id": doc["_id"]}, {"$set": changes})
    _logger.info(f"Order {display_id(doc['_id'])} payment set to {'paid' if payload.is_paid else 'unpaid'}")
    return _present([_load(order_id)])[0]
