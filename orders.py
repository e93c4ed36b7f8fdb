"""Order engine: checkout, the status/tracking state machine, and order queries.

Status is a closed enum with one transition table. The tracking checklist is
never edited directly; it is always rebuilt from the status being written, and
status and tracking go to Mongo in the same update.
"""
import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import create_document, get_documents, to_object_id, utcnow
from errors import (
    AuthorizationError,
    ConflictError,
    DependencyError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from payments import PaymentGateway
from schemas import OrderCreate, OrderStatus, PaymentMethod, PaymentStatus
from security import Principal

logger = logging.getLogger(__name__)

COLLECTION = "order"

TRACKING_STEPS = ["Order Placed", "Packed", "Shipped", "Delivered"]

# Position of each fulfilment status in TRACKING_STEPS
STEP_INDEX = {
    OrderStatus.processing: 0,
    OrderStatus.packed: 1,
    OrderStatus.shipped: 2,
    OrderStatus.delivered: 3,
}

VALID_TRANSITIONS = {
    OrderStatus.processing: {OrderStatus.packed, OrderStatus.shipped, OrderStatus.delivered, OrderStatus.cancelled},
    OrderStatus.packed: {OrderStatus.shipped, OrderStatus.delivered, OrderStatus.cancelled},
    OrderStatus.shipped: {OrderStatus.delivered, OrderStatus.cancelled},
    OrderStatus.delivered: set(),
    OrderStatus.cancelled: set(),
}


def tracking_for(status: OrderStatus) -> List[Dict[str, Any]]:
    """Build the tracking checklist that corresponds to ``status``.

    A fulfilment status at index i completes steps 0..i. Cancelled only keeps
    "Order Placed", whatever progress the order had made before.
    """
    last_done = 0 if status == OrderStatus.cancelled else STEP_INDEX[status]
    return [{"label": label, "completed": i <= last_done} for i, label in enumerate(TRACKING_STEPS)]


def check_transition(current: OrderStatus, requested: OrderStatus) -> None:
    if requested == current:
        return
    if requested in VALID_TRANSITIONS[current]:
        return
    if current == OrderStatus.delivered and requested == OrderStatus.cancelled:
        raise InvalidTransitionError("Delivered orders cannot be cancelled", current.value, requested.value)
    if current == OrderStatus.cancelled:
        raise InvalidTransitionError("Cancelled orders cannot be updated", current.value, requested.value)
    raise InvalidTransitionError(
        f"Cannot move order from {current.value} back to {requested.value}", current.value, requested.value
    )


def order_total(items) -> float:
    return round(sum(item.price * item.quantity for item in items), 2)


class OrderEngine:
    def __init__(self, db: Database, gateway: Optional[PaymentGateway] = None):
        self.db = db
        self.gateway = gateway

    @property
    def orders(self):
        return self.db[COLLECTION]

    def create_order(self, principal: Principal, command: OrderCreate) -> Dict[str, Any]:
        if not command.items:
            raise ValidationError("No items in order")
        for item in command.items:
            if item.quantity <= 0:
                raise ValidationError(f"Invalid quantity for {item.name}")
            if item.price < 0:
                raise ValidationError(f"Invalid price for {item.name}")

        total = order_total(command.items)
        if command.total is not None and abs(command.total - total) >= 0.005:
            logger.warning(
                f"Client total {command.total} for {principal.id} ignored, recomputed {total}"
            )

        order_id = ObjectId()
        payment_status = self._claim_payment(principal, command, total, order_id)
        data = {
            "_id": order_id,
            "user_id": principal.id,
            "customer": principal.name,
            "items": [item.model_dump(mode="json") for item in command.items],
            "total_amount": total,
            "address": command.address.model_dump(mode="json"),
            "payment_method": command.payment_method.value,
            "payment_reference": command.payment_reference,
            "payment_status": payment_status.value,
            "order_status": OrderStatus.processing.value,
            "tracking": tracking_for(OrderStatus.processing),
        }
        try:
            order = create_document(self.db, COLLECTION, data)
        except PyMongoError:
            self._release_payment(command, payment_status, order_id)
            raise

        try:
            self._remove_from_cart(principal.id, {item.item_id for item in command.items})
        except PyMongoError:
            logger.exception(f"Clearing cart failed for {principal.id}, rolling back order {order_id}")
            self.orders.delete_one({"_id": order_id})
            self._release_payment(command, payment_status, order_id)
            raise DependencyError("Failed to create order")

        logger.info(f"Order {order_id} created for {principal.id}: total {total}, {len(command.items)} item(s)")
        return order

    def _claim_payment(self, principal: Principal, command: OrderCreate, total: float, order_id: ObjectId) -> PaymentStatus:
        """Paid only if this order is the one that claims a settled payment of the caller's."""
        if command.payment_method == PaymentMethod.cod or not command.payment_reference or self.gateway is None:
            return PaymentStatus.pending
        if self.gateway.claim(command.payment_reference, total, principal.id, str(order_id)):
            return PaymentStatus.paid
        return PaymentStatus.pending

    def _release_payment(self, command: OrderCreate, payment_status: PaymentStatus, order_id: ObjectId) -> None:
        if payment_status == PaymentStatus.paid:
            self.gateway.release(command.payment_reference, str(order_id))

    def _remove_from_cart(self, user_id: str, listing_ids: set) -> None:
        # Single $pull so a concurrent cart save is never overwritten
        self.db["account"].update_one(
            {"_id": to_object_id(user_id)},
            {"$pull": {"cart": {"listing_id": {"$in": list(listing_ids)}}}},
        )

    def get_order(self, principal: Principal, order_id: str) -> Dict[str, Any]:
        order = self._find(order_id)
        self._check_access(principal, order)
        return order

    def list_orders(self, principal: Principal, status: Optional[OrderStatus] = None, all_accounts: bool = False):
        query: Dict[str, Any] = {}
        if not (all_accounts and principal.is_admin):
            query["user_id"] = principal.id
        if status:
            query["order_status"] = status.value
        return get_documents(self.db, COLLECTION, query, newest_first=True)

    def update_status(self, principal: Principal, order_id: str, requested: OrderStatus) -> Dict[str, Any]:
        order = self._find(order_id)
        self._check_access(principal, order)

        current = OrderStatus(order["order_status"])
        try:
            check_transition(current, requested)
        except InvalidTransitionError:
            logger.warning(f"Rejected {current.value} -> {requested.value} on order {order_id} by {principal.id}")
            raise
        if requested == current:
            return order

        return self._write_status(order, current, requested)

    def cancel_order(self, principal: Principal, order_id: str) -> Dict[str, Any]:
        """Self-service cancellation, only while the order is still Processing."""
        order = self._find(order_id)
        if order["user_id"] != principal.id:
            raise AuthorizationError("Not authorized to update this order")

        current = OrderStatus(order["order_status"])
        if current != OrderStatus.processing:
            raise InvalidTransitionError(
                "Only processing orders can be cancelled", current.value, OrderStatus.cancelled.value
            )
        return self._write_status(order, current, OrderStatus.cancelled)

    def update_payment_status(self, order_id: str, payment_status: PaymentStatus) -> Dict[str, Any]:
        order = self._find(order_id)
        updated = self.orders.find_one_and_update(
            {"_id": order["_id"]},
            {"$set": {"payment_status": payment_status.value, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            raise NotFoundError("Order", order_id)
        logger.info(f"Order {order_id} payment status set to {payment_status.value}")
        return updated

    def _write_status(self, order: Dict[str, Any], current: OrderStatus, requested: OrderStatus) -> Dict[str, Any]:
        # Only write if nobody changed the status since we validated it
        updated = self.orders.find_one_and_update(
            {"_id": order["_id"], "order_status": current.value},
            {"$set": {
                "order_status": requested.value,
                "tracking": tracking_for(requested),
                "updated_at": utcnow(),
            }},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            logger.warning(f"Order {order['_id']} changed during {current.value} -> {requested.value}")
            raise ConflictError("Order was updated by another request, please retry")
        logger.info(f"Order {order['_id']} moved {current.value} -> {requested.value}")
        return updated

    def _find(self, order_id: str) -> Dict[str, Any]:
        oid = to_object_id(order_id)
        order = self.orders.find_one({"_id": oid}) if oid else None
        if not order:
            raise NotFoundError("Order", order_id)
        return order

    def _check_access(self, principal: Principal, order: Dict[str, Any]) -> None:
        if principal.is_admin or order["user_id"] == principal.id:
            return
        logger.warning(f"{principal.id} tried to access order {order['_id']}")
        raise AuthorizationError("Not authorized to access this order")
