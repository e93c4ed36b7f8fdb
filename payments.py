"""Payment collaborators.

The order engine only asks a gateway to claim a settled reference for one
order; it never talks to a provider itself. ``MockGateway`` stands in for
Razorpay/Stripe/UPI and records its intents in the ``payment`` collection.
"""
import logging
import uuid
from typing import Any, Dict

from pymongo.database import Database

from database import create_document

logger = logging.getLogger(__name__)


class PaymentGateway:
    def create_intent(self, amount: float, user_id: str) -> Dict[str, Any]:
        raise NotImplementedError

    def claim(self, payment_id: str, amount: float, user_id: str, order_id: str) -> bool:
        """Bind a settled payment to ``order_id``. False if it is unknown, foreign or already used."""
        raise NotImplementedError

    def release(self, payment_id: str, order_id: str) -> None:
        raise NotImplementedError


class MockGateway(PaymentGateway):
    def __init__(self, db: Database):
        self.db = db

    def create_intent(self, amount: float, user_id: str) -> Dict[str, Any]:
        pid = f"pay_{uuid.uuid4().hex[:16]}"
        create_document(self.db, "payment", {
            "payment_id": pid,
            "amount": round(amount, 2),
            "status": "success",
            "user_id": user_id,
            "order_id": None,
        })
        logger.info(f"Mock payment {pid} created for {amount}")
        return {"payment_id": pid, "amount": round(amount, 2), "status": "success"}

    def claim(self, payment_id: str, amount: float, user_id: str, order_id: str) -> bool:
        doc = self.db["payment"].find_one_and_update(
            {
                "payment_id": payment_id,
                "status": "success",
                "user_id": user_id,
                "order_id": None,
                "amount": round(amount, 2),
            },
            {"$set": {"order_id": order_id}},
        )
        if doc is None:
            logger.warning(f"Payment {payment_id} could not be claimed by {user_id}")
            return False
        return True

    def release(self, payment_id: str, order_id: str) -> None:
        self.db["payment"].update_one({"payment_id": payment_id, "order_id": order_id}, {"$set": {"order_id": None}})
