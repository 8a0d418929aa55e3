from typing import Protocol

from pymongo.database import Database

from database import create_document
from schemas import Notification, Order


class Notifier(Protocol):
    def order_placed(self, order: Order) -> None:
        ...


class MongoNotifier:
    """Queues buyer notifications in the ``notification`` collection for the mailer."""

    def __init__(self, db: Database):
        self.db = db

    def order_placed(self, order: Order) -> None:
        create_document(self.db, "notification", Notification(
            user=order.user,
            title="Order Placed",
            message=f"Your order #{order.order_number} has been placed.",
            type="order",
        ))
