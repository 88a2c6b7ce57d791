"""Order ledger: reads over the Orders table joined with menus and profiles."""
import logging

from aws_config import ORDERS_TABLE, MENUS_TABLE, PROFILES_TABLE, CLAIMS_TABLE
from aws_lib.dynamodb_client import DynamoDBClient

from .errors import ConflictError, NotFoundError, TransactionCancelled
from .events import LocalEventBus
from .models import PENDING, WITHDRAWN, TOMBSTONES, order_claim_id, to_timestamp, utc_now

logger = logging.getLogger(__name__)


def newest_first(orders):
    return sorted(orders, key=lambda o: o.get("created_at", ""), reverse=True)


class OrderLedger:
    def __init__(self, ddb=None, bus=None, clock=utc_now):
        self.ddb = ddb or DynamoDBClient()
        self.bus = bus or LocalEventBus()
        self.clock = clock

    def get_order(self, order_id):
        order = self.ddb.get(ORDERS_TABLE, {"order_id": order_id})
        if not order:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    def list_orders(self, status=None, menu_id=None):
        orders = self.ddb.scan(ORDERS_TABLE)
        if status:
            orders = [o for o in orders if o["status"] == status]
        if menu_id:
            orders = [o for o in orders if o["menu_id"] == menu_id]
        return newest_first(orders)

    def _menu_lookup(self):
        # tombstoned menus included, old orders still point at them
        return {m["menu_id"]: m for m in self.ddb.scan(MENUS_TABLE)}

    def orders_for_user(self, user_id):
        """A student's order history, each order carrying its menu."""
        menus = self._menu_lookup()
        orders = [o for o in self.ddb.scan(ORDERS_TABLE) if o["user_id"] == user_id]
        return [{**o, "menu": menus.get(o["menu_id"])} for o in newest_first(orders)]

    def order_for_user_menu(self, user_id, menu_id):
        """The user's live order for a menu, or None."""
        for order in self.list_orders(menu_id=menu_id):
            if order["user_id"] == user_id and order["status"] not in TOMBSTONES:
                return order
        return None

    def orders_with_profiles(self, status=None, menu_id=None):
        """Admin listing: orders with their menu and the orderer's profile."""
        orders = self.list_orders(status=status, menu_id=menu_id)
        menus = self._menu_lookup()
        profiles = {p["user_id"]: p for p in self.ddb.scan(PROFILES_TABLE)}
        return [
            {**o, "menu": menus.get(o["menu_id"]), "profile": profiles.get(o["user_id"])}
            for o in orders
        ]

    def withdraw_order(self, order_id, user_id):
        """The owner pulls back a pending order; the menu can be ordered again."""
        order = self.get_order(order_id)
        if order["user_id"] != user_id:
            raise NotFoundError(f"Order {order_id} not found")
        if order["status"] != PENDING:
            raise ConflictError(f"Only pending orders can be withdrawn (order is {order['status']})")

        now = to_timestamp(self.clock())
        try:
            self.ddb.transact_write([
                {
                    "Update": {
                        "TableName": ORDERS_TABLE,
                        "Key": {"order_id": order_id},
                        "UpdateExpression": "SET #status = :withdrawn, updated_at = :now",
                        "ConditionExpression": "#status = :pending AND user_id = :user",
                        "ExpressionAttributeNames": {"#status": "status"},
                        "ExpressionAttributeValues": {
                            ":withdrawn": WITHDRAWN, ":pending": PENDING, ":user": user_id, ":now": now,
                        },
                    }
                },
                {
                    "Delete": {
                        "TableName": CLAIMS_TABLE,
                        "Key": {"claim_id": order_claim_id(user_id, order["menu_id"])},
                    }
                },
            ])
        except TransactionCancelled:
            raise ConflictError(f"Order {order_id} is no longer pending")

        order = self.get_order(order_id)
        logger.info("Order %s withdrawn by %s", order_id, user_id)
        self.bus.publish("orders", "updated", order)
        return order
