"""
Order approval workflow.

    pending -> approved | rejected | withdrawn
    approved -> cancellation_requested -> cancelled | approved

Capacity is reserved at approval, not at request time, so pending requests
may oversubscribe a menu and the admin arbitrates. Every transition is a
single DynamoDB transaction whose conditions re-check the state that was
read, so concurrent admins can never push remaining_quantity below zero
nor leave an approved order without its token and bill.
"""
import logging
import uuid
from decimal import Decimal

from aws_config import MENUS_TABLE, ORDERS_TABLE, BILLS_TABLE, CLAIMS_TABLE, TOKEN_ATTEMPTS
from aws_lib.dynamodb_client import DynamoDBClient

from .errors import ConflictError, NotFoundError, OrderRejected, TransactionCancelled, ValidationError
from .events import LocalEventBus
from .fulfillment import mint_token
from .menus import MenuStore, OPTIMISTIC_ATTEMPTS, clean_quantity
from .models import (
    MENU_OPEN, PENDING, APPROVED, REJECTED, CANCELLATION_REQUESTED, CANCELLED,
    order_claim_id, token_claim_id, to_timestamp, utc_now,
)
from .orders import OrderLedger

logger = logging.getLogger(__name__)


class ReservationEngine:
    def __init__(self, ddb=None, bus=None, clock=utc_now, menus=None, ledger=None):
        self.ddb = ddb or DynamoDBClient()
        self.bus = bus or LocalEventBus()
        self.clock = clock
        self.menus = menus or MenuStore(ddb=self.ddb, bus=self.bus, clock=clock)
        self.ledger = ledger or OrderLedger(ddb=self.ddb, bus=self.bus, clock=clock)

    # ------------------------------------------------------------------
    # student side
    # ------------------------------------------------------------------
    def place_order(self, menu_id, user_id, quantity):
        quantity = clean_quantity(quantity, "quantity", minimum=1)
        menu = self.menus.get_menu(menu_id)
        now = to_timestamp(self.clock())
        self._check_orderable(menu, quantity, now)

        claim_id = order_claim_id(user_id, menu_id)
        if self.ddb.get(CLAIMS_TABLE, {"claim_id": claim_id}):
            raise OrderRejected("You already have an order for this menu")

        order = {
            "order_id": str(uuid.uuid4()),
            "user_id": user_id,
            "menu_id": menu_id,
            "quantity": quantity,
            "requested_quantity": quantity,
            "status": PENDING,
            "is_fulfilled": False,
            "created_at": now,
            "updated_at": now,
        }
        try:
            self.ddb.transact_write([
                {
                    "ConditionCheck": {
                        "TableName": MENUS_TABLE,
                        "Key": {"menu_id": menu_id},
                        "ConditionExpression": "#status = :open AND order_deadline > :now "
                                               "AND remaining_quantity >= :qty "
                                               "AND attribute_not_exists(deleted_at)",
                        "ExpressionAttributeNames": {"#status": "status"},
                        "ExpressionAttributeValues": {":open": MENU_OPEN, ":now": now, ":qty": quantity},
                    }
                },
                {
                    "Put": {
                        "TableName": CLAIMS_TABLE,
                        "Item": {"claim_id": claim_id, "order_id": order["order_id"]},
                        "ConditionExpression": "attribute_not_exists(claim_id)",
                    }
                },
                {
                    "Put": {
                        "TableName": ORDERS_TABLE,
                        "Item": order,
                        "ConditionExpression": "attribute_not_exists(order_id)",
                    }
                },
            ])
        except TransactionCancelled as e:
            if e.failed(1):
                raise OrderRejected("You already have an order for this menu")
            if e.failed(0):
                # explain with the state that beat us
                self._check_orderable(self.menus.get_menu(menu_id), quantity, now)
            raise OrderRejected("The menu changed while ordering, try again")

        logger.info("Order %s placed by %s for menu %s (x%d)", order["order_id"], user_id, menu_id, quantity)
        self.bus.publish("orders", "created", order)
        return order

    def _check_orderable(self, menu, quantity, now):
        if menu["status"] != MENU_OPEN:
            raise OrderRejected("This menu is closed for orders")
        if menu["order_deadline"] <= now:
            raise OrderRejected("The order deadline has passed")
        if menu["remaining_quantity"] < quantity:
            raise OrderRejected(f"Only {menu['remaining_quantity']} portion(s) left")

    def request_cancellation(self, order_id, user_id=None):
        order = self.ledger.get_order(order_id)
        if user_id is not None and order["user_id"] != user_id:
            raise NotFoundError(f"Order {order_id} not found")
        if order["status"] != APPROVED:
            raise ConflictError(f"Only approved orders can be cancelled (order is {order['status']})")
        if order.get("is_fulfilled"):
            raise ConflictError("A collected order cannot be cancelled")

        now = to_timestamp(self.clock())
        condition = "#status = :approved AND is_fulfilled = :false"
        values = {":requested": CANCELLATION_REQUESTED, ":approved": APPROVED, ":false": False, ":now": now}
        if user_id is not None:
            condition += " AND user_id = :user"
            values[":user"] = user_id
        order = self._transition(
            order_id,
            "SET #status = :requested, cancellation_requested_at = :now, updated_at = :now",
            condition, values,
        )
        logger.info("Cancellation requested for order %s", order_id)
        return order

    # ------------------------------------------------------------------
    # admin side
    # ------------------------------------------------------------------
    def approve_order(self, order_id, approved_quantity=None):
        """
        Approve a pending order for k portions (default: all requested).
        Atomically: menu stock -= k, order approved with quantity k,
        token claimed, bill written.
        """
        order = self.ledger.get_order(order_id)
        if order["status"] != PENDING:
            raise ConflictError(f"Only pending orders can be approved (order is {order['status']})")
        if approved_quantity is None:
            k = order["quantity"]
        else:
            k = clean_quantity(approved_quantity, "approved_quantity", minimum=1)
        if k > order["quantity"]:
            raise ValidationError(f"Cannot approve more than the {order['quantity']} portion(s) requested")

        menu = self.menus.get_menu(order["menu_id"])
        if k > menu["remaining_quantity"]:
            raise ConflictError(f"Only {menu['remaining_quantity']} portion(s) left")

        price = Decimal(str(menu["price"]))
        now = to_timestamp(self.clock())
        for _ in range(TOKEN_ATTEMPTS):
            token = mint_token()
            bill = {
                "bill_id": str(uuid.uuid4()),
                "order_id": order_id,
                "user_id": order["user_id"],
                "menu_id": order["menu_id"],
                "quantity": k,
                "unit_price": price,
                "total_amount": price * k,
                "bill_date": now,
            }
            try:
                self.ddb.transact_write(self._approval_items(order, k, price, token, bill, now))
            except TransactionCancelled as e:
                if e.failed(2):
                    logger.warning("Token collision approving order %s, minting another", order_id)
                    continue
                if e.failed(0):
                    menu = self.menus.get_menu(order["menu_id"])
                    if k > menu["remaining_quantity"]:
                        raise ConflictError(f"Only {menu['remaining_quantity']} portion(s) left")
                    raise ConflictError("The menu changed while approving, try again")
                if e.failed(1):
                    raise ConflictError(f"Order {order_id} is no longer pending")
                raise ConflictError(f"Approval of order {order_id} failed, try again")
            break
        else:
            raise ConflictError("Could not issue a unique pickup token, try again")

        approved = self.ledger.get_order(order_id)
        logger.info("Order %s approved for %d portion(s), token %s, bill %s",
                    order_id, k, token, bill["bill_id"])
        self.bus.publish("menus", "updated", self.menus.get_menu(order["menu_id"], include_deleted=True))
        self.bus.publish("orders", "updated", approved)
        self.bus.publish("bills", "created", self.ddb.get(BILLS_TABLE, {"bill_id": bill["bill_id"]}))
        return approved

    @staticmethod
    def _approval_items(order, k, price, token, bill, now):
        return [
            {
                "Update": {
                    "TableName": MENUS_TABLE,
                    "Key": {"menu_id": order["menu_id"]},
                    "UpdateExpression": "SET remaining_quantity = remaining_quantity - :k, updated_at = :now",
                    "ConditionExpression": "remaining_quantity >= :k AND #price = :price "
                                           "AND attribute_not_exists(deleted_at)",
                    "ExpressionAttributeNames": {"#price": "price"},
                    "ExpressionAttributeValues": {":k": k, ":now": now, ":price": price},
                }
            },
            {
                "Update": {
                    "TableName": ORDERS_TABLE,
                    "Key": {"order_id": order["order_id"]},
                    "UpdateExpression": "SET #status = :approved, #qty = :k, #token = :token, "
                                        "bill_id = :bill, approved_at = :now, updated_at = :now",
                    "ConditionExpression": "#status = :pending AND #qty >= :k",
                    "ExpressionAttributeNames": {"#status": "status", "#qty": "quantity", "#token": "token"},
                    "ExpressionAttributeValues": {
                        ":approved": APPROVED, ":pending": PENDING, ":k": k,
                        ":token": token, ":bill": bill["bill_id"], ":now": now,
                    },
                }
            },
            {
                "Put": {
                    "TableName": CLAIMS_TABLE,
                    "Item": {"claim_id": token_claim_id(token), "order_id": order["order_id"]},
                    "ConditionExpression": "attribute_not_exists(claim_id)",
                }
            },
            {
                "Put": {
                    "TableName": BILLS_TABLE,
                    "Item": bill,
                    "ConditionExpression": "attribute_not_exists(bill_id)",
                }
            },
        ]

    def reject_order(self, order_id):
        order = self.ledger.get_order(order_id)
        if order["status"] != PENDING:
            raise ConflictError(f"Only pending orders can be rejected (order is {order['status']})")
        order = self._transition(
            order_id,
            "SET #status = :rejected, updated_at = :now",
            "#status = :pending",
            {":rejected": REJECTED, ":pending": PENDING, ":now": to_timestamp(self.clock())},
        )
        logger.info("Order %s rejected", order_id)
        return order

    def approve_cancellation(self, order_id):
        """
        Cancel an approved order: stock comes back (capped at the menu total),
        the order is kept as `cancelled`, its claims are released and its
        bill stays untouched as the financial record.
        """
        for _ in range(OPTIMISTIC_ATTEMPTS):
            order = self.ledger.get_order(order_id)
            if order["status"] != CANCELLATION_REQUESTED:
                raise ConflictError(f"Order {order_id} has no pending cancellation request")
            menu = self.menus.get_menu(order["menu_id"], include_deleted=True)
            restored = min(menu["total_quantity"], menu["remaining_quantity"] + order["quantity"])
            now = to_timestamp(self.clock())

            items = [
                {
                    "Update": {
                        "TableName": MENUS_TABLE,
                        "Key": {"menu_id": menu["menu_id"]},
                        "UpdateExpression": "SET remaining_quantity = :restored, updated_at = :now",
                        "ConditionExpression": "remaining_quantity = :old AND total_quantity = :total",
                        "ExpressionAttributeValues": {
                            ":restored": restored, ":now": now,
                            ":old": menu["remaining_quantity"], ":total": menu["total_quantity"],
                        },
                    }
                },
                {
                    "Update": {
                        "TableName": ORDERS_TABLE,
                        "Key": {"order_id": order_id},
                        "UpdateExpression": "SET #status = :cancelled, cancelled_at = :now, updated_at = :now",
                        "ConditionExpression": "#status = :requested",
                        "ExpressionAttributeNames": {"#status": "status"},
                        "ExpressionAttributeValues": {
                            ":cancelled": CANCELLED, ":requested": CANCELLATION_REQUESTED, ":now": now,
                        },
                    }
                },
                {
                    "Delete": {
                        "TableName": CLAIMS_TABLE,
                        "Key": {"claim_id": order_claim_id(order["user_id"], order["menu_id"])},
                    }
                },
            ]
            if order.get("token"):
                items.append({
                    "Delete": {
                        "TableName": CLAIMS_TABLE,
                        "Key": {"claim_id": token_claim_id(order["token"])},
                    }
                })
            try:
                self.ddb.transact_write(items)
            except TransactionCancelled as e:
                if e.failed(0):
                    logger.info("Menu %s changed during cancellation of %s, re-reading", menu["menu_id"], order_id)
                    continue
                raise ConflictError(f"Order {order_id} has no pending cancellation request")

            cancelled = self.ledger.get_order(order_id)
            logger.info("Cancellation of order %s approved, %d portion(s) back on menu %s",
                        order_id, restored - menu["remaining_quantity"], menu["menu_id"])
            self.bus.publish("menus", "updated", self.menus.get_menu(menu["menu_id"], include_deleted=True))
            self.bus.publish("orders", "updated", cancelled)
            return cancelled
        raise ConflictError(f"Menu stock kept changing while cancelling order {order_id}, try again")

    def reject_cancellation(self, order_id):
        """Deny the request in place: the order returns to approved with its token and bill."""
        order = self.ledger.get_order(order_id)
        if order["status"] != CANCELLATION_REQUESTED:
            raise ConflictError(f"Order {order_id} has no pending cancellation request")
        order = self._transition(
            order_id,
            "SET #status = :approved, updated_at = :now REMOVE cancellation_requested_at",
            "#status = :requested",
            {":approved": APPROVED, ":requested": CANCELLATION_REQUESTED, ":now": to_timestamp(self.clock())},
        )
        logger.info("Cancellation of order %s rejected, order stays approved", order_id)
        return order

    def _transition(self, order_id, update_expression, condition, values):
        """Single-row status change guarded by `condition`."""
        try:
            order = self.ddb.update(
                ORDERS_TABLE, {"order_id": order_id}, update_expression,
                condition=condition, names={"#status": "status"}, values=values,
            )
        except ConflictError:
            current = self.ledger.get_order(order_id)
            raise ConflictError(f"Order {order_id} changed concurrently (now {current['status']})")
        self.bus.publish("orders", "updated", order)
        return order
