"""
Pickup tokens and collection.

A token is minted when an order is approved and stays claimed (Claims
table, `token#<TOKEN>`) for as long as the order is live, so no two live
orders share one. Collection is recorded exactly once.
"""
import logging
import re
import secrets
import string

from aws_config import ORDERS_TABLE, CLAIMS_TABLE, MENUS_TABLE, PROFILES_TABLE, TOKEN_LENGTH
from aws_lib.dynamodb_client import DynamoDBClient

from .errors import ConflictError, NotFoundError
from .events import LocalEventBus
from .models import APPROVED, token_claim_id, to_date, to_timestamp, utc_now

logger = logging.getLogger(__name__)

TOKEN_ALPHABET = string.ascii_uppercase + string.digits
TOKEN_PATTERN = re.compile(rf"^[A-Z0-9]{{{TOKEN_LENGTH}}}$")


def mint_token():
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(TOKEN_LENGTH))


def normalize_token(token):
    return (token or "").strip().upper()


class TokenVerifier:
    def __init__(self, ddb=None, bus=None, clock=utc_now):
        self.ddb = ddb or DynamoDBClient()
        self.bus = bus or LocalEventBus()
        self.clock = clock

    def lookup_by_token(self, token):
        """
        The approved order holding `token` (case-insensitive), with its menu
        and profile. Pending, rejected and cancelled orders never resolve.
        """
        token = normalize_token(token)
        if not TOKEN_PATTERN.match(token):
            raise NotFoundError(f"No approved order found with token {token}")

        claim = self.ddb.get(CLAIMS_TABLE, {"claim_id": token_claim_id(token)})
        order = self.ddb.get(ORDERS_TABLE, {"order_id": claim["order_id"]}) if claim else {}
        if not order or order.get("status") != APPROVED or order.get("token") != token:
            raise NotFoundError(f"No approved order found with token {token}")

        menu = self.ddb.get(MENUS_TABLE, {"menu_id": order["menu_id"]}) or None
        profile = self.ddb.get(PROFILES_TABLE, {"user_id": order["user_id"]}) or None
        return {**order, "menu": menu, "profile": profile}

    def mark_fulfilled(self, order_id):
        """Record collection. A second call fails and keeps the first timestamp."""
        now = to_timestamp(self.clock())
        try:
            order = self.ddb.update(
                ORDERS_TABLE, {"order_id": order_id},
                "SET is_fulfilled = :true, fulfilled_at = :now, updated_at = :now",
                condition="attribute_exists(order_id) AND #status = :approved AND is_fulfilled = :false",
                names={"#status": "status"},
                values={":true": True, ":false": False, ":now": now, ":approved": APPROVED},
            )
        except ConflictError:
            current = self.ddb.get(ORDERS_TABLE, {"order_id": order_id})
            if not current:
                raise NotFoundError(f"Order {order_id} not found")
            if current.get("is_fulfilled"):
                raise ConflictError(f"Order {order_id} was already collected at {current.get('fulfilled_at')}")
            raise ConflictError(f"Order {order_id} is {current['status']}, only approved orders can be collected")

        logger.info("Order %s collected with token %s", order_id, order.get("token"))
        self.bus.publish("orders", "updated", order)
        return order

    def verify_and_fulfill(self, token):
        order = self.lookup_by_token(token)
        return self.mark_fulfilled(order["order_id"])

    def release_collected_tokens(self, before=None):
        """
        Free the token claims of collected orders whose menu day is before
        `before` (default today). Until then a collected token still
        resolves, so the counter can answer "already collected".
        """
        before = to_date(before or self.clock())
        menus = {m["menu_id"]: m for m in self.ddb.scan(MENUS_TABLE)}
        released = []
        for order in self.ddb.scan(ORDERS_TABLE):
            menu = menus.get(order["menu_id"])
            if not (order.get("is_fulfilled") and order.get("token") and menu) or menu["menu_date"] >= before:
                continue
            try:
                self.ddb.delete(
                    CLAIMS_TABLE, {"claim_id": token_claim_id(order["token"])},
                    condition="order_id = :order", values={":order": order["order_id"]},
                )
            except ConflictError:
                # released earlier, or the token now belongs to a newer order
                continue
            released.append(order["order_id"])
        logger.info("Released %d collected token(s) from before %s", len(released), before)
        return released
