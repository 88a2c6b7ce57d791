"""
Menu inventory: the orderable offerings and their bounded stock.

Invariant kept by every write here: 0 <= remaining_quantity <= total_quantity.
Stock changes that race with order approval are applied optimistically,
conditioned on the total/remaining values that were read.
"""
import logging
import uuid
from decimal import Decimal, InvalidOperation

from aws_config import MENUS_TABLE, ORDERS_TABLE, CLAIMS_TABLE, MEAL_TYPES, S3_BUCKET_NAME
from aws_lib.dynamodb_client import DynamoDBClient
from aws_lib.s3_client import S3Client

from .errors import ConflictError, NotFoundError, TransactionCancelled, ValidationError
from .events import LocalEventBus
from .models import (
    MENU_OPEN, MENU_CLOSED, MENU_STATUSES, PENDING, REJECTED, HOLDING_STATUSES,
    order_claim_id, to_date, to_timestamp, utc_now,
)

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "title", "description", "image_url", "menu_date", "meal_type",
    "order_deadline", "total_quantity", "price", "status",
)
OPTIMISTIC_ATTEMPTS = 3
# two transaction items per order, DynamoDB allows 100 per transaction
REJECT_BATCH = 25


def set_expression(fields):
    """SET expression for `fields`, every attribute name aliased."""
    parts, names, values = [], {}, {}
    for i, (field, value) in enumerate(fields.items()):
        names[f"#f{i}"] = field
        values[f":v{i}"] = value
        parts.append(f"#f{i} = :v{i}")
    return "SET " + ", ".join(parts), names, values


def clean_quantity(value, field, minimum=0):
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer")
    if number != value and not isinstance(value, str):
        raise ValidationError(f"{field} must be an integer")
    if number < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    return number


def clean_price(value):
    try:
        price = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError("price must be a number")
    if not price.is_finite() or price < 0:
        raise ValidationError("price must be zero or more")
    return price


def clean_menu_fields(data, partial=False):
    """Validate and normalise menu attributes."""
    cleaned = {}
    for field in EDITABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == "title":
            value = (value or "").strip()
            if not value:
                raise ValidationError("title is required")
        elif field in ("description", "image_url"):
            value = (value or "").strip() or None
        elif field == "menu_date":
            value = to_date(value)
        elif field == "meal_type":
            value = str(value or "").strip().lower()
            if value not in MEAL_TYPES:
                raise ValidationError(f"meal_type must be one of {', '.join(MEAL_TYPES)}")
        elif field == "order_deadline":
            value = to_timestamp(value)
        elif field == "total_quantity":
            value = clean_quantity(value, field)
        elif field == "price":
            value = clean_price(value)
        elif field == "status":
            if value not in MENU_STATUSES:
                raise ValidationError(f"status must be one of {', '.join(MENU_STATUSES)}")
        cleaned[field] = value

    if not partial:
        for field in ("title", "menu_date", "meal_type", "order_deadline", "total_quantity", "price"):
            if field not in cleaned:
                raise ValidationError(f"{field} is required")
    return cleaned


def is_orderable(menu, now):
    """Open, deadline ahead and stock left: students may place orders."""
    return (
        menu.get("status") == MENU_OPEN
        and not menu.get("deleted_at")
        and menu["order_deadline"] > to_timestamp(now)
        and menu["remaining_quantity"] > 0
    )


class MenuStore:
    def __init__(self, ddb=None, bus=None, s3=None, clock=utc_now):
        self.ddb = ddb or DynamoDBClient()
        self.bus = bus or LocalEventBus()
        self.s3 = s3 or S3Client()
        self.clock = clock

    def create_menu(self, data, created_by=None):
        fields = clean_menu_fields(data)
        now = to_timestamp(self.clock())
        menu = {
            "menu_id": str(uuid.uuid4()),
            "description": None,
            "image_url": None,
            "status": MENU_OPEN,
            **fields,
            "remaining_quantity": fields["total_quantity"],
            "created_by": created_by,
            "created_at": now,
            "updated_at": now,
        }
        self.ddb.put(MENUS_TABLE, menu, condition="attribute_not_exists(menu_id)")
        menu = self.ddb.get(MENUS_TABLE, {"menu_id": menu["menu_id"]})
        logger.info("Menu %s created (%s %s, %d portions)",
                    menu["menu_id"], menu["menu_date"], menu["meal_type"], menu["total_quantity"])
        self.bus.publish("menus", "created", menu)
        return menu

    def get_menu(self, menu_id, include_deleted=False):
        menu = self.ddb.get(MENUS_TABLE, {"menu_id": menu_id})
        if not menu or (menu.get("deleted_at") and not include_deleted):
            raise NotFoundError(f"Menu {menu_id} not found")
        return menu

    def list_menus(self, menu_date=None, meal_type=None):
        menus = [m for m in self.ddb.scan(MENUS_TABLE) if not m.get("deleted_at")]
        if menu_date:
            menu_date = to_date(menu_date)
            menus = [m for m in menus if m["menu_date"] == menu_date]
        if meal_type:
            menus = [m for m in menus if m["meal_type"] == meal_type]
        return sorted(menus, key=lambda m: (m["menu_date"], m["meal_type"]))

    def available_menus(self, now=None):
        now = now or self.clock()
        return [m for m in self.list_menus() if is_orderable(m, now)]

    def update_menu(self, menu_id, changes):
        fields = clean_menu_fields(changes, partial=True)
        if not fields:
            raise ValidationError("Nothing to update")

        for _ in range(OPTIMISTIC_ATTEMPTS):
            menu = self.get_menu(menu_id)
            updates = dict(fields)
            if "total_quantity" in fields:
                delta = fields["total_quantity"] - menu["total_quantity"]
                remaining = menu["remaining_quantity"] + delta
                if remaining < 0:
                    committed = menu["total_quantity"] - menu["remaining_quantity"]
                    raise ConflictError(
                        f"total_quantity cannot drop below the {committed} portions already approved"
                    )
                updates["remaining_quantity"] = remaining
            updates["updated_at"] = to_timestamp(self.clock())

            expression, names, values = set_expression(updates)
            names.update({"#total": "total_quantity", "#remaining": "remaining_quantity"})
            values.update({":old_total": menu["total_quantity"], ":old_remaining": menu["remaining_quantity"]})
            try:
                updated = self.ddb.update(
                    MENUS_TABLE, {"menu_id": menu_id}, expression,
                    condition="#total = :old_total AND #remaining = :old_remaining "
                              "AND attribute_not_exists(deleted_at)",
                    names=names, values=values,
                )
            except ConflictError:
                logger.info("Menu %s changed concurrently, re-reading", menu_id)
                continue
            logger.info("Menu %s updated: %s", menu_id, ", ".join(sorted(fields)))
            self.bus.publish("menus", "updated", updated)
            return updated
        raise ConflictError(f"Menu {menu_id} is being modified, try again")

    def set_status(self, menu_id, status):
        return self.update_menu(menu_id, {"status": status})

    def attach_image(self, menu_id, filename, body, content_type=None):
        self.get_menu(menu_id)
        key = f"menus/{menu_id}/{uuid.uuid4().hex}-{filename}"
        url = self.s3.upload_image(S3_BUCKET_NAME, key, body, content_type)
        return self.update_menu(menu_id, {"image_url": url})

    def delete_menu(self, menu_id):
        """
        Tombstone a menu. Refused while approved orders still hold its stock;
        pending orders are rejected. Orders and bills stay in place.

        The tombstone is written first so no order can be placed or approved
        afterwards, then every pending order is rejected in batches.
        """
        menu = self.get_menu(menu_id)
        holding = [o for o in self._menu_orders(menu_id) if o["status"] in HOLDING_STATUSES]
        if holding:
            raise ConflictError(f"Menu {menu_id} has {len(holding)} approved order(s); resolve them first")

        now = to_timestamp(self.clock())
        try:
            deleted = self.ddb.update(
                MENUS_TABLE, {"menu_id": menu_id},
                "SET deleted_at = :now, #status = :closed, updated_at = :now",
                # no stock out means no approved order slipped in since the check
                condition="attribute_not_exists(deleted_at) AND remaining_quantity = total_quantity",
                names={"#status": "status"},
                values={":now": now, ":closed": MENU_CLOSED},
            )
        except ConflictError:
            if self.ddb.get(MENUS_TABLE, {"menu_id": menu_id}).get("deleted_at"):
                raise NotFoundError(f"Menu {menu_id} not found")
            raise ConflictError(f"Menu {menu_id} has approved orders; resolve them first")
        logger.info("Menu %s deleted (%s %s)", menu_id, menu["menu_date"], menu["meal_type"])
        self.bus.publish("menus", "deleted", deleted)

        rejected = self.reject_pending_orders(menu_id, now)
        logger.info("Menu %s: %d pending order(s) rejected", menu_id, len(rejected))
        return deleted

    def _menu_orders(self, menu_id, consistent=False):
        return [o for o in self.ddb.scan(ORDERS_TABLE, consistent=consistent) if o["menu_id"] == menu_id]

    def reject_pending_orders(self, menu_id, now):
        """
        Reject the pending orders of a tombstoned menu and release their
        claims, REJECT_BATCH orders per transaction.
        """
        pending = [o for o in self._menu_orders(menu_id, consistent=True) if o["status"] == PENDING]
        rejected = []
        for start in range(0, len(pending), REJECT_BATCH):
            batch = pending[start:start + REJECT_BATCH]
            try:
                self.ddb.transact_write([item for o in batch for item in self._rejection_items(o, now)])
                rejected.extend(batch)
            except TransactionCancelled:
                # an owner withdrew one of them meanwhile, settle the batch one by one
                for order in batch:
                    try:
                        self.ddb.transact_write(self._rejection_items(order, now))
                    except TransactionCancelled:
                        logger.info("Order %s left pending state before rejection", order["order_id"])
                        continue
                    rejected.append(order)

        for order in rejected:
            self.bus.publish("orders", "updated", {**order, "status": REJECTED, "updated_at": now})
        return rejected

    @staticmethod
    def _rejection_items(order, now):
        return [
            {
                "Update": {
                    "TableName": ORDERS_TABLE,
                    "Key": {"order_id": order["order_id"]},
                    "UpdateExpression": "SET #status = :rejected, updated_at = :now",
                    "ConditionExpression": "#status = :pending",
                    "ExpressionAttributeNames": {"#status": "status"},
                    "ExpressionAttributeValues": {":rejected": REJECTED, ":pending": PENDING, ":now": now},
                }
            },
            {
                "Delete": {
                    "TableName": CLAIMS_TABLE,
                    "Key": {"claim_id": order_claim_id(order["user_id"], order["menu_id"])},
                }
            },
        ]
