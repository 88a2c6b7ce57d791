"""Read-side order statistics for the admin dashboard."""
from collections import OrderedDict

from aws_config import MENUS_TABLE, ORDERS_TABLE
from aws_lib.dynamodb_client import DynamoDBClient

from .models import APPROVED, MENU_OPEN, PENDING, REJECTED, TOMBSTONES

RECENT_DAYS = 7


def summarize_orders(orders, menus, days=RECENT_DAYS):
    """
    Quantities per menu date (latest `days` dates, ascending) and per meal
    type. Withdrawn and cancelled orders, and orders whose menu is
    unknown, are skipped.
    """
    by_date = {}
    by_meal = OrderedDict()
    joined = [
        (o, menus[o["menu_id"]]) for o in orders
        if o["menu_id"] in menus and o["status"] not in TOMBSTONES
    ]

    for order, menu in joined:
        day = by_date.setdefault(menu["menu_date"], {
            "date": menu["menu_date"],
            "total_orders": 0,
            "approved_orders": 0,
            "rejected_orders": 0,
            "pending_orders": 0,
        })
        qty = order["quantity"]
        day["total_orders"] += qty
        if order["status"] == APPROVED:
            day["approved_orders"] += qty
        elif order["status"] == REJECTED:
            day["rejected_orders"] += qty
        elif order["status"] == PENDING:
            day["pending_orders"] += qty

        by_meal[menu["meal_type"]] = by_meal.get(menu["meal_type"], 0) + qty

    date_stats = [by_date[d] for d in sorted(by_date)][-days:] if days else []
    return {
        "dateStats": date_stats,
        "mealStats": [{"meal_type": meal, "total_orders": total} for meal, total in by_meal.items()],
        "totalOrders": len(joined),
        "pendingCount": sum(1 for o, _ in joined if o["status"] == PENDING),
    }


class StatisticsAggregator:
    def __init__(self, ddb=None):
        self.ddb = ddb or DynamoDBClient()

    def order_statistics(self, days=RECENT_DAYS):
        menus = {m["menu_id"]: m for m in self.ddb.scan(MENUS_TABLE)}
        return summarize_orders(self.ddb.scan(ORDERS_TABLE), menus, days)

    def dashboard_summary(self):
        orders = self.ddb.scan(ORDERS_TABLE)
        menus = [m for m in self.ddb.scan(MENUS_TABLE) if not m.get("deleted_at")]
        return {
            "pending_orders": sum(1 for o in orders if o["status"] == PENDING),
            "approved_orders": sum(1 for o in orders if o["status"] == APPROVED),
            "rejected_orders": sum(1 for o in orders if o["status"] == REJECTED),
            "open_menus": sum(1 for m in menus if m["status"] == MENU_OPEN),
            "total_menus": len(menus),
        }
