"""
Bills.

Two views: the live bill computed from a student's current orders and
menu prices, and the stored Bill rows written at approval time, which
are the payment record and never change afterwards.
"""
from decimal import Decimal

from aws_config import BILLS_TABLE, MENUS_TABLE, ORDERS_TABLE
from aws_lib.dynamodb_client import DynamoDBClient

from .models import CANCELLED, HOLDING_STATUSES


def money(value):
    return Decimal(str(value or 0))


class BillingAggregator:
    def __init__(self, ddb=None):
        self.ddb = ddb or DynamoDBClient()

    def _menus(self):
        return {m["menu_id"]: m for m in self.ddb.scan(MENUS_TABLE)}

    def live_bill(self, user_id):
        """Approved orders priced at read time."""
        menus = self._menus()
        lines = []
        for order in self.ddb.scan(ORDERS_TABLE):
            if order["user_id"] != user_id or order["status"] not in HOLDING_STATUSES:
                continue
            menu = menus.get(order["menu_id"])
            if not menu:
                continue
            amount = money(menu["price"]) * order["quantity"]
            lines.append({
                "order_id": order["order_id"],
                "menu": menu,
                "quantity": order["quantity"],
                "unit_price": money(menu["price"]),
                "amount": amount,
                "status": order["status"],
            })
        lines.sort(key=lambda line: line["menu"]["menu_date"], reverse=True)
        return {
            "user_id": user_id,
            "lines": lines,
            "total_quantity": sum(line["quantity"] for line in lines),
            "total_amount": sum((line["amount"] for line in lines), Decimal(0)),
        }

    def bill_history(self, user_id=None):
        """
        Stored bills with their menu, newest first. A bill whose order was
        cancelled afterwards is flagged `refunded` and left out of the total.
        """
        menus = self._menus()
        orders = {o["order_id"]: o for o in self.ddb.scan(ORDERS_TABLE)}
        bills = self.ddb.scan(BILLS_TABLE)
        if user_id:
            bills = [b for b in bills if b["user_id"] == user_id]

        rows = []
        for bill in sorted(bills, key=lambda b: b["bill_date"], reverse=True):
            order = orders.get(bill["order_id"], {})
            rows.append({
                **bill,
                "total_amount": money(bill["total_amount"]),
                "unit_price": money(bill["unit_price"]),
                "menu": menus.get(bill["menu_id"]),
                "refunded": order.get("status") == CANCELLED,
            })
        return {
            "bills": rows,
            "count": len(rows),
            "total_amount": sum((r["total_amount"] for r in rows if not r["refunded"]), Decimal(0)),
        }
