from datetime import datetime, time, timedelta, timezone

from aws_config import TABLE_KEYS, dynamodb_resource
from canteen.menus import MenuStore


def clear_tables(table_names=None):
    """Delete every item from the given tables (default: all portal tables)."""
    ddb = dynamodb_resource()
    cleared = {}
    for table_name in table_names or TABLE_KEYS:
        table = ddb.Table(table_name)
        print(f"Clearing table: {table_name}")

        # Get primary key names dynamically
        key_names = [k['AttributeName'] for k in table.key_schema]

        items = []
        kwargs = {}
        while True:
            response = table.scan(**kwargs)
            items.extend(response.get("Items", []))
            if "LastEvaluatedKey" not in response:
                break
            kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]

        # Delete items using correct key(s)
        with table.batch_writer() as batch:
            for item in items:
                batch.delete_item(Key={k: item[k] for k in key_names})
        print(f"Cleared {len(items)} items from {table_name}")
        cleared[table_name] = len(items)
    return cleared


def seed_demo_menu(store=None, today=None):
    """Tomorrow's lunch, 50 portions, orders close at 10:00 UTC."""
    store = store or MenuStore()
    day = (today or datetime.now(timezone.utc).date()) + timedelta(days=1)
    menu = store.create_menu({
        "title": "Veg Thali",
        "description": "Rice, dal, two sabzi, roti and curd",
        "menu_date": day,
        "meal_type": "lunch",
        "order_deadline": datetime.combine(day, time(10, 0), tzinfo=timezone.utc),
        "total_quantity": 50,
        "price": 60,
    }, created_by="seed")
    print(f"Demo menu inserted: {menu['menu_id']}")
    return menu


if __name__ == "__main__":
    clear_tables()
    seed_demo_menu()
