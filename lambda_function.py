import json
import logging

from aws_config import ALERTS_TOPIC_NAME, LOW_STOCK_THRESHOLD
from aws_lib.sns_client import SNSClient
from canteen.events import decode_message
from sns_utils import ensure_topic

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

sns = SNSClient()


# --------------------------
# Lambda Handler
# --------------------------
def lambda_handler(event, context):
    """
    Triggered by the SQS queue subscribed to the menus change topic.
    Sends a low stock alert when a menu's remaining portions drop under
    LOW_STOCK_THRESHOLD.
    """
    processed, alerts, skipped = 0, 0, 0

    for record in event.get("Records", []):
        try:
            change = decode_message(record["body"])
        except (KeyError, ValueError):
            logger.warning("Skipping malformed record %s", record.get("messageId"))
            skipped += 1
            continue

        processed += 1
        if change.get("entity") != "menus":
            continue

        menu = change.get("record") or {}
        if is_low_stock(menu):
            send_low_stock_alert(menu)
            alerts += 1

    logger.info("Processed %d change(s), %d alert(s), %d skipped", processed, alerts, skipped)
    return {
        "statusCode": 200,
        "body": json.dumps({"processed": processed, "alerts": alerts, "skipped": skipped}),
    }


def is_low_stock(menu, threshold=LOW_STOCK_THRESHOLD):
    if menu.get("deleted_at") or menu.get("status") != "open":
        return False
    remaining = menu.get("remaining_quantity")
    return isinstance(remaining, (int, float)) and remaining < threshold


def send_low_stock_alert(menu):
    message = (
        f"Low stock alert: {menu.get('title', menu.get('menu_id'))} "
        f"({menu.get('menu_date')} {menu.get('meal_type')}) has "
        f"{menu.get('remaining_quantity')} of {menu.get('total_quantity')} portion(s) left"
    )
    sns.publish(ensure_topic(ALERTS_TOPIC_NAME), message, subject="Low Stock Alert")
    logger.info(message)
