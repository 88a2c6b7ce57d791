"""
Change notifications.

Services publish one event per committed row change; views and workers
subscribe per entity ("menus", "orders", "bills") and re-read on receipt.
Delivery is best effort: a failed publish never undoes a committed write.
"""
import json
import logging
from collections import defaultdict

from aws_config import ENTITY_TOPICS
from aws_lib.sns_client import SNSClient
from aws_lib.sqs_client import SQSClient
from sns_utils import ensure_topic

from .models import to_timestamp, utc_now

logger = logging.getLogger(__name__)

ENTITIES = tuple(ENTITY_TOPICS)
_ID_FIELDS = {"menus": "menu_id", "orders": "order_id", "bills": "bill_id"}


def build_event(entity, action, record):
    return {
        "entity": entity,
        "action": action,
        "id": record.get(_ID_FIELDS[entity]),
        "record": record,
        "emitted_at": to_timestamp(utc_now()),
    }


def decode_message(body):
    """Event dict from an SQS body, raw or wrapped in an SNS envelope."""
    payload = json.loads(body)
    if payload.get("Type") == "Notification" and "Message" in payload:
        payload = json.loads(payload["Message"])
    return payload


class LocalEventBus:
    """In-process publish/subscribe, one handler list per entity."""

    def __init__(self):
        self._handlers = defaultdict(list)

    def subscribe(self, entity, handler):
        if entity not in ENTITIES:
            raise ValueError(f"Unknown entity: {entity}")
        self._handlers[entity].append(handler)

    def publish(self, entity, action, record):
        event = build_event(entity, action, record)
        self.dispatch(event)
        return event

    def dispatch(self, event):
        for handler in self._handlers.get(event["entity"], []):
            try:
                handler(event)
            except Exception:
                logger.exception("Handler %r failed for %s.%s", handler, event["entity"], event["action"])


class SNSEventBus(LocalEventBus):
    """Local dispatch plus fan-out to the entity's SNS topic."""

    def __init__(self, sns=None):
        super().__init__()
        self.sns = sns or SNSClient()
        self._topic_arns = {}

    def topic_arn(self, entity):
        if entity not in self._topic_arns:
            self._topic_arns[entity] = ensure_topic(ENTITY_TOPICS[entity])
        return self._topic_arns[entity]

    def publish(self, entity, action, record):
        event = super().publish(entity, action, record)
        try:
            self.sns.publish(
                self.topic_arn(entity),
                json.dumps(event, default=str),
                attributes={"entity": entity, "action": action},
            )
        except Exception:
            logger.exception("Change notification for %s %s not delivered", entity, event["id"])
        return event


class SQSChangeListener:
    """
    Drains an SQS queue subscribed to the entity topics and dispatches
    each event to a local bus.
    """

    def __init__(self, queue_url, bus, sqs=None):
        self.queue_url = queue_url
        self.bus = bus
        self.sqs = sqs or SQSClient()

    def poll(self, wait_seconds=5):
        delivered = 0
        for msg in self.sqs.receive_messages(self.queue_url, wait_seconds=wait_seconds):
            try:
                event = decode_message(msg["Body"])
            except (ValueError, KeyError):
                logger.warning("Dropping undecodable change message %s", msg.get("MessageId"))
            else:
                if event.get("entity") in ENTITIES:
                    self.bus.dispatch(event)
                    delivered += 1
            self.sqs.delete_message(self.queue_url, msg["ReceiptHandle"])
        return delivered
