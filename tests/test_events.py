import json

import boto3
import pytest
from moto import mock_aws

from aws_config import ENTITY_TOPICS
from canteen.events import LocalEventBus, SNSEventBus, SQSChangeListener, build_event, decode_message


def test_local_bus_routes_by_entity():
    bus = LocalEventBus()
    seen = []
    bus.subscribe("orders", seen.append)

    event = bus.publish("orders", "created", {"order_id": "o-1", "status": "pending"})
    bus.publish("menus", "updated", {"menu_id": "m-1"})

    assert seen == [event]
    assert event["id"] == "o-1"
    assert event["action"] == "created"


def test_local_bus_rejects_unknown_entity():
    with pytest.raises(ValueError):
        LocalEventBus().subscribe("profiles", print)


def test_failing_handler_does_not_stop_others():
    bus = LocalEventBus()
    seen = []

    def broken(event):
        raise RuntimeError("boom")

    bus.subscribe("bills", broken)
    bus.subscribe("bills", seen.append)
    bus.publish("bills", "created", {"bill_id": "b-1"})

    assert [e["id"] for e in seen] == ["b-1"]


def test_decode_message_unwraps_sns_envelope():
    event = build_event("menus", "updated", {"menu_id": "m-1"})
    envelope = {"Type": "Notification", "Message": json.dumps(event)}

    assert decode_message(json.dumps(event)) == event
    assert decode_message(json.dumps(envelope)) == event


@pytest.fixture
def sns_queue():
    """An SQS queue subscribed (raw delivery off) to every entity topic."""
    with mock_aws():
        sns = boto3.client("sns", region_name="us-east-1")
        sqs = boto3.client("sqs", region_name="us-east-1")
        queue_url = sqs.create_queue(QueueName="portal-changes")["QueueUrl"]
        queue_arn = sqs.get_queue_attributes(
            QueueUrl=queue_url, AttributeNames=["QueueArn"]
        )["Attributes"]["QueueArn"]
        for topic_name in ENTITY_TOPICS.values():
            topic_arn = sns.create_topic(Name=topic_name)["TopicArn"]
            sns.subscribe(TopicArn=topic_arn, Protocol="sqs", Endpoint=queue_arn)
        yield queue_url


def test_sns_bus_fans_out_to_listener(sns_queue):
    publisher = SNSEventBus()
    publisher.publish("orders", "updated", {"order_id": "o-9", "status": "approved", "quantity": 2})

    received = []
    consumer = LocalEventBus()
    consumer.subscribe("orders", received.append)

    assert SQSChangeListener(sns_queue, consumer).poll(wait_seconds=0) == 1
    assert received[0]["id"] == "o-9"
    assert received[0]["record"]["status"] == "approved"
    # messages are deleted once dispatched
    assert SQSChangeListener(sns_queue, consumer).poll(wait_seconds=0) == 0


def test_listener_drops_garbage(sns_queue):
    sqs = boto3.client("sqs", region_name="us-east-1")
    sqs.send_message(QueueUrl=sns_queue, MessageBody="not json")
    sqs.send_message(QueueUrl=sns_queue, MessageBody=json.dumps({"entity": "profiles"}))
    sqs.send_message(QueueUrl=sns_queue, MessageBody=json.dumps(build_event("menus", "created", {"menu_id": "m-2"})))

    received = []
    consumer = LocalEventBus()
    consumer.subscribe("menus", received.append)

    assert SQSChangeListener(sns_queue, consumer).poll(wait_seconds=0) == 1
    assert [e["id"] for e in received] == ["m-2"]


def test_sns_bus_keeps_local_delivery_when_publish_fails(monkeypatch):
    bus = SNSEventBus()
    seen = []
    bus.subscribe("menus", seen.append)

    def unreachable(entity):
        raise ConnectionError("no network")

    monkeypatch.setattr(bus, "topic_arn", unreachable)
    event = bus.publish("menus", "created", {"menu_id": "m-3"})

    assert seen == [event]
