import os

# fake credentials before any boto3 client exists
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
os.environ["AWS_SECURITY_TOKEN"] = "testing"
os.environ["AWS_SESSION_TOKEN"] = "testing"
os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
os.environ["AWS_REGION"] = "us-east-1"
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "portal.settings")

from datetime import datetime, timedelta, timezone

import django
import pytest
from moto import mock_aws

django.setup()

import infra_setup
from canteen.events import ENTITIES, LocalEventBus
from canteen.services import Portal

NOW = datetime(2026, 10, 17, 8, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class RecordingBus(LocalEventBus):
    """Local bus that remembers every published event."""

    def __init__(self):
        super().__init__()
        self.events = []
        for entity in ENTITIES:
            self.subscribe(entity, self.events.append)

    def actions(self, entity):
        return [e["action"] for e in self.events if e["entity"] == entity]


@pytest.fixture
def aws():
    with mock_aws():
        infra_setup.create_tables()
        yield


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def bus():
    return RecordingBus()


@pytest.fixture
def portal(aws, clock, bus):
    return Portal(bus=bus, clock=clock)


@pytest.fixture
def make_menu(portal, clock):
    def factory(**overrides):
        data = {
            "title": "Veg Thali",
            "menu_date": (clock.now + timedelta(days=1)).date(),
            "meal_type": "lunch",
            "order_deadline": clock.now + timedelta(hours=2),
            "total_quantity": 10,
            "price": 50,
        }
        data.update(overrides)
        return portal.menus.create_menu(data, created_by="admin-1")
    return factory
