"""Wiring of the portal services over one data store and event bus."""
from functools import lru_cache

from aws_lib.dynamodb_client import DynamoDBClient

from .billing import BillingAggregator
from .events import LocalEventBus, SNSEventBus
from .fulfillment import TokenVerifier
from .menus import MenuStore
from .models import utc_now
from .orders import OrderLedger
from .profiles import ProfileStore
from .reservations import ReservationEngine
from .statistics import StatisticsAggregator


class Portal:
    def __init__(self, ddb=None, bus=None, clock=utc_now, s3=None):
        self.ddb = ddb or DynamoDBClient()
        self.bus = bus or LocalEventBus()
        self.menus = MenuStore(ddb=self.ddb, bus=self.bus, s3=s3, clock=clock)
        self.ledger = OrderLedger(ddb=self.ddb, bus=self.bus, clock=clock)
        self.engine = ReservationEngine(ddb=self.ddb, bus=self.bus, clock=clock,
                                        menus=self.menus, ledger=self.ledger)
        self.tokens = TokenVerifier(ddb=self.ddb, bus=self.bus, clock=clock)
        self.billing = BillingAggregator(ddb=self.ddb)
        self.statistics = StatisticsAggregator(ddb=self.ddb)
        self.profiles = ProfileStore(ddb=self.ddb, clock=clock)


@lru_cache(maxsize=1)
def get_portal():
    from django.conf import settings

    bus = SNSEventBus() if getattr(settings, "PORTAL_PUBLISH_CHANGES", False) else LocalEventBus()
    return Portal(bus=bus)
