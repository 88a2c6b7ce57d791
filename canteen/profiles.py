"""Profiles mirror the identity provider's user metadata for admin views."""
import logging

from aws_config import PROFILES_TABLE
from aws_lib.dynamodb_client import DynamoDBClient

from .errors import NotFoundError
from .models import to_timestamp, utc_now

logger = logging.getLogger(__name__)


class ProfileStore:
    def __init__(self, ddb=None, clock=utc_now):
        self.ddb = ddb or DynamoDBClient()
        self.clock = clock

    def get_profile(self, user_id):
        profile = self.ddb.get(PROFILES_TABLE, {"user_id": user_id})
        if not profile:
            raise NotFoundError(f"Profile {user_id} not found")
        return profile

    def sync(self, user_id, name=None, email=None):
        """Store what the identity provider told us, only writing on change."""
        current = self.ddb.get(PROFILES_TABLE, {"user_id": user_id})
        name = name or current.get("name") or ""
        email = email or current.get("email") or ""
        if current and current.get("name") == name and current.get("email") == email:
            return current

        now = to_timestamp(self.clock())
        profile = {
            "user_id": user_id,
            "name": name,
            "email": email,
            "created_at": current.get("created_at", now),
            "updated_at": now,
        }
        self.ddb.put(PROFILES_TABLE, profile)
        logger.info("Profile %s synced", user_id)
        return profile
