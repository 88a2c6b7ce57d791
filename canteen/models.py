"""
Record shapes and status vocabulary.

Records travel as plain dicts, exactly as they are stored in DynamoDB.
"""
from datetime import date, datetime, timezone

from .errors import ValidationError

# Menu.status
MENU_OPEN = "open"
MENU_CLOSED = "closed"
MENU_STATUSES = (MENU_OPEN, MENU_CLOSED)

# Order.status
PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"
CANCELLATION_REQUESTED = "cancellation_requested"
WITHDRAWN = "withdrawn"    # owner pulled a pending order
CANCELLED = "cancelled"    # cancellation approved, capacity restored

ORDER_STATUSES = (PENDING, APPROVED, REJECTED, CANCELLATION_REQUESTED, WITHDRAWN, CANCELLED)
# orders that hold menu capacity
HOLDING_STATUSES = (APPROVED, CANCELLATION_REQUESTED)
# tombstones release the (user, menu) claim
TOMBSTONES = (WITHDRAWN, CANCELLED)

ROLE_ADMIN = "admin"
ROLE_STUDENT = "student"


def utc_now():
    return datetime.now(timezone.utc)


def to_timestamp(value):
    """
    Normalise a datetime (or ISO string) to a fixed-width UTC string.
    Fixed width keeps DynamoDB string comparisons chronological.
    """
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(f"Invalid timestamp: {value!r}")
    if not isinstance(value, datetime):
        raise ValidationError(f"Invalid timestamp: {value!r}")
    if value.tzinfo is None:
        raise ValidationError("Timestamps must carry a timezone")
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def to_date(value):
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, date):
        return value.isoformat()
    try:
        return date.fromisoformat(str(value)).isoformat()
    except ValueError:
        raise ValidationError(f"Invalid date: {value!r}")


def order_claim_id(user_id, menu_id):
    return f"order#{user_id}#{menu_id}"


def token_claim_id(token):
    return f"token#{token}"
