import logging
import time

import boto3
from botocore.exceptions import (
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from aws_config import AWS_REGION, boto3_config, TRANSIENT_RETRIES, RETRY_BASE_DELAY
from canteen.errors import TransientError

logger = logging.getLogger(__name__)

# Error codes worth retrying: throttling, server side failures, transaction races
TRANSIENT_CODES = {
    "ProvisionedThroughputExceededException",
    "ThrottlingException",
    "Throttling",
    "RequestLimitExceeded",
    "InternalServerError",
    "InternalFailure",
    "ServiceUnavailable",
    "TransactionConflictException",
    "TransactionInProgressException",
}

CONNECTION_ERRORS = (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError)


class AWSBaseClient:
    """
    Base AWS client that creates a NEW boto3 session every time
    to avoid expired temporary credentials.
    """

    def __init__(self, service_name, region_name=AWS_REGION):
        self.service_name = service_name
        self.region_name = region_name

    @property
    def client(self):
        # ALWAYS returns a fresh client with fresh credentials
        session = boto3.Session()
        return session.client(self.service_name, region_name=self.region_name, config=boto3_config)

    @property
    def resource(self):
        # ALWAYS returns a fresh resource with fresh credentials
        session = boto3.Session()
        return session.resource(self.service_name, region_name=self.region_name, config=boto3_config)


def is_transient(exc):
    """True when a botocore failure is a connectivity or capacity hiccup."""
    if isinstance(exc, CONNECTION_ERRORS):
        return True
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code") in TRANSIENT_CODES
    return False


def with_backoff(fn, attempts=TRANSIENT_RETRIES, base_delay=RETRY_BASE_DELAY, sleep=time.sleep):
    """
    Call fn(), retrying only TransientError with exponential backoff.
    Business-rule failures propagate on the first attempt.
    """
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except TransientError as e:
            if attempt == attempts:
                raise
            delay = base_delay * (2 ** (attempt - 1))
            logger.warning("Transient failure (%s), retry %d/%d in %.2fs", e, attempt, attempts - 1, delay)
            sleep(delay)
