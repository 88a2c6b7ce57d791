# aws_config.py
import os

import boto3
from botocore.config import Config

# -----------------------------
# AWS region & boto3 config
# -----------------------------
AWS_REGION = os.getenv("AWS_REGION", "us-east-1")

# Bounded transport behaviour: every call times out, throttling and 5xx are retried
CONNECT_TIMEOUT = float(os.getenv("AWS_CONNECT_TIMEOUT", "3"))
READ_TIMEOUT = float(os.getenv("AWS_READ_TIMEOUT", "10"))
MAX_ATTEMPTS = int(os.getenv("AWS_MAX_ATTEMPTS", "3"))

boto3_config = Config(
    region_name=AWS_REGION,
    connect_timeout=CONNECT_TIMEOUT,
    read_timeout=READ_TIMEOUT,
    retries={"max_attempts": MAX_ATTEMPTS, "mode": "standard"}
)

# Application level retries of transient failures (transactions)
TRANSIENT_RETRIES = int(os.getenv("PORTAL_TRANSIENT_RETRIES", "3"))
RETRY_BASE_DELAY = float(os.getenv("PORTAL_RETRY_BASE_DELAY", "0.2"))

# -----------------------------
# DynamoDB tables
# -----------------------------
MENUS_TABLE = os.getenv("DDB_MENUS_TABLE", "Menus")
ORDERS_TABLE = os.getenv("DDB_ORDERS_TABLE", "Orders")
BILLS_TABLE = os.getenv("DDB_BILLS_TABLE", "Bills")
PROFILES_TABLE = os.getenv("DDB_PROFILES_TABLE", "Profiles")
CLAIMS_TABLE = os.getenv("DDB_CLAIMS_TABLE", "Claims")

# table name -> partition key
TABLE_KEYS = {
    MENUS_TABLE: "menu_id",
    ORDERS_TABLE: "order_id",
    BILLS_TABLE: "bill_id",
    PROFILES_TABLE: "user_id",
    CLAIMS_TABLE: "claim_id",
}

# -----------------------------
# SNS change notification topics (one per entity) & alerts
# -----------------------------
TOPIC_PREFIX = os.getenv("SNS_TOPIC_PREFIX", "canteen")
ENTITY_TOPICS = {
    "menus": f"{TOPIC_PREFIX}-menus-changes",
    "orders": f"{TOPIC_PREFIX}-orders-changes",
    "bills": f"{TOPIC_PREFIX}-bills-changes",
}
ALERTS_TOPIC_NAME = os.getenv("SNS_ALERTS_TOPIC_NAME", f"{TOPIC_PREFIX}-stock-alerts")
LOW_STOCK_THRESHOLD = int(os.getenv("LOW_STOCK_THRESHOLD", "5"))

# -----------------------------
# S3 menu images
# -----------------------------
S3_BUCKET_NAME = os.getenv("S3_MENU_IMAGE_BUCKET", "canteen-menu-images")

# -----------------------------
# Business settings
# -----------------------------
MEAL_TYPES = ("breakfast", "lunch", "dinner") + tuple(
    m.strip().lower() for m in os.getenv("EXTRA_MEAL_TYPES", "").split(",") if m.strip()
)
TOKEN_LENGTH = 8
TOKEN_ATTEMPTS = int(os.getenv("PORTAL_TOKEN_ATTEMPTS", "5"))


# -----------------------------
# AWS clients/resources
# -----------------------------
def dynamodb_resource():
    return boto3.resource("dynamodb", region_name=AWS_REGION, config=boto3_config)

def sqs_client():
    return boto3.client("sqs", region_name=AWS_REGION, config=boto3_config)

def sns_client():
    return boto3.client("sns", region_name=AWS_REGION, config=boto3_config)

def s3_client():
    return boto3.client("s3", region_name=AWS_REGION, config=boto3_config)


def public_object_url(bucket, key):
    """Public URL of an object in the image bucket."""
    if AWS_REGION == "us-east-1":
        return f"https://{bucket}.s3.amazonaws.com/{key}"
    return f"https://{bucket}.s3.{AWS_REGION}.amazonaws.com/{key}"
