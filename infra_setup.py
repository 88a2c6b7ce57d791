# infra_setup.py
from botocore.exceptions import ClientError

from aws_config import (
    AWS_REGION, TABLE_KEYS, ENTITY_TOPICS, ALERTS_TOPIC_NAME, S3_BUCKET_NAME,
    dynamodb_resource, s3_client,
)
from sns_utils import ensure_topic


# --- DynamoDB Tables ---
def create_table(table_name, partition_key):
    """Create a DynamoDB table if it doesn't exist."""
    ddb = dynamodb_resource()
    try:
        table = ddb.Table(table_name)
        table.load()
        print(f"Table '{table_name}' already exists.")
    except ClientError as e:
        if e.response["Error"]["Code"] != "ResourceNotFoundException":
            raise
        table = ddb.create_table(
            TableName=table_name,
            AttributeDefinitions=[{"AttributeName": partition_key, "AttributeType": "S"}],
            KeySchema=[{"AttributeName": partition_key, "KeyType": "HASH"}],
            BillingMode="PAY_PER_REQUEST"
        )
        table.wait_until_exists()
        print(f"Created table '{table_name}' successfully.")
    return table


def create_tables():
    return [create_table(name, key) for name, key in TABLE_KEYS.items()]


# --- SNS Topics ---
def create_topics():
    arns = {}
    for entity, topic_name in ENTITY_TOPICS.items():
        arns[entity] = ensure_topic(topic_name)
        print(f"SNS topic '{topic_name}': {arns[entity]}")
    arns["alerts"] = ensure_topic(ALERTS_TOPIC_NAME)
    print(f"SNS topic '{ALERTS_TOPIC_NAME}': {arns['alerts']}")
    return arns


# --- S3 Bucket ---
def create_bucket(bucket_name, region=AWS_REGION):
    s3 = s3_client()
    existing_buckets = [b['Name'] for b in s3.list_buckets().get('Buckets', [])]
    if bucket_name in existing_buckets:
        print(f"S3 bucket '{bucket_name}' already exists.")
        return bucket_name

    if region == "us-east-1":
        s3.create_bucket(Bucket=bucket_name)
    else:
        s3.create_bucket(
            Bucket=bucket_name,
            CreateBucketConfiguration={'LocationConstraint': region}
        )
    print(f"Created S3 bucket '{bucket_name}' in region '{region}'.")
    return bucket_name


# --- Main setup ---
if __name__ == "__main__":
    create_tables()
    TOPIC_ARNS = create_topics()
    BUCKET_NAME = create_bucket(S3_BUCKET_NAME)

    print("\nInfrastructure setup completed successfully.")
    for entity, arn in TOPIC_ARNS.items():
        print(f"{entity} topic ARN: {arn}")
    print(f"S3 Bucket Name: {BUCKET_NAME}")
