import boto3

from aws_config import AWS_REGION, boto3_config
from canteen.errors import NotFoundError


def get_sns_topic_arn(topic_name: str, region: str = AWS_REGION) -> str:
    """
    Fetch SNS Topic ARN dynamically by topic name.
    Raises NotFoundError if topic is not found.
    """
    sns_client = boto3.client("sns", region_name=region, config=boto3_config)

    paginator = sns_client.get_paginator("list_topics")
    for page in paginator.paginate():
        for topic in page.get("Topics", []):
            arn = topic["TopicArn"]
            # exact name match, "orders" must not resolve "orders-archive"
            if arn.rsplit(":", 1)[-1] == topic_name:
                return arn

    raise NotFoundError(f"SNS Topic '{topic_name}' not found in region {region}")


def ensure_topic(topic_name: str, region: str = AWS_REGION) -> str:
    """Return the topic ARN, creating the topic when it does not exist yet."""
    try:
        return get_sns_topic_arn(topic_name, region)
    except NotFoundError:
        sns_client = boto3.client("sns", region_name=region, config=boto3_config)
        return sns_client.create_topic(Name=topic_name)["TopicArn"]
