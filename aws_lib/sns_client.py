from .base_client import AWSBaseClient

class SNSClient(AWSBaseClient):
    def __init__(self):
        super().__init__("sns")

    def publish(self, topic_arn, message, subject=None, attributes=None):
        kwargs = {"TopicArn": topic_arn, "Message": message}
        if subject:
            kwargs["Subject"] = subject
        if attributes:
            # string attributes only, used for subscription filter policies
            kwargs["MessageAttributes"] = {
                name: {"DataType": "String", "StringValue": str(value)}
                for name, value in attributes.items()
            }
        return self.client.publish(**kwargs)
