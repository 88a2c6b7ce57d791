from .base_client import AWSBaseClient

class SQSClient(AWSBaseClient):
    def __init__(self):
        super().__init__("sqs")

    def send_message(self, queue_url, body):
        return self.client.send_message(
            QueueUrl=queue_url,
            MessageBody=body
        )

    def receive_messages(self, queue_url, max_messages=10, wait_seconds=5):
        resp = self.client.receive_message(
            QueueUrl=queue_url,
            MaxNumberOfMessages=max_messages,
            WaitTimeSeconds=wait_seconds
        )
        return resp.get("Messages", [])

    def delete_message(self, queue_url, receipt_handle):
        return self.client.delete_message(
            QueueUrl=queue_url,
            ReceiptHandle=receipt_handle
        )
