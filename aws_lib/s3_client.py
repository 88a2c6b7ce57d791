from aws_config import public_object_url
from .base_client import AWSBaseClient

class S3Client(AWSBaseClient):
    def __init__(self):
        super().__init__("s3")

    def upload_image(self, bucket, key, body, content_type=None):
        """Store an image and return its public URL."""
        kwargs = {"Bucket": bucket, "Key": key, "Body": body}
        if content_type:
            kwargs["ContentType"] = content_type
        self.client.put_object(**kwargs)
        return public_object_url(bucket, key)
