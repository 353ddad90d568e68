import logging
from typing import Optional
from urllib.parse import quote

from botocore.exceptions import BotoCoreError, ClientError

from cfnflux.aws.connect import ClientFactory
from cfnflux.clients import S3Client

LOG = logging.getLogger(__name__)

BUCKET_OWNER_FULL_CONTROL = "bucket-owner-full-control"


class TemplateUploadError(Exception):
    def __init__(self, bucket: str, key: str, message: str):
        super().__init__(f"upload template to s3://{bucket}/{key}: {message}")
        self.bucket = bucket
        self.key = key


class S3(S3Client):
    """Uploads templates to S3 buckets owned by the account the controller runs as."""

    def __init__(self, clients: ClientFactory = None):
        self.clients = clients or ClientFactory()

    def upload_template(self, bucket: str, region: Optional[str], key: str, data: bytes) -> str:
        try:
            identity = self.clients.sts(region).get_caller_identity()
            self.clients.s3(region).put_object(
                Bucket=bucket,
                Key=key,
                Body=data,
                ACL=BUCKET_OWNER_FULL_CONTROL,
                ExpectedBucketOwner=identity["Account"],
            )
        except (ClientError, BotoCoreError) as e:
            raise TemplateUploadError(bucket, key, str(e)) from e

        url = self.object_url(bucket, region, key)
        LOG.debug("Uploaded template to %s", url)
        return url

    def object_url(self, bucket: str, region: Optional[str], key: str) -> str:
        """
        Returns the URL of an object. Path-style URLs are used when an endpoint override is configured, virtual-hosted
        style URLs otherwise.
        """
        quoted_key = quote(key)
        endpoint_url = self.clients.endpoint_url
        if endpoint_url:
            return f"{endpoint_url.rstrip('/')}/{bucket}/{quoted_key}"
        region = self.clients.get_region(region)
        return f"https://{bucket}.s3.{region}.amazonaws.com/{quoted_key}"
