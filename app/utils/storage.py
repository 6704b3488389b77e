import io
import logging
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import settings

logger = logging.getLogger(__name__)

# Default AWS credential chain (environment variables, credentials file, or IAM role)
s3 = boto3.client("s3", region_name=settings.S3_REGION)


def object_url(key: str) -> str:
    return f"https://{settings.S3_BUCKET_NAME}.s3.{settings.S3_REGION}.amazonaws.com/{key}"


def key_from_url(url: Optional[str]) -> Optional[str]:
    prefix = object_url("")
    if url and url.startswith(prefix):
        return url[len(prefix):]
    return None


def upload_bytes(key: str, data: bytes, content_type: str) -> Optional[str]:
    """Upload to the configured bucket; returns the object URL or None on failure."""
    if not settings.S3_BUCKET_NAME:
        logger.warning(f"S3_BUCKET_NAME is not set, skipping upload of {key}")
        return None
    try:
        s3.upload_fileobj(
            io.BytesIO(data),
            settings.S3_BUCKET_NAME,
            key,
            ExtraArgs={"ContentType": content_type},
        )
        return object_url(key)
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Failed to upload {key} to S3: {e}")
        return None


def delete_object(key: Optional[str]) -> bool:
    if not key or not settings.S3_BUCKET_NAME:
        return False
    try:
        s3.delete_object(Bucket=settings.S3_BUCKET_NAME, Key=key)
        return True
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Failed to delete {key} from S3: {e}")
        return False
