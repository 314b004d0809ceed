from typing import Optional
import re
from shotline.config import get_settings
import logging

logger = logging.getLogger(__name__)
settings = get_settings()

_S3_URI = re.compile(r"^s3://([^/]+)/(.+)$")

class StorageService:
    """Translate stored asset locations into URLs the timeline can fetch"""

    @staticmethod
    def object_url(bucket: str, key: str, region: Optional[str] = None) -> str:
        """Public virtual-hosted style URL for an object"""
        region = region or settings.AWS_REGION
        return f"https://{bucket}.s3.{region}.amazonaws.com/{key}"

    @staticmethod
    def resolve_url(location: Optional[str], region: Optional[str] = None) -> str:
        """
        Convert an s3://bucket/key location to https.
        Fetchable URLs pass through unchanged; empty locations become "".
        """
        if not location:
            logger.warning("Storage location is empty")
            return ""

        if location.startswith("s3://"):
            match = _S3_URI.match(location)
            if match:
                bucket, key = match.groups()
                return StorageService.object_url(bucket, key, region)
            logger.warning(f"Malformed storage location: {location}")

        return location
