"""
Upload of sealed segments to S3.

Credentials are resolved once per run into a single boto3 client, which is
thread-safe and shared by all upload workers. Each segment is read into memory
and sent with a single put_object call.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .errors import ConfigError, CredentialError, UploadError
from .models import ArchiveSegment


logger = logging.getLogger(__name__)

DEFAULT_REGION = 'us-east-1'


@dataclass(frozen=True)
class Credentials:
    """Parsed S3 credentials."""
    access_key: str
    secret_key: str
    region: str = DEFAULT_REGION
    endpoint_url: Optional[str] = None

    def __repr__(self):
        return f"Credentials(access_key={self.access_key[:4]}..., region={self.region})"


def check_credentials_handle(handle: Union[str, os.PathLike, Mapping[str, Any]]):
    """
    Check that a credentials handle points at something loadable.

    Raises:
        ConfigError: If the handle is empty or the credentials file is missing
    """
    if handle is None or handle == '':
        raise ConfigError("Credentials are not configured")
    if isinstance(handle, Mapping):
        return
    if not Path(handle).is_file():
        raise ConfigError(f"Credentials file does not exist: {handle}")


def load_credentials(handle: Union[str, os.PathLike, Mapping[str, Any]]) -> Credentials:
    """
    Load S3 credentials from a JSON file or an already-parsed mapping.

    The JSON object must contain ``access_key`` and ``secret_key`` and may
    contain ``region`` and ``endpoint_url``.

    Args:
        handle: Path to a credentials JSON file, or a mapping

    Returns:
        Credentials instance

    Raises:
        CredentialError: If the file cannot be read or parsed, or keys are missing
    """
    if isinstance(handle, Mapping):
        data = handle
    else:
        try:
            with open(handle, 'r') as f:
                data = json.load(f)
        except OSError as e:
            raise CredentialError(f"Failed to read credentials file {handle}: {e}") from e
        except json.JSONDecodeError as e:
            raise CredentialError(f"Failed to parse credentials file {handle}: {e}") from e

    if not isinstance(data, Mapping):
        raise CredentialError("Credentials must be a JSON object")

    missing = [key for key in ('access_key', 'secret_key') if not data.get(key)]
    if missing:
        raise CredentialError(f"Credentials missing required keys: {', '.join(missing)}")

    return Credentials(
        access_key=data['access_key'],
        secret_key=data['secret_key'],
        region=data.get('region') or DEFAULT_REGION,
        endpoint_url=data.get('endpoint_url') or None
    )


def create_s3_client(credentials: Credentials, timeout: int = 300, endpoint_url: Optional[str] = None):
    """
    Create the boto3 S3 client used for a run.

    Socket timeouts are bounded by ``timeout`` and botocore makes a single
    attempt per request; retrying is left to the orchestrator.
    """
    boto_config = BotoConfig(
        connect_timeout=timeout,
        read_timeout=timeout,
        retries={'total_max_attempts': 1}
    )

    try:
        return boto3.client(
            's3',
            aws_access_key_id=credentials.access_key,
            aws_secret_access_key=credentials.secret_key,
            region_name=credentials.region,
            endpoint_url=endpoint_url or credentials.endpoint_url,
            config=boto_config
        )
    except (BotoCoreError, ValueError) as e:
        raise CredentialError(f"Failed to initialize S3 client: {e}") from e


class ObjectUploader:
    """
    Uploads sealed segments to one bucket.

    Safe to call from several threads at once; the client is only read.
    """

    def __init__(self, s3_client, bucket_name: str):
        self.s3_client = s3_client
        self.bucket_name = bucket_name

    @classmethod
    def from_credentials(cls, handle, bucket_name: str, timeout: int = 300,
                         endpoint_url: Optional[str] = None) -> 'ObjectUploader':
        credentials = load_credentials(handle)
        return cls(create_s3_client(credentials, timeout, endpoint_url), bucket_name)

    def location(self, key: str) -> str:
        return f"s3://{self.bucket_name}/{key}"

    def upload(self, segment: ArchiveSegment, key: str) -> str:
        """
        Upload a sealed segment under the given key.

        Args:
            segment: Sealed segment to transfer
            key: Object key

        Returns:
            Remote location (s3://bucket/key)

        Raises:
            UploadError: If the segment cannot be read or the transfer fails
        """
        if not segment.sealed:
            raise UploadError(f"Segment {segment.index} is not sealed", segment.index, key)

        try:
            body = Path(segment.local_path).read_bytes()
        except OSError as e:
            raise UploadError(f"Failed to read segment {segment.local_path}: {e}", segment.index, key) from e

        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=body,
                ContentType='application/zip'
            )
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            raise UploadError(f"S3 upload failed ({error_code}): {e}", segment.index, key) from e
        except BotoCoreError as e:
            raise UploadError(f"S3 upload failed: {e}", segment.index, key) from e

        location = self.location(key)
        logger.info(f"Uploaded segment {segment.index} ({len(body)} bytes) to {location}")
        return location
