"""
S3 utilities for the video bucket on S3-compatible storage (Wasabi, MinIO, AWS).
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional
import logging
import time

import boto3
from botocore.client import Config
from botocore.exceptions import (
    ClientError,
    ConnectionError as BotoConnectionError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from .hls import PLAYLIST_CONTENT_TYPE

logger = logging.getLogger(__name__)

# Errors worth another attempt (and a switch to the fallback endpoint)
TRANSIENT_ERRORS = (BotoConnectionError, EndpointConnectionError, ReadTimeoutError)

NOT_FOUND_CODES = {'404', 'NoSuchKey', 'NotFound'}


class S3ConnectionError(Exception):
    """Raised when the bucket cannot be reached or access is refused"""
    pass


class S3StorageConfig:
    """Configuration for S3 storage"""
    def __init__(
        self,
        endpoint_url: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        bucket_name: Optional[str] = None,
        region: str = 'us-east-1',
        fallback_endpoint_url: Optional[str] = None,
        use_ssl: bool = True,
        force_path_style: bool = True,
        connect_timeout: int = 5,
        read_timeout: int = 30,
        max_retries: int = 2,
        retry_delay: float = 1.0,
        delete_group_size: int = 10,
        group_pause_seconds: float = 0.2,
    ):
        """Initialize S3 storage configuration"""
        self.endpoint_url = endpoint_url or None
        self.access_key = access_key
        self.secret_key = secret_key
        self.bucket_name = bucket_name
        self.region = region or 'us-east-1'
        self.fallback_endpoint_url = fallback_endpoint_url or None
        self.use_ssl = use_ssl
        self.force_path_style = force_path_style
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.max_retries = max(1, int(max_retries))
        self.retry_delay = retry_delay
        self.delete_group_size = max(1, int(delete_group_size))
        self.group_pause_seconds = group_pause_seconds

        if not all([self.access_key, self.secret_key, self.bucket_name]):
            raise ValueError("Missing required S3 configuration (access_key, secret_key, bucket_name)")

    @classmethod
    def from_dict(cls, config_dict: Dict) -> 'S3StorageConfig':
        """Create S3StorageConfig instance from the storage.s3 config section

        Args:
            config_dict: Dictionary containing S3 configuration

        Returns:
            S3StorageConfig instance
        """
        from ..utils.config import as_bool
        return cls(
            endpoint_url=config_dict.get('endpoint_url'),
            access_key=config_dict.get('access_key'),
            secret_key=config_dict.get('secret_key'),
            bucket_name=config_dict.get('bucket_name'),
            region=config_dict.get('region', 'us-east-1'),
            fallback_endpoint_url=config_dict.get('fallback_endpoint_url'),
            use_ssl=as_bool(config_dict.get('use_ssl'), True),
            force_path_style=as_bool(config_dict.get('force_path_style'), True),
            connect_timeout=int(config_dict.get('connect_timeout', 5)),
            read_timeout=int(config_dict.get('read_timeout', 30)),
            max_retries=int(config_dict.get('max_retries', 2)),
            retry_delay=float(config_dict.get('retry_delay', 1.0)),
            delete_group_size=int(config_dict.get('delete_group_size', 10)),
            group_pause_seconds=float(config_dict.get('group_pause_seconds', 0.2)),
        )


@dataclass
class PrefixDeleteResult:
    """Outcome of deleting every object under a prefix."""
    prefix: str
    deleted: int = 0
    errors: int = 0

    def to_dict(self) -> Dict:
        return {'prefix': self.prefix, 'deleted': self.deleted, 'errors': self.errors}


@dataclass
class BatchDeleteResult:
    """Per-key outcome of a paced batch delete."""
    success: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    not_found: List[str] = field(default_factory=list)


@dataclass
class ObjectInfo:
    exists: bool
    size: Optional[int] = None
    last_modified: Optional[datetime] = None


def _error_code(error: ClientError) -> str:
    return str(error.response.get('Error', {}).get('Code', ''))


def _is_not_found(error: ClientError) -> bool:
    if _error_code(error) in NOT_FOUND_CODES:
        return True
    return error.response.get('ResponseMetadata', {}).get('HTTPStatusCode') == 404


class S3Storage:
    """Handles interactions with the S3-compatible video bucket.

    Read paths (file_exists, read_text) raise S3ConnectionError on transport
    or auth failures; write and delete paths report failure through their
    return value so callers can count it and carry on.
    """

    def __init__(self, config: S3StorageConfig, client=None, sleep: Callable[[float], None] = time.sleep):
        """Initialize S3 storage with configuration

        Args:
            config: S3StorageConfig
            client: Pre-built boto3 client (skips the connectivity probe)
            sleep: Sleep function used for retry and pacing delays
        """
        self.config = config
        self.bucket_name = config.bucket_name
        self._sleep = sleep
        self._using_fallback = False
        if client is not None:
            self._client = client
        else:
            self._client = None
            self._initialize_client()

    def _build_client(self, endpoint: Optional[str]):
        config = Config(
            signature_version='s3v4',
            connect_timeout=self.config.connect_timeout,
            read_timeout=self.config.read_timeout,
            retries={'max_attempts': 1},  # Retries are handled here
            s3={'addressing_style': 'path' if self.config.force_path_style else 'auto'},
        )
        return boto3.client(
            's3',
            endpoint_url=endpoint,
            region_name=self.config.region,
            aws_access_key_id=self.config.access_key,
            aws_secret_access_key=self.config.secret_key,
            use_ssl=self.config.use_ssl,
            config=config,
        )

    def _initialize_client(self, use_fallback: bool = False) -> None:
        """Initialize S3 client with primary or fallback endpoint and probe the bucket"""
        endpoint = self.config.fallback_endpoint_url if use_fallback else self.config.endpoint_url
        logger.info(f"Initializing S3 client for bucket {self.bucket_name} at {endpoint or 'default endpoint'}")
        self._client = self._build_client(endpoint)

        try:
            start_time = time.time()
            self._client.head_bucket(Bucket=self.bucket_name)
            elapsed = time.time() - start_time
            self._using_fallback = use_fallback
            logger.info(f"Successfully connected to S3 bucket {self.bucket_name} ({elapsed:.2f}s)")
        except (ClientError,) + TRANSIENT_ERRORS as e:
            if not use_fallback and self.config.fallback_endpoint_url:
                logger.warning(f"Failed to connect to primary S3 endpoint {endpoint} ({e}), switching to fallback")
                self._initialize_client(use_fallback=True)
            else:
                logger.error(f"Failed to connect to S3 bucket {self.bucket_name}: {e}")
                raise S3ConnectionError(f"Could not connect to S3 bucket {self.bucket_name}: {e}") from e

    def _switch_to_fallback(self) -> bool:
        """Try the fallback endpoint after a connection error. Returns True if switched."""
        if self._using_fallback or not self.config.fallback_endpoint_url:
            return False
        logger.info("Switching to fallback endpoint due to connection error")
        try:
            self._initialize_client(use_fallback=True)
            return True
        except S3ConnectionError as e:
            logger.error(f"Fallback endpoint also failed: {e}")
            return False

    def file_exists(self, s3_key: str) -> bool:
        """Check if an object exists.

        Returns False only for a definite "not found". Transport failures are
        retried; when every attempt fails, or access is refused, raises
        S3ConnectionError.
        """
        max_retries = self.config.max_retries
        last_error = None

        for attempt in range(max_retries):
            try:
                logger.debug(f"File exists check for {s3_key} attempt {attempt + 1}/{max_retries}")
                self._client.head_object(Bucket=self.bucket_name, Key=s3_key)
                return True

            except ClientError as e:
                if _is_not_found(e):
                    return False
                last_error = e
                if _error_code(e) in ('403', 'AccessDenied', 'Forbidden', 'InvalidAccessKeyId', 'SignatureDoesNotMatch'):
                    break
                logger.warning(f"File exists check for {s3_key} attempt {attempt + 1} failed: {e}")
            except TRANSIENT_ERRORS as e:
                last_error = e
                logger.warning(f"Connection error checking {s3_key} on attempt {attempt + 1}: {e}")
                if self._switch_to_fallback():
                    continue

            if attempt < max_retries - 1:
                self._sleep(self.config.retry_delay)

        logger.error(f"Error checking if {s3_key} exists after {max_retries} attempts: {last_error}")
        raise S3ConnectionError(f"Could not check {s3_key}: {last_error}") from last_error

    def read_text(self, s3_key: str) -> Optional[str]:
        """Read an object as UTF-8 text. Returns None when the key does not exist."""
        max_retries = self.config.max_retries
        last_error = None

        for attempt in range(max_retries):
            try:
                response = self._client.get_object(Bucket=self.bucket_name, Key=s3_key)
                body = response.get('Body')
                if body is None:
                    return None
                return body.read().decode('utf-8')

            except ClientError as e:
                if _is_not_found(e):
                    logger.debug(f"Object {s3_key} does not exist")
                    return None
                last_error = e
                logger.warning(f"Read attempt {attempt + 1} for {s3_key} failed: {e}")
            except TRANSIENT_ERRORS as e:
                last_error = e
                logger.warning(f"Connection error reading {s3_key} on attempt {attempt + 1}: {e}")
                if self._switch_to_fallback():
                    continue

            if attempt < max_retries - 1:
                self._sleep(self.config.retry_delay)

        logger.error(f"Failed to read {s3_key} after {max_retries} attempts: {last_error}")
        raise S3ConnectionError(f"Could not read {s3_key}: {last_error}") from last_error

    def put_text(self, s3_key: str, content: str, content_type: str = PLAYLIST_CONTENT_TYPE) -> bool:
        """Upload text content, overwriting any existing object. Returns success."""
        max_retries = self.config.max_retries

        for attempt in range(max_retries):
            try:
                self._client.put_object(
                    Bucket=self.bucket_name,
                    Key=s3_key,
                    Body=content.encode('utf-8'),
                    ContentType=content_type,
                )
                logger.info(f"Successfully uploaded content to {s3_key}")
                return True

            except TRANSIENT_ERRORS as e:
                logger.warning(f"Connection error on upload attempt {attempt + 1} for {s3_key}: {e}")
                if self._switch_to_fallback():
                    continue
            except ClientError as e:
                logger.warning(f"Upload attempt {attempt + 1} for {s3_key} failed: {e}")

            if attempt < max_retries - 1:
                self._sleep(self.config.retry_delay)

        logger.error(f"Failed to upload {s3_key} after {max_retries} attempts")
        return False

    def list_files(self, prefix: str = '', max_keys: int = 1000, raise_errors: bool = False) -> List[str]:
        """List one page of keys under a prefix.

        A truncated listing is logged and the first page returned. Listing
        errors return an empty list, or raise S3ConnectionError when
        raise_errors is set.
        """
        try:
            response = self._client.list_objects_v2(
                Bucket=self.bucket_name,
                Prefix=prefix,
                MaxKeys=max_keys
            )
        except (ClientError,) + TRANSIENT_ERRORS as e:
            logger.error(f"Error listing files with prefix {prefix}: {e}")
            if raise_errors:
                raise S3ConnectionError(f"Could not list {prefix}: {e}") from e
            return []

        keys = [obj['Key'] for obj in response.get('Contents', []) if obj.get('Key')]
        if response.get('IsTruncated'):
            logger.warning(f"Listing for {prefix} truncated at {len(keys)} keys")
        logger.debug(f"Found {len(keys)} objects with prefix: {prefix}")
        return keys

    def list_all_files(self, prefix: str = '') -> List[str]:
        """List every key under a prefix, following continuation tokens."""
        keys = []
        paginator = self._client.get_paginator('list_objects_v2')
        try:
            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
                keys.extend(obj['Key'] for obj in page.get('Contents', []) if obj.get('Key'))
        except (ClientError,) + TRANSIENT_ERRORS as e:
            logger.error(f"Error listing all files with prefix {prefix}: {e}")
            raise S3ConnectionError(f"Could not list {prefix}: {e}") from e
        return keys

    def delete_file(self, s3_key: str) -> bool:
        """Delete a single object. Deleting a missing key counts as success."""
        max_retries = self.config.max_retries

        for attempt in range(max_retries):
            try:
                logger.debug(f"Deleting {s3_key}")
                self._client.delete_object(Bucket=self.bucket_name, Key=s3_key)
                return True

            except ClientError as e:
                if _is_not_found(e):
                    logger.debug(f"Object {s3_key} does not exist, nothing to delete")
                    return True
                logger.warning(f"Delete attempt {attempt + 1} for {s3_key} failed: {e}")
            except TRANSIENT_ERRORS as e:
                logger.warning(f"Connection error deleting {s3_key} on attempt {attempt + 1}: {e}")
                if self._switch_to_fallback():
                    continue

            if attempt < max_retries - 1:
                self._sleep(self.config.retry_delay)

        logger.error(f"Failed to delete {s3_key} after {max_retries} attempts")
        return False

    def delete_prefix(self, prefix: str) -> PrefixDeleteResult:
        """Delete every object under a prefix, counting failures instead of raising."""
        result = PrefixDeleteResult(prefix=prefix)
        try:
            keys = self.list_files(prefix, raise_errors=True)
        except S3ConnectionError:
            # What remains under the prefix is unknown; count it as one failure
            result.errors = 1
            return result

        if not keys:
            logger.info(f"No objects found with prefix: {prefix}")
            return result

        logger.info(f"Deleting {len(keys)} objects with prefix: {prefix}")
        group_size = self.config.delete_group_size
        for i in range(0, len(keys), group_size):
            for key in keys[i:i + group_size]:
                if self.delete_file(key):
                    result.deleted += 1
                else:
                    result.errors += 1
            if i + group_size < len(keys) and self.config.group_pause_seconds:
                self._sleep(self.config.group_pause_seconds)

        logger.info(f"Prefix {prefix}: {result.deleted} deleted, {result.errors} errors")
        return result

    def batch_delete(self, keys: List[str], batch_size: int = 10,
                     operation_pause: float = 0.2, batch_pause: float = 2.0) -> BatchDeleteResult:
        """Delete keys one by one with pacing, separating missing keys from failures."""
        result = BatchDeleteResult()
        total_batches = (len(keys) + batch_size - 1) // batch_size if keys else 0
        logger.info(f"Starting batch delete of {len(keys)} objects in batches of {batch_size}")

        for i in range(0, len(keys), batch_size):
            logger.info(f"Processing batch {i // batch_size + 1}/{total_batches}")
            for key in keys[i:i + batch_size]:
                try:
                    if not self.file_exists(key):
                        result.not_found.append(key)
                        continue
                except S3ConnectionError as e:
                    logger.error(f"Error checking {key} before delete: {e}")
                    result.failed.append(key)
                    continue

                if self.delete_file(key):
                    result.success.append(key)
                else:
                    result.failed.append(key)

                if operation_pause:
                    self._sleep(operation_pause)

            if i + batch_size < len(keys) and batch_pause:
                self._sleep(batch_pause)

        logger.info(
            f"Batch delete completed: {len(result.success)} success, "
            f"{len(result.failed)} failed, {len(result.not_found)} not found"
        )
        return result

    def get_object_info(self, s3_key: str) -> ObjectInfo:
        """Get size and modification time for an object."""
        try:
            response = self._client.head_object(Bucket=self.bucket_name, Key=s3_key)
        except ClientError as e:
            if _is_not_found(e):
                return ObjectInfo(exists=False)
            logger.error(f"Error getting object info for {s3_key}: {e}")
            raise S3ConnectionError(f"Could not stat {s3_key}: {e}") from e
        except TRANSIENT_ERRORS as e:
            logger.error(f"Error getting object info for {s3_key}: {e}")
            raise S3ConnectionError(f"Could not stat {s3_key}: {e}") from e
        return ObjectInfo(
            exists=True,
            size=response.get('ContentLength'),
            last_modified=response.get('LastModified'),
        )

    def calculate_storage_usage(self, keys: List[str]) -> Dict[str, float]:
        """Sum the sizes of existing objects among the given keys."""
        total_size = 0
        object_count = 0
        logger.info(f"Calculating storage usage for {len(keys)} objects")

        for key in keys:
            try:
                info = self.get_object_info(key)
            except S3ConnectionError as e:
                logger.warning(f"Could not get size for {key}: {e}")
                continue
            if info.exists and info.size:
                total_size += info.size
                object_count += 1

        return {
            'total_size': total_size,
            'object_count': object_count,
            'average_size': total_size / object_count if object_count else 0,
        }

    def get_service_info(self) -> Dict:
        """Describe the connection and whether the bucket is reachable."""
        accessible = True
        try:
            self._client.list_objects_v2(Bucket=self.bucket_name, MaxKeys=1)
        except (ClientError,) + TRANSIENT_ERRORS as e:
            logger.error(f"S3 bucket {self.bucket_name} not accessible: {e}")
            accessible = False
        return {
            'bucket_name': self.bucket_name,
            'endpoint': self.config.fallback_endpoint_url if self._using_fallback else (self.config.endpoint_url or 'default'),
            'region': self.config.region,
            'accessible': accessible,
        }

