"""
Core S3 operations for the papertrail vault.

This module provides low-level S3 operations with botocore error
translation and timing. Nothing here retries: callers decide whether an
operation is safe to repeat.
"""

from typing import Dict, List, Optional, Any, Union

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError, BotoCoreError
from loguru import logger

from .config import VaultConfig, get_config
from .exceptions import (
    S3OperationError,
    S3ConnectionError,
    S3PermissionError,
    S3ObjectNotFoundError,
    S3BucketNotFoundError,
)
from .utils import timing_context, format_file_size


# Global S3 client instance for reuse
_s3_client = None


def create_s3_client(config: Optional[VaultConfig] = None):
    """
    Create an S3 client from configuration.

    Args:
        config: Vault configuration (defaults to the global config)

    Returns:
        boto3 S3 client

    Raises:
        S3ConnectionError: If unable to create S3 client
    """
    config = config or get_config()
    try:
        credentials = config.get_aws_credentials()

        # Filter out None values
        client_kwargs = {k: v for k, v in credentials.items() if v is not None}
        client_kwargs["config"] = Config(signature_version="s3v4")
        if config.s3_endpoint_url:
            client_kwargs["endpoint_url"] = config.s3_endpoint_url

        client = boto3.client('s3', **client_kwargs)
        logger.info(f"S3 client initialized for region {config.aws_region}")
        return client

    except Exception as e:
        logger.error(f"Failed to create S3 client: {str(e)}")
        raise S3ConnectionError(
            f"Failed to create S3 client: {str(e)}",
            operation="create_s3_client"
        )


def get_s3_client():
    """
    Get the shared S3 client built from the global configuration.

    Returns:
        boto3 S3 client
    """
    global _s3_client

    if _s3_client is None:
        _s3_client = create_s3_client()

    return _s3_client


def _translate_client_error(error: ClientError, operation: str, bucket: str, key: Optional[str] = None) -> S3OperationError:
    """Map a botocore ClientError onto the vault's S3 exception types."""
    error_code = error.response.get('Error', {}).get('Code', '')
    location = f"s3://{bucket}/{key}" if key else bucket

    if error_code in ('NoSuchKey', '404', 'NotFound'):
        return S3ObjectNotFoundError(
            f"Object not found: {location}", operation=operation, bucket=bucket, key=key
        )
    if error_code == 'NoSuchBucket':
        return S3BucketNotFoundError(
            f"Bucket not found: {bucket}", operation=operation, bucket=bucket
        )
    if error_code in ('AccessDenied', 'Forbidden', '403'):
        return S3PermissionError(
            f"Access denied to {location}", operation=operation, bucket=bucket, key=key
        )
    return S3OperationError(
        f"Failed to {operation}: {str(error)}", operation=operation, bucket=bucket, key=key
    )


def put_object_content(
    bucket: str,
    key: str,
    content: Union[str, bytes],
    content_type: Optional[str] = None,
    metadata: Optional[Dict[str, str]] = None,
    s3_client=None,
) -> Dict[str, Any]:
    """
    Upload object content to S3, replacing anything already at ``key``.

    Args:
        bucket: S3 bucket name
        key: Object key
        content: Content to upload (string or bytes)
        content_type: MIME content type
        metadata: Object metadata as key-value pairs
        s3_client: Client to use (defaults to the shared client)

    Returns:
        Dict: Upload response metadata

    Raises:
        S3OperationError: If operation fails
    """
    try:
        with timing_context(f"put_object_content(bucket={bucket}, key={key})"):
            s3_client = s3_client or get_s3_client()

            if isinstance(content, str):
                content_bytes = content.encode('utf-8')
                if content_type is None:
                    content_type = 'text/plain; charset=utf-8'
            else:
                content_bytes = content

            put_args = {
                'Bucket': bucket,
                'Key': key,
                'Body': content_bytes
            }

            if content_type:
                put_args['ContentType'] = content_type

            if metadata:
                put_args['Metadata'] = metadata

            response = s3_client.put_object(**put_args)

            content_length = len(content_bytes)
            logger.info(f"Uploaded object s3://{bucket}/{key} ({format_file_size(content_length)})")

            return {
                'ETag': response.get('ETag'),
                'VersionId': response.get('VersionId'),
                'Size': content_length
            }

    except ClientError as e:
        raise _translate_client_error(e, "put_object_content", bucket, key)
    except BotoCoreError as e:
        raise S3ConnectionError(
            f"Failed to reach S3: {str(e)}", operation="put_object_content", bucket=bucket, key=key
        )


def get_object_content(bucket: str, key: str, s3_client=None) -> bytes:
    """
    Download object content from S3.

    Args:
        bucket: S3 bucket name
        key: Object key
        s3_client: Client to use (defaults to the shared client)

    Returns:
        bytes: Object content

    Raises:
        S3ObjectNotFoundError: If object doesn't exist
        S3OperationError: If operation fails
    """
    try:
        with timing_context(f"get_object_content(bucket={bucket}, key={key})"):
            s3_client = s3_client or get_s3_client()

            response = s3_client.get_object(Bucket=bucket, Key=key)
            content = response['Body'].read()

            logger.debug(f"Downloaded object s3://{bucket}/{key} ({format_file_size(len(content))})")
            return content

    except ClientError as e:
        raise _translate_client_error(e, "get_object_content", bucket, key)
    except BotoCoreError as e:
        raise S3ConnectionError(
            f"Failed to reach S3: {str(e)}", operation="get_object_content", bucket=bucket, key=key
        )


def object_exists(bucket: str, key: str, s3_client=None) -> bool:
    """
    Check if object exists in S3.

    Returns:
        bool: True if object exists, False otherwise

    Raises:
        S3OperationError: If operation fails (not including object not found)
    """
    try:
        s3_client = s3_client or get_s3_client()
        s3_client.head_object(Bucket=bucket, Key=key)
        return True

    except ClientError as e:
        error = _translate_client_error(e, "object_exists", bucket, key)
        if isinstance(error, S3ObjectNotFoundError):
            logger.debug(f"Object does not exist: s3://{bucket}/{key}")
            return False
        raise error
    except BotoCoreError as e:
        raise S3ConnectionError(
            f"Failed to reach S3: {str(e)}", operation="object_exists", bucket=bucket, key=key
        )


def delete_object(bucket: str, key: str, s3_client=None) -> None:
    """
    Delete object from S3. A key that does not exist counts as deleted.

    Raises:
        S3OperationError: If operation fails
    """
    try:
        with timing_context(f"delete_object(bucket={bucket}, key={key})"):
            s3_client = s3_client or get_s3_client()

            s3_client.delete_object(Bucket=bucket, Key=key)
            logger.info(f"Deleted object s3://{bucket}/{key}")

    except ClientError as e:
        error = _translate_client_error(e, "delete_object", bucket, key)
        if isinstance(error, S3ObjectNotFoundError):
            logger.debug(f"Delete of missing object treated as success: s3://{bucket}/{key}")
            return
        raise error
    except BotoCoreError as e:
        raise S3ConnectionError(
            f"Failed to reach S3: {str(e)}", operation="delete_object", bucket=bucket, key=key
        )


def list_objects_with_prefix(bucket: str, prefix: str = "", max_keys: int = 1000, s3_client=None) -> List[Dict[str, Any]]:
    """
    List objects in S3 bucket with optional prefix.

    Args:
        bucket: S3 bucket name
        prefix: Object key prefix to filter by
        max_keys: Maximum number of objects to return
        s3_client: Client to use (defaults to the shared client)

    Returns:
        List[Dict]: List of object metadata dictionaries

    Raises:
        S3OperationError: If operation fails
    """
    try:
        with timing_context(f"list_objects_with_prefix(bucket={bucket}, prefix={prefix})"):
            s3_client = s3_client or get_s3_client()

            objects = []
            continuation_token = None

            while len(objects) < max_keys:
                page_size = min(max_keys - len(objects), 1000)  # S3 max page size

                kwargs = {
                    'Bucket': bucket,
                    'Prefix': prefix,
                    'MaxKeys': page_size
                }

                if continuation_token:
                    kwargs['ContinuationToken'] = continuation_token

                response = s3_client.list_objects_v2(**kwargs)

                if 'Contents' in response:
                    objects.extend(response['Contents'])

                if not response.get('IsTruncated', False):
                    break

                continuation_token = response.get('NextContinuationToken')
                if not continuation_token:
                    break

            logger.debug(f"Listed {len(objects)} objects from s3://{bucket}/{prefix}")
            return objects[:max_keys]

    except ClientError as e:
        raise _translate_client_error(e, "list_objects_with_prefix", bucket)
    except BotoCoreError as e:
        raise S3ConnectionError(
            f"Failed to reach S3: {str(e)}", operation="list_objects_with_prefix", bucket=bucket
        )


def generate_presigned_get_url(bucket: str, key: str, expires_in: int, s3_client=None) -> str:
    """
    Produce a time-limited bearer URL for reading one object.

    No access control happens here; callers must authorize first.

    Args:
        bucket: S3 bucket name
        key: Object key
        expires_in: URL lifetime in seconds
        s3_client: Client to use (defaults to the shared client)

    Returns:
        str: Presigned URL

    Raises:
        S3OperationError: If signing fails
    """
    try:
        s3_client = s3_client or get_s3_client()
        url = s3_client.generate_presigned_url(
            'get_object',
            Params={'Bucket': bucket, 'Key': key},
            ExpiresIn=expires_in,
        )
        logger.debug(f"Signed read URL for s3://{bucket}/{key} (expires in {expires_in}s)")
        return url

    except ClientError as e:
        raise _translate_client_error(e, "generate_presigned_get_url", bucket, key)
    except BotoCoreError as e:
        raise S3OperationError(
            f"Failed to sign URL: {str(e)}", operation="generate_presigned_get_url", bucket=bucket, key=key
        )


def check_bucket_access(bucket: str, s3_client=None) -> None:
    """
    Confirm the bucket exists and is reachable with current credentials.

    Raises:
        S3BucketNotFoundError, S3PermissionError, S3OperationError
    """
    try:
        s3_client = s3_client or get_s3_client()
        s3_client.head_bucket(Bucket=bucket)
        logger.debug(f"Bucket reachable: {bucket}")
    except ClientError as e:
        error = _translate_client_error(e, "check_bucket_access", bucket)
        if isinstance(error, S3ObjectNotFoundError):
            # head_bucket reports a missing bucket as a bare 404
            raise S3BucketNotFoundError(f"Bucket not found: {bucket}", operation="check_bucket_access", bucket=bucket)
        raise error
    except BotoCoreError as e:
        raise S3ConnectionError(
            f"Failed to reach S3: {str(e)}", operation="check_bucket_access", bucket=bucket
        )
