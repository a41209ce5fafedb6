# Safekeep - S3 Object Store Backend
#
# Stores the encrypted safe as one object (s3://bucket/key). A single
# put_object replaces the whole payload, so readers never see a partial
# write.
#
# Lock: a sibling "<key>.lock" object created with a conditional put
# (If-None-Match: *). S3 answers 412 PreconditionFailed (or 409 while a
# competing conditional write is in flight) when the lock already exists.
# A process killed while holding the lock leaves the object behind; it
# records host/pid/time so it can be inspected and deleted by hand.

import json
import logging
import os
import socket
from datetime import datetime, timezone
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..config import StorageConfig
from ..errors import AlreadyRunning, NotInitialized, SafeIOError
from .base import BackendClient

logger = logging.getLogger(__name__)

_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}
_LOCK_HELD_CODES = {"PreconditionFailed", "412", "ConditionalRequestConflict", "409"}


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


class S3Backend(BackendClient):
    """Safe stored in an S3 (or S3-compatible) bucket."""

    kind = "s3"

    def __init__(self, config: StorageConfig, client: Optional[Any] = None):
        super().__init__(config)
        self.bucket = config.bucket
        self.key = config.key
        self.lock_key = f"{config.key}.lock"
        if client is None:
            session = boto3.session.Session(
                profile_name=config.profile,
                region_name=config.region,
            )
            client = session.client("s3", endpoint_url=config.endpoint_url)
        self.client = client

    def safe_location(self) -> str:
        return f"s3://{self.bucket}/{self.key}"

    def load(self) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=self.key)
            data = response["Body"].read()
        except ClientError as exc:
            if _error_code(exc) in _MISSING_CODES:
                raise NotInitialized() from None
            raise SafeIOError(f"Unable to read {self.safe_location()}: {exc}") from exc
        except BotoCoreError as exc:
            raise SafeIOError(f"Unable to read {self.safe_location()}: {exc}") from exc
        if not data:
            raise NotInitialized()
        return data

    def _write(self, data: bytes) -> None:
        try:
            self.client.put_object(Bucket=self.bucket, Key=self.key, Body=data)
        except (ClientError, BotoCoreError) as exc:
            raise SafeIOError(f"Unable to write {self.safe_location()}: {exc}") from exc

    def _acquire_lock(self) -> None:
        owner = {
            "hostname": socket.gethostname(),
            "pid": os.getpid(),
            "acquired_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=self.lock_key,
                Body=json.dumps(owner).encode("utf-8"),
                IfNoneMatch="*",
            )
        except ClientError as exc:
            if _error_code(exc) in _LOCK_HELD_CODES:
                raise AlreadyRunning() from None
            raise SafeIOError(f"Unable to lock {self.safe_location()}: {exc}") from exc
        except BotoCoreError as exc:
            raise SafeIOError(f"Unable to lock {self.safe_location()}: {exc}") from exc
        logger.debug("Acquired lock s3://%s/%s", self.bucket, self.lock_key)

    def _release_lock(self) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=self.lock_key)
        except (ClientError, BotoCoreError) as exc:
            raise SafeIOError(f"Unable to release lock on {self.safe_location()}: {exc}") from exc
        logger.debug("Released lock s3://%s/%s", self.bucket, self.lock_key)
