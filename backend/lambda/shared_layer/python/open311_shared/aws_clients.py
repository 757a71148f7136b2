"""open311_shared.aws_clients — Lazy-singleton AWS service clients.

Clients are created on first use and reused for the lifetime of the Lambda
container. Retries are disabled: every backend failure is terminal for the
invocation that hit it.
"""

from __future__ import annotations

from typing import Optional

import boto3
from botocore.config import Config

from open311_shared.config import DYNAMODB_REGION

__all__ = ["_get_ddb", "_get_s3"]

_NO_RETRIES = Config(retries={"max_attempts": 1, "mode": "standard"})

# ---------------------------------------------------------------------------
# Client singletons
# ---------------------------------------------------------------------------

_ddb = None
_s3 = None


def _get_ddb(region: Optional[str] = None):
    """Get (or create) the DynamoDB client singleton."""
    global _ddb
    if _ddb is None:
        _ddb = boto3.client(
            "dynamodb",
            region_name=region or DYNAMODB_REGION,
            config=_NO_RETRIES,
        )
    return _ddb


def _get_s3(region: Optional[str] = None):
    """Get (or create) the S3 client singleton.

    SigV4 is forced so presigned URLs work for buckets in every region.
    """
    global _s3
    if _s3 is None:
        _s3 = boto3.client(
            "s3",
            region_name=region or DYNAMODB_REGION,
            config=_NO_RETRIES.merge(Config(signature_version="s3v4")),
        )
    return _s3
