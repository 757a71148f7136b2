"""images_api/lambda_function.py

Lambda API handler issuing short-lived presigned S3 URLs so clients can
upload and download request photos without AWS credentials.

Routes (via API Gateway proxy):
    GET /images/fetch/{key}    — URL for GET of the object (download)
    GET /images/store/{key}    — URL for PUT of the object (upload)
    OPTIONS *                  — CORS preflight

Both return {"url": "..."} valid for PRESIGN_TTL_SECONDS.

Environment variables:
    IMAGE_BUCKET           required; read on every invocation
    PRESIGN_TTL_SECONDS    default: 600
    DYNAMODB_REGION        default: us-east-1 (also the S3 client region)
"""

from __future__ import annotations

from typing import Any, Dict

from botocore.exceptions import BotoCoreError, ClientError

from open311_shared import config
from open311_shared.aws_clients import _get_s3
from open311_shared.config import configure_logging
from open311_shared.errors import Open311Error
from open311_shared.http_utils import Route, _response, dispatch

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = configure_logging()

_CLIENT_METHODS = {
    "fetch": "get_object",
    "store": "put_object",
}


# ---------------------------------------------------------------------------
# S3 helpers
# ---------------------------------------------------------------------------


def _presigned_url(action: str, key: str) -> str:
    bucket = config.image_bucket()
    if not bucket:
        raise Open311Error.backend("IMAGE_BUCKET is not configured")
    key = key.strip().lstrip("/")
    if not key or ".." in key.split("/"):
        raise Open311Error.validation(f"invalid image key '{key}'")

    try:
        return _get_s3().generate_presigned_url(
            ClientMethod=_CLIENT_METHODS[action],
            Params={"Bucket": bucket, "Key": key},
            ExpiresIn=config.PRESIGN_TTL_SECONDS,
        )
    except (BotoCoreError, ClientError) as exc:
        logger.error("presign %s s3://%s/%s failed: %s", action, bucket, key, exc)
        raise Open311Error.backend(f"error retrieving presigned S3 URL for {action}") from exc


# ---------------------------------------------------------------------------
# Route handlers
# ---------------------------------------------------------------------------


def _handle_fetch(event: Dict[str, Any], params: Dict[str, str]) -> Dict:
    """GET /images/fetch/{key}"""
    url = _presigned_url("fetch", params.get("key", ""))
    logger.info("Presigned fetch URL issued for %s", params.get("key"))
    return _response(200, {"url": url})


def _handle_store(event: Dict[str, Any], params: Dict[str, str]) -> Dict:
    """GET /images/store/{key}"""
    url = _presigned_url("store", params.get("key", ""))
    logger.info("Presigned store URL issued for %s", params.get("key"))
    return _response(200, {"url": url})


ROUTES = (
    Route("GET", "/images/fetch/{key}", _handle_fetch),
    Route("GET", "/images/store/{key}", _handle_store),
)


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict:
    """Main Lambda entry point."""
    return dispatch(event, ROUTES, log=logger)
