"""open311_shared.config — Environment-driven configuration.

Table names and region are read once per container. IMAGE_BUCKET is read on
every call through image_bucket() so a changed function configuration takes
effect without a cold start.

Environment variables:
    DYNAMODB_REGION        default: us-east-1
    SERVICES_TABLE         default: Services
    REQUESTS_TABLE         default: Requests
    USERS_TABLE            default: Users
    CITIES_TABLE           default: Cities
    FEEDBACK_TABLE         default: Feedback
    ONBOARDING_TABLE       default: OnboardingRequests
    IMAGE_BUCKET           no default; required by images_api
    PRESIGN_TTL_SECONDS    default: 600
    CORS_ORIGIN            default: *
"""

from __future__ import annotations

import logging
import os

__all__ = [
    "CITIES_TABLE",
    "CORS_ORIGIN",
    "DYNAMODB_REGION",
    "FEEDBACK_TABLE",
    "GUEST_ACCOUNT_ID",
    "ONBOARDING_TABLE",
    "PRESIGN_TTL_SECONDS",
    "REQUESTS_TABLE",
    "SERVICES_TABLE",
    "USERS_TABLE",
    "configure_logging",
    "image_bucket",
]

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DYNAMODB_REGION: str = os.environ.get("DYNAMODB_REGION", "us-east-1")

SERVICES_TABLE: str = os.environ.get("SERVICES_TABLE", "Services")
REQUESTS_TABLE: str = os.environ.get("REQUESTS_TABLE", "Requests")
USERS_TABLE: str = os.environ.get("USERS_TABLE", "Users")
CITIES_TABLE: str = os.environ.get("CITIES_TABLE", "Cities")
FEEDBACK_TABLE: str = os.environ.get("FEEDBACK_TABLE", "Feedback")
ONBOARDING_TABLE: str = os.environ.get("ONBOARDING_TABLE", "OnboardingRequests")

CORS_ORIGIN: str = os.environ.get("CORS_ORIGIN", "*")


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


PRESIGN_TTL_SECONDS: int = _int_env("PRESIGN_TTL_SECONDS", 600)

# Requests submitted without an authenticated caller are tracked under this account.
GUEST_ACCOUNT_ID = "guest"


def image_bucket() -> str:
    """Name of the S3 bucket holding request images ("" when unset)."""
    return os.environ.get("IMAGE_BUCKET", "").strip()


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def configure_logging(level: int = logging.INFO) -> logging.Logger:
    """Return the root logger set to `level`; Lambda installs its own handler."""
    logger = logging.getLogger()
    logger.setLevel(level)
    return logger
