"""user_confirmation/lambda_function.py

Cognito User Pool PostConfirmation trigger. Creates the Open311 account for a
newly confirmed user, keyed by the user's Cognito `sub` attribute.

Cognito may deliver the same confirmation more than once, so an account that
already exists counts as success. Any other failure is raised, which makes
Cognito report the confirmation as failed.

Environment variables:
    USERS_TABLE            default: Users
    DYNAMODB_REGION        default: us-east-1
"""

from __future__ import annotations

from typing import Any, Dict

from open311_shared.config import configure_logging
from open311_shared.errors import ErrorKind, Open311Error
from open311_shared.models import User
from open311_shared.repository import Open311Repository

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = configure_logging()

_repo = None


def _get_repo() -> Open311Repository:
    global _repo
    if _repo is None:
        _repo = Open311Repository(log=logger)
    return _repo


def _account_id(event: Dict[str, Any]) -> str:
    attributes = (event.get("request") or {}).get("userAttributes") or {}
    return str(attributes.get("sub") or "").strip()


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """Main Lambda entry point. Returns the event unchanged, as Cognito requires."""
    trigger = event.get("triggerSource", "")
    account_id = _account_id(event)
    logger.info("user_confirmation: %s for %s (pool=%s)", trigger, account_id or "<no sub>", event.get("userPoolId"))

    if trigger and not trigger.startswith("PostConfirmation_"):
        logger.warning("Ignoring unexpected trigger source %s", trigger)
        return event
    if not account_id:
        raise Open311Error.validation("confirmation event has no 'sub' user attribute")

    try:
        _get_repo().add_user(User(account_id=account_id))
        logger.info("User confirmed and added: %s", account_id)
    except Open311Error as exc:
        if exc.kind is not ErrorKind.CONFLICT:
            logger.error("Failed to add confirmed user %s: %s", account_id, exc.message)
            raise
        logger.info("User %s already exists; nothing to do", account_id)
    return event
