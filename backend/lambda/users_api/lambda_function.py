"""users_api/lambda_function.py

Lambda API handler for Open311 user accounts and app feedback.

Routes (via API Gateway proxy):
    GET  /users                            — List accounts
    GET  /user/{id}                        — Single account by account ID
    POST /user                             — Create an account (409 if it exists)
    POST /user/{id}/watch/{requestId}      — Add a request to an account's watch list
    POST /feedback                         — Store free-form feedback
    OPTIONS *                              — CORS preflight

Accounts are normally created by the user_confirmation Cognito trigger;
POST /user covers accounts created by city staff.

Environment variables:
    USERS_TABLE            default: Users
    REQUESTS_TABLE         default: Requests
    FEEDBACK_TABLE         default: Feedback
    DYNAMODB_REGION        default: us-east-1
"""

from __future__ import annotations

from typing import Any, Dict

from open311_shared.config import configure_logging
from open311_shared.errors import Open311Error
from open311_shared.http_utils import Route, _json_body, _response, _submitter_id, dispatch
from open311_shared.ids import new_id
from open311_shared.models import Feedback, User
from open311_shared.repository import Open311Repository
from open311_shared.serialization import _now_z

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


# ---------------------------------------------------------------------------
# Route handlers
# ---------------------------------------------------------------------------


def _handle_list(event: Dict[str, Any], params: Dict[str, str]) -> Dict:
    """GET /users"""
    users = _get_repo().get_users()
    return _response(200, [u.to_dict() for u in users])


def _handle_get(event: Dict[str, Any], params: Dict[str, str]) -> Dict:
    """GET /user/{id}"""
    user = _get_repo().get_user(params.get("id", ""))
    return _response(200, user.to_dict())


def _handle_add(event: Dict[str, Any], params: Dict[str, str]) -> Dict:
    """POST /user"""
    body = _json_body(event)
    user = User.from_dict(body)
    # New accounts start with empty request history whatever the body says.
    user.submitted_requests = []
    user.watched_requests = []
    if not user.account_id.strip():
        raise Open311Error.validation("accountID is required")
    _get_repo().add_user(user)
    logger.info("User added: %s", user.account_id)
    return _response(201, user.to_dict())


def _handle_watch(event: Dict[str, Any], params: Dict[str, str]) -> Dict:
    """POST /user/{id}/watch/{requestId}"""
    repo = _get_repo()
    account_id = params.get("id", "")
    request_id = params.get("requestId", "")
    # The request must exist before anyone can watch it.
    repo.get_request(request_id)
    user = repo.add_watched_request(account_id, request_id)
    logger.info("User %s watching request %s", account_id, request_id)
    return _response(200, user.to_dict())


def _handle_feedback(event: Dict[str, Any], params: Dict[str, str]) -> Dict:
    """POST /feedback"""
    body = _json_body(event)
    feedback = Feedback(
        body=body,
        feedback_id=new_id(),
        account_id=_submitter_id(event),
        submitted_datetime=_now_z(),
    )
    _get_repo().add_feedback(feedback)
    logger.info("Feedback submitted: %s", feedback.feedback_id)
    return _response(201, {"feedback_id": feedback.feedback_id})


ROUTES = (
    Route("GET", "/users", _handle_list),
    Route("GET", "/user/{id}", _handle_get),
    Route("POST", "/user", _handle_add),
    Route("POST", "/user/{id}/watch/{requestId}", _handle_watch),
    Route("POST", "/feedback", _handle_feedback),
)


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict:
    """Main Lambda entry point."""
    return dispatch(event, ROUTES, log=logger)
