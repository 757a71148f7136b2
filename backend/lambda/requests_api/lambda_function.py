"""requests_api/lambda_function.py

Lambda API handler for Open311 service requests: the issues citizens report.

Routes (via API Gateway proxy):
    GET  /requests          — List requests (?status=, ?serviceCode= filters)
    GET  /request/{id}      — Single request by service_request_id
    POST /request           — Create a request, or replace one when the body
                              carries a requestID
    OPTIONS *               — CORS preflight

The submitting account is the Cognito `sub` claim, falling back to the From
header and then to "guest". A new request is appended to that account's
submittedRequests list; if only that append fails the request is still
created and the 201 body's service_notice says so.

Environment variables:
    REQUESTS_TABLE         default: Requests
    SERVICES_TABLE         default: Services
    USERS_TABLE            default: Users
    DYNAMODB_REGION        default: us-east-1
"""

from __future__ import annotations

from typing import Any, Dict

from open311_shared.config import configure_logging
from open311_shared.errors import Open311Error
from open311_shared.http_utils import Route, _json_body, _response, _submitter_id, dispatch
from open311_shared.models import REQUEST_STATUSES, Request
from open311_shared.repository import Open311Repository
from open311_shared.submission import handle_submission

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
    """GET /requests?status=open&serviceCode=003"""
    qs = event.get("queryStringParameters") or {}
    status = (qs.get("status") or "").strip() or None
    if status and status not in REQUEST_STATUSES:
        raise Open311Error.validation(
            f"invalid status filter '{status}'. Must be one of: {', '.join(REQUEST_STATUSES)}"
        )
    service_code = (qs.get("serviceCode") or qs.get("service_code") or "").strip() or None
    requests = _get_repo().get_requests(status=status, service_code=service_code)
    return _response(200, [r.to_dict() for r in requests])


def _handle_get(event: Dict[str, Any], params: Dict[str, str]) -> Dict:
    """GET /request/{id}"""
    request = _get_repo().get_request(params.get("id", ""))
    return _response(200, request.to_dict())


def _handle_submit(event: Dict[str, Any], params: Dict[str, str]) -> Dict:
    """POST /request"""
    body = _json_body(event)
    request = Request.from_dict(body)
    result = handle_submission(_get_repo(), request, _submitter_id(event), log=logger)
    return _response(201, result.to_dict())


ROUTES = (
    Route("GET", "/requests", _handle_list),
    Route("GET", "/request/{id}", _handle_get),
    Route("POST", "/request", _handle_submit),
)


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict:
    """Main Lambda entry point."""
    return dispatch(event, ROUTES, log=logger)
