"""cities_api/lambda_function.py

Lambda API handler for participating cities. Each city runs its own Open311
deployment; this API tells clients where to find it and records requests
from cities that want to join.

Routes (via API Gateway proxy):
    GET  /cities           — List cities and their API endpoints
    GET  /city/{id}        — Single city by name
    POST /city/onboard     — Record a city's interest in joining
    OPTIONS *              — CORS preflight

Environment variables:
    CITIES_TABLE           default: Cities
    ONBOARDING_TABLE       default: OnboardingRequests
    DYNAMODB_REGION        default: us-east-1
"""

from __future__ import annotations

from typing import Any, Dict

from open311_shared.config import configure_logging
from open311_shared.errors import Open311Error
from open311_shared.http_utils import Route, _json_body, _response, _submitter_id, dispatch
from open311_shared.ids import new_id
from open311_shared.models import OnboardingRequest
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
    """GET /cities"""
    cities = _get_repo().get_cities()
    return _response(200, [c.to_dict() for c in cities])


def _handle_get(event: Dict[str, Any], params: Dict[str, str]) -> Dict:
    """GET /city/{id}"""
    city = _get_repo().get_city(params.get("id", ""))
    return _response(200, city.to_dict())


def _handle_onboard(event: Dict[str, Any], params: Dict[str, str]) -> Dict:
    """POST /city/onboard"""
    body = _json_body(event)
    onboarding = OnboardingRequest.from_dict(body)
    if not onboarding.city and not onboarding.state:
        raise Open311Error.validation("city and state must be specified")

    onboarding.onboarding_id = new_id()
    onboarding.account_id = _submitter_id(event)
    onboarding.submitted_datetime = _now_z()
    _get_repo().add_onboarding_request(onboarding)
    logger.info("New onboarding request %s: city=%r state=%r",
                onboarding.onboarding_id, onboarding.city, onboarding.state)
    return _response(201, {"onboarding_id": onboarding.onboarding_id})


ROUTES = (
    Route("GET", "/cities", _handle_list),
    Route("POST", "/city/onboard", _handle_onboard),
    Route("GET", "/city/{id}", _handle_get),
)


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict:
    """Main Lambda entry point."""
    return dispatch(event, ROUTES, log=logger)
