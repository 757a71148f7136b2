"""services_api/lambda_function.py

Lambda API handler for the Open311 service catalog. Services are reference
data maintained directly in DynamoDB; this API only reads them.

Routes (via API Gateway proxy):
    GET /services                      — List every service
    GET /service/{id}                  — Single service by service code
    GET /service/{id}/definition       — Extra attributes a service accepts
    OPTIONS *                          — CORS preflight

Environment variables:
    SERVICES_TABLE         default: Services
    DYNAMODB_REGION        default: us-east-1
"""

from __future__ import annotations

from typing import Any, Dict

from open311_shared.config import configure_logging
from open311_shared.http_utils import Route, _response, dispatch
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


# ---------------------------------------------------------------------------
# Route handlers
# ---------------------------------------------------------------------------


def _handle_list(event: Dict[str, Any], params: Dict[str, str]) -> Dict:
    """GET /services"""
    services = _get_repo().get_services()
    return _response(200, [s.to_dict() for s in services])


def _handle_get(event: Dict[str, Any], params: Dict[str, str]) -> Dict:
    """GET /service/{id}"""
    service = _get_repo().get_service(params.get("id", ""))
    return _response(200, service.to_dict())


def _handle_definition(event: Dict[str, Any], params: Dict[str, str]) -> Dict:
    """GET /service/{id}/definition"""
    definition = _get_repo().get_service_definition(params.get("id", ""))
    return _response(200, definition.to_dict())


ROUTES = (
    Route("GET", "/services", _handle_list),
    Route("GET", "/service/{id}", _handle_get),
    Route("GET", "/service/{id}/definition", _handle_definition),
)


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict:
    """Main Lambda entry point."""
    return dispatch(event, ROUTES, log=logger)
