"""open311_shared.submission — Create and update service requests.

`handle_submission` is what POST /request calls: a body without a requestID
creates a new request, a body with one replaces that request in full.

Creating a request touches two tables. The Requests write is authoritative;
the follow-up append to the submitter's submittedRequests list is best
effort. When the append fails the request stays persisted, the failure is
logged and the caller is told through `service_notice`.
"""

from __future__ import annotations

import logging
from typing import Optional

from open311_shared.errors import Open311Error
from open311_shared.ids import id_timestamp, new_id
from open311_shared.models import REQUEST_STATUSES, STATUS_OPEN, Request, RequestResponse
from open311_shared.repository import Open311Repository
from open311_shared.serialization import _now_z

__all__ = [
    "USER_INDEX_NOTICE",
    "handle_submission",
    "submit_request",
    "update_request",
    "validate_request",
]

logger = logging.getLogger(__name__)

USER_INDEX_NOTICE = "Request received, but it could not be added to your submitted requests."


def validate_request(repo: Open311Repository, request: Request) -> None:
    """Raise VALIDATION unless the request names a known service and a location."""
    if not repo.is_valid_service_code(request.service_code):
        raise Open311Error.validation(f"invalid Service Code: {request.service_code}")
    if not request.has_location():
        raise Open311Error.validation("no location included in request")


def _stamp_entries(request: Request, now: str) -> None:
    for description in request.descriptions:
        if not description.datetime:
            description.datetime = now
    for media in request.media:
        if not media.datetime:
            media.datetime = now


def _copy_service_details(repo: Open311Repository, request: Request, log: logging.Logger) -> None:
    try:
        service = repo.get_service(request.service_code)
    except Open311Error as exc:
        log.warning(
            "service lookup for request %s (service_code=%s) failed, leaving name and agency blank: %s",
            request.request_id, request.service_code, exc.message,
        )
        return
    request.service_name = service.service_name
    request.agency_responsible = service.group


def submit_request(
    repo: Open311Repository,
    request: Request,
    submitter_id: str,
    *,
    log: Optional[logging.Logger] = None,
) -> RequestResponse:
    """Validate, stamp and persist a new request, then index it under the submitter."""
    log = log or logger
    validate_request(repo, request)

    request.request_id = new_id()
    now = _now_z()
    request.requested_datetime = now
    request.updated_datetime = ""
    request.status = STATUS_OPEN
    _stamp_entries(request, now)
    _copy_service_details(repo, request, log)

    repo.create_request(request)
    log.info("New request submitted: %s (minted=%s, service_code=%s, account=%s)",
             request.request_id, id_timestamp(request.request_id).isoformat(), request.service_code, submitter_id)

    response = RequestResponse(
        service_request_id=request.request_id,
        service_notice=request.service_notice,
        account_id=submitter_id,
    )
    try:
        repo.append_submitted_request(submitter_id, request.request_id)
    except Open311Error as exc:
        log.warning("request %s saved but not added to account %s: %s",
                    request.request_id, submitter_id, exc.message)
        response.service_notice = USER_INDEX_NOTICE
    return response


def update_request(
    repo: Open311Repository,
    request: Request,
    submitter_id: str,
    *,
    log: Optional[logging.Logger] = None,
) -> RequestResponse:
    """Replace an existing request with `request` (last write wins, no merge)."""
    log = log or logger
    if not request.request_id:
        raise Open311Error.validation("requestID is required to update a request")
    if request.status not in REQUEST_STATUSES:
        raise Open311Error.validation(
            f"invalid status '{request.status}'. Must be one of: {', '.join(REQUEST_STATUSES)}"
        )
    validate_request(repo, request)

    now = _now_z()
    request.updated_datetime = now
    _stamp_entries(request, now)

    repo.put_request(request)
    log.info("Request updated: %s (status=%s, account=%s)", request.request_id, request.status, submitter_id)
    return RequestResponse(
        service_request_id=request.request_id,
        service_notice=request.service_notice,
        account_id=submitter_id,
    )


def handle_submission(
    repo: Open311Repository,
    request: Request,
    submitter_id: str,
    *,
    log: Optional[logging.Logger] = None,
) -> RequestResponse:
    if request.request_id:
        return update_request(repo, request, submitter_id, log=log)
    return submit_request(repo, request, submitter_id, log=log)
