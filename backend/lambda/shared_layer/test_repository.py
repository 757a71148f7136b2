"""test_repository.py — Entity repository and request submission workflow.

Runs against fake_dynamodb.FakeDynamoDB, so no AWS credentials are needed.

Run from shared_layer directory:
    python3 -m pytest test_repository.py -v
"""

from __future__ import annotations

import logging
import os
import sys
import threading
from unittest.mock import MagicMock

import pytest

_HERE = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, os.path.join(_HERE, "python"))
sys.path.insert(0, _HERE)

from botocore.exceptions import ClientError, EndpointConnectionError

from fake_dynamodb import FakeDynamoDB
from open311_shared import config
from open311_shared.errors import ErrorKind, Open311Error
from open311_shared.ids import id_timestamp
from open311_shared.models import Feedback, OnboardingRequest, Request, User
from open311_shared.repository import Open311Repository
from open311_shared.submission import (
    USER_INDEX_NOTICE,
    handle_submission,
    submit_request,
    update_request,
    validate_request,
)

CURB = {
    "serviceCode": "003",
    "serviceName": "Curb defect",
    "description": "Sidewalk curb or ramp has problems such as cracking.",
    "metadata": True,
    "type": "realtime",
    "keywords": ["curb", "sidewalk"],
    "group": "street",
}


def _throttled(operation: str) -> ClientError:
    return ClientError({"Error": {"Code": "ProvisionedThroughputExceededException", "Message": "slow"}}, operation)


@pytest.fixture
def ddb():
    fake = FakeDynamoDB()
    fake.seed(config.SERVICES_TABLE, CURB)
    return fake


@pytest.fixture
def repo(ddb):
    return Open311Repository(ddb=ddb, log=logging.getLogger("test_repository"))


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------


def test_get_all_on_empty_collection_is_empty_list(repo):
    assert repo.get_cities() == []
    assert repo.get_users() == []
    assert repo.get_requests() == []


def test_get_all_follows_scan_pages():
    ddb = FakeDynamoDB(page_size=2)
    for n in range(5):
        ddb.seed(config.CITIES_TABLE, {"cityName": f"City{n}", "endpoint": f"https://{n}.example.org"})
    repo = Open311Repository(ddb=ddb)

    cities = repo.get_cities()

    assert sorted(c.city_name for c in cities) == [f"City{n}" for n in range(5)]
    assert ddb.calls.count(("scan", config.CITIES_TABLE)) == 3


def test_get_all_backend_failure(repo, ddb):
    ddb.fail("scan", _throttled("Scan"))
    with pytest.raises(Open311Error) as exc:
        repo.get_services()
    assert exc.value.kind is ErrorKind.BACKEND


def test_get_service_round_trips_fields(repo):
    service = repo.get_service("003")
    assert service.to_dict() == CURB


def test_get_by_key_not_found_names_the_key(repo):
    with pytest.raises(Open311Error) as exc:
        repo.get_service("999")
    assert exc.value.kind is ErrorKind.NOT_FOUND
    assert "999" in exc.value.message


def test_get_by_key_transport_failure_is_backend(repo, ddb):
    ddb.fail("get_item", EndpointConnectionError(endpoint_url="https://dynamodb.us-east-1.amazonaws.com"))
    with pytest.raises(Open311Error) as exc:
        repo.get_city("Schenectady")
    assert exc.value.kind is ErrorKind.BACKEND


def test_get_by_key_unreadable_item_is_backend(repo, ddb):
    ddb.seed(config.REQUESTS_TABLE, {"requestID": "R1", "serviceCode": "003", "latitude": "north"})
    with pytest.raises(Open311Error) as exc:
        repo.get_request("R1")
    assert exc.value.kind is ErrorKind.BACKEND


def test_get_requests_filters(repo, ddb):
    ddb.seed(config.REQUESTS_TABLE, {"requestID": "A", "serviceCode": "003", "status": "open"})
    ddb.seed(config.REQUESTS_TABLE, {"requestID": "B", "serviceCode": "003", "status": "closed"})
    ddb.seed(config.REQUESTS_TABLE, {"requestID": "C", "serviceCode": "001", "status": "open"})

    assert {r.request_id for r in repo.get_requests(status="open")} == {"A", "C"}
    assert {r.request_id for r in repo.get_requests(service_code="003")} == {"A", "B"}
    assert [r.request_id for r in repo.get_requests(status="open", service_code="003")] == ["A"]


def test_service_definition(repo, ddb):
    ddb.seed(config.SERVICES_TABLE, {
        **CURB,
        "serviceCode": "004",
        "definition": {
            "attributes": [
                {"code": "SIZE", "datatype": "singlevaluelist", "required": True, "order": 2,
                 "values": [{"key": "S", "name": "Small"}, {"key": "L", "name": "Large"}]},
                {"code": "NOTE", "datatype": "text", "order": 1},
            ],
        },
    })

    definition = repo.get_service_definition("004")

    assert definition.service_code == "004"
    assert [a.code for a in definition.attributes] == ["NOTE", "SIZE"]
    assert definition.attributes[1].values[1].name == "Large"

    with pytest.raises(Open311Error) as exc:
        repo.get_service_definition("003")
    assert exc.value.kind is ErrorKind.NOT_FOUND


def test_is_valid_service_code(repo, ddb):
    assert repo.is_valid_service_code("003") is True
    assert repo.is_valid_service_code("999") is False
    assert repo.is_valid_service_code("") is False

    ddb.fail("get_item", _throttled("GetItem"))
    assert repo.is_valid_service_code("003") is False


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


def test_add_user_conflict(repo):
    repo.add_user(User(account_id="u-1", groups=["staff"]))
    assert repo.get_user("u-1").groups == ["staff"]

    with pytest.raises(Open311Error) as exc:
        repo.add_user(User(account_id="u-1"))
    assert exc.value.kind is ErrorKind.CONFLICT


def test_append_submitted_request_creates_user(repo):
    user = repo.append_submitted_request("new-user", "R1")
    assert user.submitted_requests == ["R1"]
    assert user.watched_requests == []

    user = repo.append_submitted_request("new-user", "R2")
    assert repo.get_user("new-user").submitted_requests == ["R1", "R2"]


def test_add_watched_request(repo):
    repo.add_user(User(account_id="u-1"))
    repo.add_watched_request("u-1", "R1")
    user = repo.add_watched_request("u-1", "R1")
    assert user.watched_requests == ["R1"]

    with pytest.raises(Open311Error) as exc:
        repo.add_watched_request("ghost", "R1")
    assert exc.value.kind is ErrorKind.NOT_FOUND
    assert [u.account_id for u in repo.get_users()] == ["u-1"]


def test_concurrent_watches_store_request_once(repo, ddb, monkeypatch):
    repo.add_user(User(account_id="u-1", watched_requests=["R0"]))
    # Both threads reach the write before either has stored anything.
    barrier = threading.Barrier(2, timeout=5)
    original = ddb.update_item

    def _update_item_together(**kwargs):
        barrier.wait()
        return original(**kwargs)

    monkeypatch.setattr(ddb, "update_item", _update_item_together)
    results = []
    threads = [
        threading.Thread(target=lambda: results.append(repo.add_watched_request("u-1", "R1")))
        for _ in range(2)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert [u.watched_requests for u in results] == [["R0", "R1"], ["R0", "R1"]]
    assert repo.get_user("u-1").watched_requests == ["R0", "R1"]


def test_write_once_records(repo, ddb):
    repo.add_feedback(Feedback(body={"rating": 5, "comment": "Great"}, feedback_id="F1", account_id="u-1"))
    repo.add_onboarding_request(OnboardingRequest(city="Troy", state="NY", onboarding_id="O1"))

    assert ddb.count(config.FEEDBACK_TABLE) == 1
    assert ddb.count(config.ONBOARDING_TABLE) == 1
    with pytest.raises(Open311Error) as exc:
        repo.add_feedback(Feedback(body={}, feedback_id="F1"))
    assert exc.value.kind is ErrorKind.CONFLICT


# ---------------------------------------------------------------------------
# Submission workflow
# ---------------------------------------------------------------------------


def test_submit_request_persists_open_request(repo):
    request = Request.from_dict({"serviceCode": "003", "address": "8th Ave", "description": "Cracked ramp"})

    response = submit_request(repo, request, "u-1")

    stored = repo.get_request(response.service_request_id)
    assert stored.status == "open"
    assert stored.requested_datetime
    assert stored.service_code == "003"
    assert stored.service_name == "Curb defect"
    assert stored.agency_responsible == "street"
    assert stored.descriptions[0].text == "Cracked ramp"
    assert stored.descriptions[0].datetime == stored.requested_datetime
    assert response.account_id == "u-1"
    assert response.service_notice == ""
    assert repo.get_user("u-1").submitted_requests == [response.service_request_id]
    id_timestamp(response.service_request_id)


def test_submit_request_ignores_client_status(repo):
    request = Request.from_dict({"serviceCode": "003", "latitude": 42.81, "longitude": -73.92, "status": "closed"})
    response = submit_request(repo, request, "u-1")
    stored = repo.get_request(response.service_request_id)
    assert stored.status == "open"
    assert stored.latitude == 42.81


def test_submit_request_unknown_service_code(repo, ddb):
    request = Request.from_dict({"serviceCode": "999", "address": "8th Ave"})
    with pytest.raises(Open311Error) as exc:
        submit_request(repo, request, "u-1")
    assert exc.value.kind is ErrorKind.VALIDATION
    assert ddb.count(config.REQUESTS_TABLE) == 0


@pytest.mark.parametrize("body", [
    {"serviceCode": "003"},
    {"serviceCode": "003", "address": "", "latitude": 0, "longitude": 0},
    {"serviceCode": "003", "address": "   ", "statusNotes": "anything", "values": {"x": 1}},
])
def test_submit_request_without_location(repo, ddb, body):
    with pytest.raises(Open311Error) as exc:
        submit_request(repo, Request.from_dict(body), "u-1")
    assert exc.value.kind is ErrorKind.VALIDATION
    assert ddb.count(config.REQUESTS_TABLE) == 0


def test_submit_request_id_failure_persists_nothing(repo, ddb, monkeypatch):
    import open311_shared.submission as submission

    def _broken():
        raise Open311Error.backend("Unable to generate identifier")

    monkeypatch.setattr(submission, "new_id", _broken)
    with pytest.raises(Open311Error) as exc:
        submit_request(repo, Request.from_dict({"serviceCode": "003", "address": "8th Ave"}), "u-1")
    assert exc.value.kind is ErrorKind.BACKEND
    assert ddb.count(config.REQUESTS_TABLE) == 0


def test_submit_request_service_lookup_failure_is_best_effort(repo, monkeypatch):
    original = repo.get_service
    calls = []

    def _flaky(code):
        calls.append(code)
        if len(calls) > 1:
            raise Open311Error.backend("throttled")
        return original(code)

    monkeypatch.setattr(repo, "get_service", _flaky)
    response = submit_request(repo, Request.from_dict({"serviceCode": "003", "address": "8th Ave"}), "u-1")

    stored = repo.get_request(response.service_request_id)
    assert stored.service_name == ""
    assert stored.agency_responsible == ""


def test_submit_request_user_index_failure_is_reported_not_fatal(repo, ddb):
    ddb.fail("update_item", _throttled("UpdateItem"), table=config.USERS_TABLE)
    log = MagicMock()

    response = submit_request(repo, Request.from_dict({"serviceCode": "003", "address": "8th Ave"}), "u-1", log=log)

    assert response.service_notice == USER_INDEX_NOTICE
    assert repo.get_request(response.service_request_id).status == "open"
    log.warning.assert_called()


def test_submit_request_persistence_failure_is_backend(repo, ddb):
    ddb.fail("put_item", _throttled("PutItem"), table=config.REQUESTS_TABLE)
    with pytest.raises(Open311Error) as exc:
        submit_request(repo, Request.from_dict({"serviceCode": "003", "address": "8th Ave"}), "u-1")
    assert exc.value.kind is ErrorKind.BACKEND


def test_concurrent_submissions_keep_both_ids(repo):
    results = []

    def _submit():
        results.append(submit_request(repo, Request.from_dict({"serviceCode": "003", "address": "8th Ave"}), "u-1"))

    threads = [threading.Thread(target=_submit) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    ids = {r.service_request_id for r in results}
    assert len(ids) == 2
    assert set(repo.get_user("u-1").submitted_requests) == ids


def test_update_request_overwrites_without_merge(repo):
    created = submit_request(
        repo,
        Request.from_dict({"serviceCode": "003", "address": "8th Ave", "statusNotes": "new", "zipCode": "12309"}),
        "u-1",
    )
    update = Request.from_dict({
        "requestID": created.service_request_id,
        "serviceCode": "003",
        "latitude": 42.8,
        "longitude": -73.9,
        "status": "inProgress",
    })

    response = update_request(repo, update, "staff-1")

    stored = repo.get_request(created.service_request_id)
    assert response.service_request_id == created.service_request_id
    assert stored.status == "inProgress"
    assert stored.updated_datetime
    assert stored.address == ""
    assert stored.status_notes == ""
    assert stored.zip_code == ""
    assert stored.requested_datetime == ""


def test_update_request_can_reopen_closed(repo):
    created = submit_request(repo, Request.from_dict({"serviceCode": "003", "address": "8th Ave"}), "u-1")
    for status in ("closed", "open"):
        update_request(
            repo,
            Request.from_dict({"requestID": created.service_request_id, "serviceCode": "003",
                               "address": "8th Ave", "status": status}),
            "staff-1",
        )
    assert repo.get_request(created.service_request_id).status == "open"


def test_update_request_rejects_unknown_status(repo):
    with pytest.raises(Open311Error) as exc:
        update_request(
            repo,
            Request.from_dict({"requestID": "R1", "serviceCode": "003", "address": "x", "status": "done"}),
            "staff-1",
        )
    assert exc.value.kind is ErrorKind.VALIDATION


def test_update_request_requires_id_and_existing_record(repo):
    with pytest.raises(Open311Error) as exc:
        update_request(repo, Request.from_dict({"serviceCode": "003", "address": "x"}), "staff-1")
    assert exc.value.kind is ErrorKind.VALIDATION

    with pytest.raises(Open311Error) as exc:
        update_request(repo, Request.from_dict({"requestID": "missing", "serviceCode": "003", "address": "x"}), "s")
    assert exc.value.kind is ErrorKind.NOT_FOUND


def test_handle_submission_dispatch(repo):
    created = handle_submission(repo, Request.from_dict({"serviceCode": "003", "address": "8th Ave"}), "u-1")
    updated = handle_submission(
        repo,
        Request.from_dict({"requestID": created.service_request_id, "serviceCode": "003",
                           "address": "8th Ave", "status": "accepted"}),
        "u-1",
    )
    assert updated.service_request_id == created.service_request_id
    assert repo.get_request(created.service_request_id).status == "accepted"


def test_validate_request_accepts_coordinates_only(repo):
    validate_request(repo, Request.from_dict({"serviceCode": "003", "latitude": 0, "longitude": -73.9}))


@pytest.mark.parametrize("body", [
    {"serviceCode": "003", "address": "8th Ave", "latitude": float("nan")},
    {"serviceCode": "003", "address": "8th Ave", "longitude": float("-inf")},
    {"serviceCode": "003", "address": "8th Ave", "latitude": 10 ** 400},
    {"serviceCode": "003", "address": "8th Ave", "values": {"sizes": [1.0, float("inf")]}},
])
def test_request_rejects_non_finite_numbers(body):
    with pytest.raises(Open311Error) as exc:
        Request.from_dict(body)
    assert exc.value.kind is ErrorKind.VALIDATION


def test_submit_request_logs_identifier_creation_time(repo):
    log = MagicMock()
    response = submit_request(repo, Request.from_dict({"serviceCode": "003", "address": "8th Ave"}), "u-1", log=log)

    minted = id_timestamp(response.service_request_id).isoformat()
    submitted = [c for c in log.info.call_args_list if c.args[0].startswith("New request submitted")]
    assert len(submitted) == 1
    assert submitted[0].args[1:3] == (response.service_request_id, minted)
