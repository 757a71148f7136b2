"""open311_shared.repository — DynamoDB-backed entity repository.

One table per collection, each keyed by a single string attribute:

    Services            serviceCode
    Requests            requestID
    Users               accountID
    Cities              cityName
    Feedback            feedbackID
    OnboardingRequests  onboardingID

Every failure leaves the repository as an Open311Error tagged with its kind.
Scans return whole tables (LastEvaluatedKey is followed); there is no
pagination on the API surface.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, TypeVar

from botocore.exceptions import BotoCoreError, ClientError

from open311_shared import config
from open311_shared.aws_clients import _get_ddb
from open311_shared.errors import ErrorKind, Open311Error
from open311_shared.models import City, Feedback, OnboardingRequest, Request, Service, ServiceDefinition, User
from open311_shared.serialization import _deserialize, _serialize, _serialize_item

__all__ = ["Open311Repository"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _is_conditional_failure(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


class Open311Repository:
    """Accessors for the Open311 collections.

    Create one per Lambda container and reuse it; `ddb` defaults to the
    shared client singleton and `log` to this module's logger.
    """

    def __init__(self, ddb: Any = None, log: Optional[logging.Logger] = None):
        self._ddb = ddb
        self.log = log or logger

    @property
    def ddb(self):
        if self._ddb is None:
            self._ddb = _get_ddb()
        return self._ddb

    # -----------------------------------------------------------------------
    # Generic table access
    # -----------------------------------------------------------------------

    def _scan(self, table: str, parse: Callable[[Dict[str, Any]], T], **kwargs: Any) -> List[T]:
        params: Dict[str, Any] = {"TableName": table, **kwargs}
        items: List[T] = []
        try:
            while True:
                resp = self.ddb.scan(**params)
                items.extend(parse(_deserialize(raw)) for raw in resp.get("Items", []))
                if "LastEvaluatedKey" not in resp:
                    break
                params["ExclusiveStartKey"] = resp["LastEvaluatedKey"]
        except (BotoCoreError, ClientError) as exc:
            self.log.error("scan %s failed: %s", table, exc)
            raise Open311Error.backend(f"Unable to read {table}: {exc}") from exc
        except Open311Error as exc:
            self.log.error("scan %s returned an unreadable item: %s", table, exc.message)
            raise Open311Error.backend(f"Unable to read {table}: {exc.message}") from exc
        return items

    def _get(self, table: str, key_name: str, key: str, parse: Callable[[Dict[str, Any]], T], label: str) -> T:
        if not key:
            raise Open311Error.not_found(f"{label} '' not in database")
        try:
            resp = self.ddb.get_item(TableName=table, Key={key_name: _serialize(key)})
        except (BotoCoreError, ClientError) as exc:
            self.log.error("get_item %s[%s=%s] failed: %s", table, key_name, key, exc)
            raise Open311Error.backend(f"Unable to read {label} '{key}': {exc}") from exc

        raw = resp.get("Item")
        if not raw:
            raise Open311Error.not_found(f"{label} '{key}' not in database")
        try:
            return parse(_deserialize(raw))
        except Open311Error as exc:
            self.log.error("unreadable item %s[%s=%s]: %s", table, key_name, key, exc.message)
            raise Open311Error.backend(f"Unable to read {label} '{key}': {exc.message}") from exc

    def _put(self, table: str, item: Dict[str, Any], **kwargs: Any) -> None:
        try:
            self.ddb.put_item(TableName=table, Item=_serialize_item(item), **kwargs)
        except ClientError as exc:
            if _is_conditional_failure(exc):
                raise
            self.log.error("put_item %s failed: %s", table, exc)
            raise Open311Error.backend(f"Unable to write to {table}: {exc}") from exc
        except BotoCoreError as exc:
            self.log.error("put_item %s failed: %s", table, exc)
            raise Open311Error.backend(f"Unable to write to {table}: {exc}") from exc

    # -----------------------------------------------------------------------
    # Services
    # -----------------------------------------------------------------------

    def get_services(self) -> List[Service]:
        return self._scan(config.SERVICES_TABLE, Service.from_dict)

    def get_service(self, code: str) -> Service:
        return self._get(config.SERVICES_TABLE, "serviceCode", code, Service.from_dict, "service_code")

    def get_service_definition(self, code: str) -> ServiceDefinition:
        service = self.get_service(code)
        if service.definition is None:
            raise Open311Error.not_found(f"service_code '{code}' has no service definition")
        return service.definition

    def is_valid_service_code(self, code: str) -> bool:
        """True when `code` names an existing service.

        A failed lookup also answers False, so callers cannot tell an unknown
        code from an unavailable table; the failure is logged.
        """
        if not code:
            return False
        try:
            self.get_service(code)
        except Open311Error as exc:
            if exc.kind is not ErrorKind.NOT_FOUND:
                self.log.warning("service code check for '%s' failed: %s", code, exc.message)
            return False
        return True

    # -----------------------------------------------------------------------
    # Requests
    # -----------------------------------------------------------------------

    def get_requests(self, status: Optional[str] = None, service_code: Optional[str] = None) -> List[Request]:
        filters: List[str] = []
        names: Dict[str, str] = {}
        values: Dict[str, Any] = {}
        if status:
            filters.append("#status = :status")
            names["#status"] = "status"
            values[":status"] = _serialize(status)
        if service_code:
            filters.append("serviceCode = :code")
            values[":code"] = _serialize(service_code)

        kwargs: Dict[str, Any] = {}
        if filters:
            kwargs["FilterExpression"] = " AND ".join(filters)
            kwargs["ExpressionAttributeValues"] = values
            if names:
                kwargs["ExpressionAttributeNames"] = names
        return self._scan(config.REQUESTS_TABLE, Request.from_dict, **kwargs)

    def get_request(self, request_id: str) -> Request:
        return self._get(config.REQUESTS_TABLE, "requestID", request_id, Request.from_dict, "service_request_id")

    def create_request(self, request: Request) -> None:
        """Insert a new request; CONFLICT if the id is already taken."""
        try:
            self._put(
                config.REQUESTS_TABLE,
                request.to_dict(),
                ConditionExpression="attribute_not_exists(requestID)",
            )
        except ClientError as exc:
            raise Open311Error.conflict(f"service_request_id '{request.request_id}' already exists") from exc

    def put_request(self, request: Request) -> None:
        """Overwrite an existing request in full; NOT_FOUND if it does not exist."""
        try:
            self._put(
                config.REQUESTS_TABLE,
                request.to_dict(),
                ConditionExpression="attribute_exists(requestID)",
            )
        except ClientError as exc:
            raise Open311Error.not_found(f"service_request_id '{request.request_id}' not in database") from exc

    # -----------------------------------------------------------------------
    # Users
    # -----------------------------------------------------------------------

    def get_users(self) -> List[User]:
        return self._scan(config.USERS_TABLE, User.from_dict)

    def get_user(self, account_id: str) -> User:
        return self._get(config.USERS_TABLE, "accountID", account_id, User.from_dict, "account_id")

    def add_user(self, user: User) -> User:
        """Create a user; CONFLICT if the account already exists."""
        if not user.account_id:
            raise Open311Error.validation("accountID is required")
        try:
            self._put(
                config.USERS_TABLE,
                user.to_dict(),
                ConditionExpression="attribute_not_exists(accountID)",
            )
        except ClientError as exc:
            raise Open311Error.conflict(f"account_id '{user.account_id}' already exists") from exc
        return user

    def _update_user(self, account_id: str, **kwargs: Any) -> User:
        try:
            resp = self.ddb.update_item(
                TableName=config.USERS_TABLE,
                Key={"accountID": _serialize(account_id)},
                ReturnValues="ALL_NEW",
                **kwargs,
            )
        except ClientError as exc:
            if _is_conditional_failure(exc):
                raise
            self.log.error("update_item %s[accountID=%s] failed: %s", config.USERS_TABLE, account_id, exc)
            raise Open311Error.backend(f"Unable to update account_id '{account_id}': {exc}") from exc
        except BotoCoreError as exc:
            self.log.error("update_item %s[accountID=%s] failed: %s", config.USERS_TABLE, account_id, exc)
            raise Open311Error.backend(f"Unable to update account_id '{account_id}': {exc}") from exc
        return User.from_dict(_deserialize(resp.get("Attributes") or {"accountID": _serialize(account_id)}))

    def append_submitted_request(self, account_id: str, request_id: str) -> User:
        """Append `request_id` to the user's submitted list, creating the user if absent.

        A single update_item, so concurrent appends for one user never lose
        an id.
        """
        return self._update_user(
            account_id,
            UpdateExpression=(
                "SET submittedRequests = list_append(if_not_exists(submittedRequests, :empty), :ids), "
                "watchedRequests = if_not_exists(watchedRequests, :empty), "
                "#groups = if_not_exists(#groups, :empty)"
            ),
            ExpressionAttributeNames={"#groups": "groups"},
            ExpressionAttributeValues={
                ":empty": _serialize([]),
                ":ids": _serialize([request_id]),
            },
        )

    def add_watched_request(self, account_id: str, request_id: str) -> User:
        """Append `request_id` to an existing user's watched list (no duplicates).

        The duplicate check is part of the conditional write, so concurrent
        watches of one request store it once. When the condition fails the
        user is re-read: an existing user is returned unchanged, a missing
        one is NOT_FOUND.
        """
        try:
            return self._update_user(
                account_id,
                UpdateExpression="SET watchedRequests = list_append(if_not_exists(watchedRequests, :empty), :ids)",
                ConditionExpression="attribute_exists(accountID) AND NOT contains(watchedRequests, :rid)",
                ExpressionAttributeValues={
                    ":empty": _serialize([]),
                    ":ids": _serialize([request_id]),
                    ":rid": _serialize(request_id),
                },
            )
        except ClientError:
            return self.get_user(account_id)

    # -----------------------------------------------------------------------
    # Cities
    # -----------------------------------------------------------------------

    def get_cities(self) -> List[City]:
        return self._scan(config.CITIES_TABLE, City.from_dict)

    def get_city(self, name: str) -> City:
        return self._get(config.CITIES_TABLE, "cityName", name, City.from_dict, "city_name")

    # -----------------------------------------------------------------------
    # Write-once records
    # -----------------------------------------------------------------------

    def add_feedback(self, feedback: Feedback) -> None:
        try:
            self._put(
                config.FEEDBACK_TABLE,
                feedback.to_dict(),
                ConditionExpression="attribute_not_exists(feedbackID)",
            )
        except ClientError as exc:
            raise Open311Error.conflict(f"feedback_id '{feedback.feedback_id}' already exists") from exc

    def add_onboarding_request(self, onboarding: OnboardingRequest) -> None:
        try:
            self._put(
                config.ONBOARDING_TABLE,
                onboarding.to_dict(),
                ConditionExpression="attribute_not_exists(onboardingID)",
            )
        except ClientError as exc:
            raise Open311Error.conflict(f"onboarding_id '{onboarding.onboarding_id}' already exists") from exc
