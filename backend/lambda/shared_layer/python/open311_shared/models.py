"""open311_shared.models — Entity dataclasses.

Attribute names are shared by request bodies, response bodies and DynamoDB
items, so `from_dict(d).to_dict()` is the identity for well-formed input.
`from_dict` raises Open311Error(VALIDATION) for values of the wrong type.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from open311_shared.errors import Open311Error

__all__ = [
    "AttributeValue",
    "City",
    "Feedback",
    "MediaEntry",
    "OnboardingRequest",
    "REQUEST_STATUSES",
    "Request",
    "RequestDescription",
    "RequestResponse",
    "Service",
    "ServiceAttribute",
    "ServiceDefinition",
    "STATUS_OPEN",
    "User",
]

STATUS_OPEN = "open"
REQUEST_STATUSES = ("open", "accepted", "inProgress", "closed")


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------


def _str(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        raise Open311Error.validation(f"'{key}' must be a string")
    return str(value)


def _bool(data: Dict[str, Any], key: str) -> bool:
    value = data.get(key)
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def _int(data: Dict[str, Any], key: str) -> int:
    value = data.get(key)
    if value in (None, ""):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        raise Open311Error.validation(f"'{key}' must be an integer")


def _float(data: Dict[str, Any], key: str) -> float:
    value = data.get(key)
    if value in (None, ""):
        return 0.0
    if isinstance(value, bool):
        raise Open311Error.validation(f"'{key}' must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        raise Open311Error.validation(f"'{key}' must be a number")
    if not math.isfinite(number):
        raise Open311Error.validation(f"'{key}' must be a finite number")
    return number


def _str_list(data: Dict[str, Any], key: str) -> List[str]:
    value = data.get(key)
    if value in (None, ""):
        return []
    if isinstance(value, str):
        # Services created by hand sometimes carry keywords as "a, b, c".
        return [part.strip() for part in value.split(",") if part.strip()]
    if not isinstance(value, (list, tuple, set)):
        raise Open311Error.validation(f"'{key}' must be a list of strings")
    return [str(v) for v in value]


def _check_finite(value: Any, key: str) -> None:
    if isinstance(value, float) and not math.isfinite(value):
        raise Open311Error.validation(f"'{key}' must contain only finite numbers")
    if isinstance(value, dict):
        for v in value.values():
            _check_finite(v, key)
    elif isinstance(value, (list, tuple)):
        for v in value:
            _check_finite(v, key)


def _dict_list(data: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, dict) for v in value):
        raise Open311Error.validation(f"'{key}' must be a list of objects")
    return value


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@dataclass
class AttributeValue:
    key: str
    name: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AttributeValue":
        return cls(key=_str(data, "key"), name=_str(data, "name"))

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "name": self.name}


@dataclass
class ServiceAttribute:
    code: str
    datatype: str = "string"
    variable: bool = True
    required: bool = False
    order: int = 0
    description: str = ""
    datatype_description: str = ""
    values: List[AttributeValue] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServiceAttribute":
        return cls(
            code=_str(data, "code"),
            datatype=_str(data, "datatype") or "string",
            variable=_bool(data, "variable"),
            required=_bool(data, "required"),
            order=_int(data, "order"),
            description=_str(data, "description"),
            datatype_description=_str(data, "datatypeDescription"),
            values=[AttributeValue.from_dict(v) for v in _dict_list(data, "values")],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "datatype": self.datatype,
            "variable": self.variable,
            "required": self.required,
            "order": self.order,
            "description": self.description,
            "datatypeDescription": self.datatype_description,
            "values": [v.to_dict() for v in self.values],
        }


@dataclass
class ServiceDefinition:
    service_code: str
    attributes: List[ServiceAttribute] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], service_code: str = "") -> "ServiceDefinition":
        attributes = [ServiceAttribute.from_dict(a) for a in _dict_list(data, "attributes")]
        attributes.sort(key=lambda a: a.order)
        return cls(service_code=_str(data, "serviceCode") or service_code, attributes=attributes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "serviceCode": self.service_code,
            "attributes": [a.to_dict() for a in self.attributes],
        }


@dataclass
class Service:
    service_code: str
    service_name: str = ""
    description: str = ""
    metadata: bool = False
    type: str = "realtime"
    keywords: List[str] = field(default_factory=list)
    group: str = ""
    definition: Optional[ServiceDefinition] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Service":
        code = _str(data, "serviceCode")
        raw_definition = data.get("definition")
        definition = None
        if isinstance(raw_definition, dict):
            definition = ServiceDefinition.from_dict(raw_definition, service_code=code)
        return cls(
            service_code=code,
            service_name=_str(data, "serviceName"),
            description=_str(data, "description"),
            metadata=_bool(data, "metadata"),
            type=_str(data, "type") or "realtime",
            keywords=_str_list(data, "keywords"),
            group=_str(data, "group"),
            definition=definition,
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "serviceCode": self.service_code,
            "serviceName": self.service_name,
            "description": self.description,
            "metadata": self.metadata,
            "type": self.type,
            "keywords": list(self.keywords),
            "group": self.group,
        }
        if self.definition is not None:
            out["definition"] = self.definition.to_dict()
        return out


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


@dataclass
class RequestDescription:
    text: str
    datetime: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"datetime": self.datetime, "text": self.text}


@dataclass
class MediaEntry:
    url: str
    datetime: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"datetime": self.datetime, "url": self.url}


@dataclass
class Request:
    """A reported issue. `request_id` is empty until the request is created."""

    service_code: str
    request_id: str = ""
    status: str = STATUS_OPEN
    status_notes: str = ""
    service_name: str = ""
    descriptions: List[RequestDescription] = field(default_factory=list)
    media: List[MediaEntry] = field(default_factory=list)
    agency_responsible: str = ""
    service_notice: str = ""
    requested_datetime: str = ""
    updated_datetime: str = ""
    expected_datetime: str = ""
    address: str = ""
    address_id: str = ""
    zip_code: str = ""
    latitude: float = 0.0
    longitude: float = 0.0
    values: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Request":
        descriptions = [
            RequestDescription(text=_str(d, "text"), datetime=_str(d, "datetime"))
            for d in _dict_list(data, "descriptions")
        ]
        if isinstance(data.get("description"), str) and data["description"].strip():
            descriptions.append(RequestDescription(text=data["description"].strip()))
        media = [
            MediaEntry(url=_str(m, "url"), datetime=_str(m, "datetime"))
            for m in _dict_list(data, "media")
        ]
        values = data.get("values") or {}
        if not isinstance(values, dict):
            raise Open311Error.validation("'values' must be an object")
        _check_finite(values, "values")
        return cls(
            service_code=_str(data, "serviceCode"),
            request_id=_str(data, "requestID"),
            status=_str(data, "status") or STATUS_OPEN,
            status_notes=_str(data, "statusNotes"),
            service_name=_str(data, "serviceName"),
            descriptions=descriptions,
            media=media,
            agency_responsible=_str(data, "agencyResponsible"),
            service_notice=_str(data, "serviceNotice"),
            requested_datetime=_str(data, "requestedDateTime"),
            updated_datetime=_str(data, "updatedDateTime"),
            expected_datetime=_str(data, "expectedDateTime"),
            address=_str(data, "address").strip(),
            address_id=_str(data, "addressID"),
            zip_code=_str(data, "zipCode"),
            latitude=_float(data, "latitude"),
            longitude=_float(data, "longitude"),
            values=dict(values),
        )

    def has_location(self) -> bool:
        return bool(self.address) or not (self.latitude == 0 and self.longitude == 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requestID": self.request_id,
            "status": self.status,
            "statusNotes": self.status_notes,
            "serviceName": self.service_name,
            "serviceCode": self.service_code,
            "descriptions": [d.to_dict() for d in self.descriptions],
            "media": [m.to_dict() for m in self.media],
            "agencyResponsible": self.agency_responsible,
            "serviceNotice": self.service_notice,
            "requestedDateTime": self.requested_datetime,
            "updatedDateTime": self.updated_datetime,
            "expectedDateTime": self.expected_datetime,
            "address": self.address,
            "addressID": self.address_id,
            "zipCode": self.zip_code,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "values": dict(self.values),
        }


@dataclass
class RequestResponse:
    service_request_id: str
    service_notice: str = ""
    account_id: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service_request_id": self.service_request_id,
            "service_notice": self.service_notice,
            "account_id": self.account_id,
        }


# ---------------------------------------------------------------------------
# Users, cities, write-once records
# ---------------------------------------------------------------------------


@dataclass
class User:
    account_id: str
    groups: List[str] = field(default_factory=list)
    submitted_requests: List[str] = field(default_factory=list)
    watched_requests: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(
            account_id=_str(data, "accountID"),
            groups=_str_list(data, "groups"),
            submitted_requests=_str_list(data, "submittedRequests"),
            watched_requests=_str_list(data, "watchedRequests"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accountID": self.account_id,
            "groups": list(self.groups),
            "submittedRequests": list(self.submitted_requests),
            "watchedRequests": list(self.watched_requests),
        }


@dataclass
class City:
    city_name: str
    endpoint: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "City":
        return cls(city_name=_str(data, "cityName"), endpoint=_str(data, "endpoint"))

    def to_dict(self) -> Dict[str, Any]:
        return {"cityName": self.city_name, "endpoint": self.endpoint}


@dataclass
class Feedback:
    """Free-form feedback; every field the caller sent is kept in `body`."""

    body: Dict[str, Any]
    feedback_id: str = ""
    account_id: str = ""
    submitted_datetime: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.body,
            "feedbackID": self.feedback_id,
            "accountID": self.account_id,
            "submittedDateTime": self.submitted_datetime,
        }


@dataclass
class OnboardingRequest:
    city: str = ""
    state: str = ""
    name: str = ""
    email: str = ""
    message: str = ""
    onboarding_id: str = ""
    account_id: str = ""
    submitted_datetime: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OnboardingRequest":
        return cls(
            city=_str(data, "city").strip(),
            state=_str(data, "state").strip(),
            name=_str(data, "name"),
            email=_str(data, "email"),
            message=_str(data, "message"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "onboardingID": self.onboarding_id,
            "city": self.city,
            "state": self.state,
            "name": self.name,
            "email": self.email,
            "message": self.message,
            "accountID": self.account_id,
            "submittedDateTime": self.submitted_datetime,
        }
