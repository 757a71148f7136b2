"""open311_shared.http_utils — Route dispatch and API Gateway response helpers.

Each Lambda declares a tuple of Route(method, template, handler) and hands
every event to dispatch(). Templates use API Gateway syntax
("/service/{id}"). REST API (v1) events are matched on their `resource`
field; HTTP API (v2) events and direct invocations on the path, with any
stage prefix ignored.

Success bodies are JSON. Error bodies are plain text,
"<status phrase>: <detail>", as the Open311 clients expect.
"""

from __future__ import annotations

import base64
import http
import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Pattern, Tuple
from urllib.parse import unquote

from botocore.exceptions import BotoCoreError, ClientError

from open311_shared.config import CORS_ORIGIN, GUEST_ACCOUNT_ID
from open311_shared.errors import Open311Error
from open311_shared.serialization import _json_default

__all__ = [
    "Route",
    "_cors_headers",
    "_error",
    "_json_body",
    "_path_method",
    "_response",
    "_submitter_id",
    "dispatch",
]

logger = logging.getLogger(__name__)

Handler = Callable[[Dict[str, Any], Dict[str, str]], Dict[str, Any]]

_PARAM_RE = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\+?\}")


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


def _cors_headers() -> Dict[str, str]:
    return {
        "Access-Control-Allow-Origin": CORS_ORIGIN,
        "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type, Authorization, From",
    }


def _response(status_code: int, body: Any) -> Dict[str, Any]:
    """Build a JSON API Gateway response with CORS headers."""
    return {
        "statusCode": status_code,
        "headers": {**_cors_headers(), "Content-Type": "application/json"},
        "body": json.dumps(body, default=_json_default),
    }


def _status_phrase(status_code: int) -> str:
    try:
        return http.HTTPStatus(status_code).phrase
    except ValueError:
        return "Error"


def _error(status_code: int, message: str) -> Dict[str, Any]:
    """Build a plain-text error response: "<status phrase>: <message>".

    Does not log; dispatch logs each failure once.
    """
    return {
        "statusCode": status_code,
        "headers": {**_cors_headers(), "Content-Type": "text/plain"},
        "body": f"{_status_phrase(status_code)}: {message}",
    }


# ---------------------------------------------------------------------------
# Event parsing
# ---------------------------------------------------------------------------


def _path_method(event: Dict[str, Any]) -> Tuple[str, str]:
    """Extract HTTP method and path from a REST (v1) or HTTP (v2) API event."""
    rc = event.get("requestContext") or {}
    http_ctx = rc.get("http") or {}
    method = (http_ctx.get("method") or event.get("httpMethod") or "GET").upper()
    path = event.get("rawPath") or http_ctx.get("path") or event.get("path") or "/"
    return method, path


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not a valid number")


def _finite_float(text: str) -> float:
    value = float(text)
    if not math.isfinite(value):
        raise ValueError(f"number {text} is out of range")
    return value


def _json_body(event: Dict[str, Any]) -> Dict[str, Any]:
    """Parse the JSON object body of an event.

    Raises Open311Error(VALIDATION, status 422) for a missing, malformed or
    non-object body. NaN, Infinity and numbers that overflow a float are
    malformed: DynamoDB cannot store them.
    """
    raw = event.get("body")
    if raw in (None, ""):
        raise Open311Error.validation("request body is required", status_code=422)
    try:
        if event.get("isBase64Encoded"):
            raw = base64.b64decode(raw).decode("utf-8")
        parsed = json.loads(raw, parse_constant=_reject_constant, parse_float=_finite_float)
    except (ValueError, TypeError) as exc:
        raise Open311Error.validation(f"error unmarshalling JSON body. Check syntax: {exc}", status_code=422) from exc
    if not isinstance(parsed, dict):
        raise Open311Error.validation("JSON body must be an object", status_code=422)
    return parsed


def _submitter_id(event: Dict[str, Any]) -> str:
    """Account of the caller: Cognito `sub` claim, else the From header, else guest."""
    authorizer = (event.get("requestContext") or {}).get("authorizer") or {}
    claims = authorizer.get("claims") or (authorizer.get("jwt") or {}).get("claims") or {}
    sub = str(claims.get("sub") or "").strip()
    if sub:
        return sub
    headers = event.get("headers") or {}
    from_header = str(headers.get("from") or headers.get("From") or "").strip()
    return from_header or GUEST_ACCOUNT_ID


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------


def _compile_template(template: str) -> Pattern[str]:
    pattern = ""
    pos = 0
    for m in _PARAM_RE.finditer(template):
        pattern += re.escape(template[pos:m.start()]) + f"(?P<{m.group(1)}>[^/]+)"
        pos = m.end()
    pattern += re.escape(template[pos:])
    # Templates start with "/", so a search only matches at a segment boundary
    # and "/prod/services" still matches "/services".
    return re.compile(pattern + r"/?$")


@dataclass
class Route:
    method: str
    template: str
    handler: Handler
    pattern: Pattern[str] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.method = self.method.upper()
        self.pattern = _compile_template(self.template)

    def match(self, event: Dict[str, Any], path: str) -> Optional[Dict[str, str]]:
        """Path parameters when this route's template matches the event, else None."""
        resource = event.get("resource")
        if resource:
            if resource != self.template:
                return None
            params = event.get("pathParameters") or {}
            return {k: unquote(str(v)) for k, v in params.items()}
        m = self.pattern.search(path)
        if m is None:
            return None
        return {k: unquote(v) for k, v in m.groupdict().items()}


def dispatch(
    event: Dict[str, Any],
    routes: Iterable[Route],
    *,
    log: Optional[logging.Logger] = None,
) -> Dict[str, Any]:
    """Route `event` to the matching handler and map failures to responses."""
    log = log or logger
    method, path = _path_method(event)
    log.info("%s %s", method, path)

    if method == "OPTIONS":
        return {"statusCode": 204, "headers": _cors_headers(), "body": ""}

    path_matched = False
    allowed: List[str] = []
    for route in routes:
        params = route.match(event, path)
        if params is None:
            continue
        path_matched = True
        if route.method != method:
            allowed.append(route.method)
            continue
        try:
            return route.handler(event, params)
        except Open311Error as exc:
            if exc.is_client_error:
                log.warning("%s %s rejected (params=%s): %s %s", method, path, params, exc.status_code, exc.message)
            else:
                log.error("%s %s failed (params=%s): %s", method, path, params, exc.message)
            return _error(exc.status_code, exc.message)
        except (ClientError, BotoCoreError) as exc:
            log.error("AWS error on %s %s (params=%s): %s", method, path, params, exc, exc_info=True)
            return _error(500, "internal service error")
        except Exception as exc:
            log.error("Unexpected error on %s %s (params=%s): %s", method, path, params, exc, exc_info=True)
            return _error(500, "internal service error")

    if path_matched:
        log.warning("%s %s: method not allowed", method, path)
        return _error(405, f"method {method} not allowed on {path}; use {' or '.join(sorted(set(allowed)))}")
    log.warning("%s %s: no matching route", method, path)
    return _error(404, f"route not found: {method} {path}")
