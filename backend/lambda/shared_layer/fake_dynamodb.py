"""fake_dynamodb.py — In-memory stand-in for the low-level DynamoDB client.

Implements only what open311_shared.repository uses: get_item, put_item,
scan (with `a = :v AND ...` filters and optional paging) and update_item
(SET with list_append / if_not_exists), plus conditions made of
attribute_exists, attribute_not_exists and [NOT] contains clauses joined
by AND. Items are kept in DynamoDB wire format so the repository's
serialization is exercised too.

Test-only; not shipped in the layer.
"""

from __future__ import annotations

import copy
import re
import threading
from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError

from open311_shared import config
from open311_shared.serialization import _serialize_item

DEFAULT_KEYS = {
    config.SERVICES_TABLE: "serviceCode",
    config.REQUESTS_TABLE: "requestID",
    config.USERS_TABLE: "accountID",
    config.CITIES_TABLE: "cityName",
    config.FEEDBACK_TABLE: "feedbackID",
    config.ONBOARDING_TABLE: "onboardingID",
}

_CONDITION_RE = re.compile(r"attribute_(not_)?exists\((\w+)\)")
_CONTAINS_RE = re.compile(r"contains\((\w+),\s*(:\w+)\)")


def _split_top_level(text: str) -> List[str]:
    parts: List[str] = []
    depth = 0
    current = ""
    for ch in text:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        if ch == "," and depth == 0:
            parts.append(current.strip())
            current = ""
            continue
        current += ch
    if current.strip():
        parts.append(current.strip())
    return parts


def _conditional_failure(operation: str) -> ClientError:
    return ClientError(
        {"Error": {"Code": "ConditionalCheckFailedException", "Message": "The conditional request failed"}},
        operation,
    )


class FakeDynamoDB:
    def __init__(self, key_names: Optional[Dict[str, str]] = None, page_size: Optional[int] = None):
        self.key_names = dict(key_names or DEFAULT_KEYS)
        self.page_size = page_size
        self.tables: Dict[str, Dict[str, Dict[str, Any]]] = {name: {} for name in self.key_names}
        self.calls: List[tuple] = []
        # (operation, table) or operation -> exception raised instead of running it
        self.failures: Dict[Any, Exception] = {}
        # Conditional writes and updates are atomic per item, as in DynamoDB.
        self._lock = threading.Lock()

    # -----------------------------------------------------------------------
    # Test helpers
    # -----------------------------------------------------------------------

    def seed(self, table: str, item: Dict[str, Any]) -> None:
        wire = _serialize_item(item)
        self.tables[table][self._key(table, wire)] = wire

    def fail(self, operation: str, exc: Exception, table: Optional[str] = None) -> None:
        self.failures[(operation, table) if table else operation] = exc

    def count(self, table: str) -> int:
        return len(self.tables[table])

    # -----------------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------------

    def _record(self, operation: str, table: str) -> None:
        self.calls.append((operation, table))
        exc = self.failures.get((operation, table)) or self.failures.get(operation)
        if exc is not None:
            raise exc

    def _key(self, table: str, key: Dict[str, Any]) -> str:
        return key[self.key_names[table]]["S"]

    def _check(
        self,
        expression: Optional[str],
        existing: Optional[Dict[str, Any]],
        operation: str,
        values: Optional[Dict[str, Any]] = None,
    ) -> None:
        if not expression:
            return
        item = existing or {}
        for clause in expression.split(" AND "):
            clause = clause.strip()
            negate = clause.startswith("NOT ")
            if negate:
                clause = clause[len("NOT "):].strip()
            m = _CONDITION_RE.fullmatch(clause)
            if m is not None:
                present = m.group(2) in item
                ok = not present if m.group(1) else present
            else:
                m = _CONTAINS_RE.fullmatch(clause)
                if m is None:
                    raise NotImplementedError(f"condition not supported by fake: {expression}")
                ok = (values or {})[m.group(2)] in item.get(m.group(1), {}).get("L", [])
            if ok == negate:
                raise _conditional_failure(operation)

    def _eval(self, expr: str, item: Dict[str, Any], names: Dict[str, str], values: Dict[str, Any]) -> Any:
        expr = expr.strip()
        if expr.startswith("list_append(") and expr.endswith(")"):
            left, right = _split_top_level(expr[len("list_append("):-1])
            return {"L": self._eval(left, item, names, values)["L"] + self._eval(right, item, names, values)["L"]}
        if expr.startswith("if_not_exists(") and expr.endswith(")"):
            path, default = _split_top_level(expr[len("if_not_exists("):-1])
            path = names.get(path, path)
            if path in item:
                return copy.deepcopy(item[path])
            return self._eval(default, item, names, values)
        if expr.startswith(":"):
            return copy.deepcopy(values[expr])
        return copy.deepcopy(item[names.get(expr, expr)])

    def _matches(self, item: Dict[str, Any], expression: str, names: Dict[str, str], values: Dict[str, Any]) -> bool:
        for clause in expression.split(" AND "):
            name, placeholder = (part.strip() for part in clause.split("="))
            if item.get(names.get(name, name)) != values[placeholder]:
                return False
        return True

    # -----------------------------------------------------------------------
    # Client API
    # -----------------------------------------------------------------------

    def get_item(self, TableName: str, Key: Dict[str, Any], **_: Any) -> Dict[str, Any]:
        self._record("get_item", TableName)
        item = self.tables[TableName].get(self._key(TableName, Key))
        return {"Item": copy.deepcopy(item)} if item else {}

    def put_item(self, TableName: str, Item: Dict[str, Any], ConditionExpression: Optional[str] = None, **_: Any):
        self._record("put_item", TableName)
        key = self._key(TableName, Item)
        with self._lock:
            self._check(ConditionExpression, self.tables[TableName].get(key), "PutItem")
            self.tables[TableName][key] = copy.deepcopy(Item)
        return {}

    def scan(
        self,
        TableName: str,
        ExclusiveStartKey: Optional[Dict[str, Any]] = None,
        FilterExpression: Optional[str] = None,
        ExpressionAttributeValues: Optional[Dict[str, Any]] = None,
        ExpressionAttributeNames: Optional[Dict[str, str]] = None,
        **_: Any,
    ) -> Dict[str, Any]:
        self._record("scan", TableName)
        keys = sorted(self.tables[TableName])
        start = keys.index(self._key(TableName, ExclusiveStartKey)) + 1 if ExclusiveStartKey else 0
        page = keys[start:start + self.page_size] if self.page_size else keys[start:]
        items = [copy.deepcopy(self.tables[TableName][k]) for k in page]
        if FilterExpression:
            items = [
                i for i in items
                if self._matches(i, FilterExpression, ExpressionAttributeNames or {}, ExpressionAttributeValues or {})
            ]
        resp: Dict[str, Any] = {"Items": items, "Count": len(items)}
        if self.page_size and start + self.page_size < len(keys):
            resp["LastEvaluatedKey"] = {self.key_names[TableName]: {"S": page[-1]}}
        return resp

    def update_item(
        self,
        TableName: str,
        Key: Dict[str, Any],
        UpdateExpression: str,
        ExpressionAttributeValues: Optional[Dict[str, Any]] = None,
        ExpressionAttributeNames: Optional[Dict[str, str]] = None,
        ConditionExpression: Optional[str] = None,
        ReturnValues: str = "NONE",
        **_: Any,
    ) -> Dict[str, Any]:
        self._record("update_item", TableName)
        if not UpdateExpression.startswith("SET "):
            raise NotImplementedError(f"update not supported by fake: {UpdateExpression}")
        key = self._key(TableName, Key)
        names = ExpressionAttributeNames or {}
        values = ExpressionAttributeValues or {}
        with self._lock:
            existing = self.tables[TableName].get(key)
            self._check(ConditionExpression, existing, "UpdateItem", ExpressionAttributeValues)
            item = copy.deepcopy(existing) if existing else copy.deepcopy(Key)
            for assignment in _split_top_level(UpdateExpression[len("SET "):]):
                target, expr = assignment.split("=", 1)
                target = names.get(target.strip(), target.strip())
                item[target] = self._eval(expr, item, names, values)
            self.tables[TableName][key] = item
        return {"Attributes": copy.deepcopy(item)} if ReturnValues == "ALL_NEW" else {}
