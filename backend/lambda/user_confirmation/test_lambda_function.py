"""test_lambda_function.py — Tests for the Cognito PostConfirmation trigger.

Run: python3 -m pytest test_lambda_function.py -v
"""

from __future__ import annotations

import importlib.util
import os
import sys
import unittest
from unittest.mock import patch

_HERE = os.path.dirname(os.path.abspath(__file__))
_LAYER = os.path.join(_HERE, "..", "shared_layer")
sys.path.insert(0, os.path.join(_LAYER, "python"))
sys.path.insert(0, _LAYER)

from botocore.exceptions import ClientError

from fake_dynamodb import FakeDynamoDB
from open311_shared import config
from open311_shared.errors import ErrorKind, Open311Error
from open311_shared.repository import Open311Repository

_spec = importlib.util.spec_from_file_location(
    "user_confirmation_lambda",
    os.path.join(_HERE, "lambda_function.py"),
)
user_confirmation = importlib.util.module_from_spec(_spec)
_spec.loader.exec_module(user_confirmation)


def _make_event(sub="3f1c-aa", trigger="PostConfirmation_ConfirmSignUp"):
    attributes = {"email": "resident@example.org", "email_verified": "true"}
    if sub:
        attributes["sub"] = sub
    return {
        "version": "1",
        "triggerSource": trigger,
        "userPoolId": "us-east-1_example",
        "userName": "resident",
        "request": {"userAttributes": attributes},
        "response": {},
    }


class UserConfirmationTests(unittest.TestCase):
    def setUp(self):
        self.ddb = FakeDynamoDB()
        self.repo = Open311Repository(ddb=self.ddb)
        patcher = patch.object(user_confirmation, "_get_repo", return_value=self.repo)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_creates_user_keyed_by_sub(self):
        event = _make_event()
        result = user_confirmation.lambda_handler(event, None)
        self.assertIs(result, event)
        user = self.repo.get_user("3f1c-aa")
        self.assertEqual(user.submitted_requests, [])
        self.assertEqual(user.watched_requests, [])

    def test_repeat_confirmation_is_success(self):
        user_confirmation.lambda_handler(_make_event(), None)
        event = _make_event()
        self.assertIs(user_confirmation.lambda_handler(event, None), event)
        self.assertEqual(self.ddb.count(config.USERS_TABLE), 1)

    def test_other_trigger_sources_ignored(self):
        user_confirmation.lambda_handler(_make_event(trigger="PreSignUp_SignUp"), None)
        self.assertEqual(self.ddb.count(config.USERS_TABLE), 0)

    def test_missing_sub_raises(self):
        with self.assertRaises(Open311Error) as ctx:
            user_confirmation.lambda_handler(_make_event(sub=""), None)
        self.assertIs(ctx.exception.kind, ErrorKind.VALIDATION)

    def test_backend_failure_propagates(self):
        self.ddb.fail("put_item", ClientError({"Error": {"Code": "InternalServerError", "Message": "x"}}, "PutItem"))
        with self.assertRaises(Open311Error) as ctx:
            user_confirmation.lambda_handler(_make_event(), None)
        self.assertIs(ctx.exception.kind, ErrorKind.BACKEND)


if __name__ == "__main__":
    unittest.main()
