"""test_lambda_function.py — Mock-based tests for images_api presigned URLs.

The S3 client is mocked; no AWS credentials are needed.

Run: python3 -m pytest test_lambda_function.py -v
"""

from __future__ import annotations

import importlib.util
import json
import os
import sys
import unittest
from unittest.mock import MagicMock, patch

_HERE = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, os.path.join(_HERE, "..", "shared_layer", "python"))

from botocore.exceptions import NoCredentialsError

_spec = importlib.util.spec_from_file_location(
    "images_api_lambda",
    os.path.join(_HERE, "lambda_function.py"),
)
images_api = importlib.util.module_from_spec(_spec)
_spec.loader.exec_module(images_api)


def _make_event(path):
    return {
        "requestContext": {"http": {"method": "GET", "path": path}},
        "headers": {},
        "rawPath": path,
    }


class PresignTests(unittest.TestCase):
    def setUp(self):
        self.s3 = MagicMock()
        self.s3.generate_presigned_url.return_value = "https://photos.s3.amazonaws.com/pothole.jpg?X-Amz-Signature=abc"
        patcher = patch.object(images_api, "_get_s3", return_value=self.s3)
        patcher.start()
        self.addCleanup(patcher.stop)

    @patch.dict(os.environ, {"IMAGE_BUCKET": "photos"})
    def test_fetch_url(self):
        resp = images_api.lambda_handler(_make_event("/images/fetch/pothole.jpg"), None)
        self.assertEqual(resp["statusCode"], 200)
        self.assertIn("X-Amz-Signature", json.loads(resp["body"])["url"])
        self.s3.generate_presigned_url.assert_called_once_with(
            ClientMethod="get_object",
            Params={"Bucket": "photos", "Key": "pothole.jpg"},
            ExpiresIn=600,
        )

    @patch.dict(os.environ, {"IMAGE_BUCKET": "photos"})
    def test_store_url(self):
        resp = images_api.lambda_handler(_make_event("/images/store/pothole.jpg"), None)
        self.assertEqual(resp["statusCode"], 200)
        self.assertEqual(self.s3.generate_presigned_url.call_args.kwargs["ClientMethod"], "put_object")

    @patch.dict(os.environ, {"IMAGE_BUCKET": "other-photos"})
    def test_bucket_read_per_invocation(self):
        images_api.lambda_handler(_make_event("/images/fetch/a.png"), None)
        self.assertEqual(self.s3.generate_presigned_url.call_args.kwargs["Params"]["Bucket"], "other-photos")

    def test_missing_bucket_is_500(self):
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("IMAGE_BUCKET", None)
            resp = images_api.lambda_handler(_make_event("/images/fetch/a.png"), None)
        self.assertEqual(resp["statusCode"], 500)
        self.s3.generate_presigned_url.assert_not_called()

    @patch.dict(os.environ, {"IMAGE_BUCKET": "photos"})
    def test_parent_segment_rejected(self):
        resp = images_api.lambda_handler(_make_event("/images/fetch/..%2Fsecret"), None)
        self.assertEqual(resp["statusCode"], 400)

    @patch.dict(os.environ, {"IMAGE_BUCKET": "photos"})
    def test_signing_failure_is_500(self):
        self.s3.generate_presigned_url.side_effect = NoCredentialsError()
        resp = images_api.lambda_handler(_make_event("/images/store/a.png"), None)
        self.assertEqual(resp["statusCode"], 500)
        self.assertIn("error retrieving presigned S3 URL", resp["body"])


if __name__ == "__main__":
    unittest.main()
