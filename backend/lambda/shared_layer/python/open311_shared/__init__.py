"""open311_shared — Shared code for the Open311 Lambda functions.

Provides:
    - DynamoDB / S3 client singletons
    - DynamoDB serialization/deserialization and timestamps
    - ULID identifier generation
    - Entity models and the entity repository
    - Request submission workflow
    - Route dispatch and HTTP response helpers

Shipped as a Lambda layer (python/ is mounted at /opt/python).
"""

__version__ = "1.0.0"
