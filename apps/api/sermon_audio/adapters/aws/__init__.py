"""AWS adapters."""

from .base import RECLAIM_WINDOW_SECONDS, ObjectStorage, TrackingRow, TrackingTable
from .clients import AwsClientFactory
from .credentials import CredentialProvider
from .dynamodb import DynamoDbTrackingTable
from .invoker import ApiInvoker
from .memory import InMemoryObjectStorage, InMemoryTrackingTable
from .s3 import S3ObjectStorage

__all__ = [
    "ApiInvoker",
    "AwsClientFactory",
    "CredentialProvider",
    "DynamoDbTrackingTable",
    "InMemoryObjectStorage",
    "InMemoryTrackingTable",
    "ObjectStorage",
    "RECLAIM_WINDOW_SECONDS",
    "S3ObjectStorage",
    "TrackingRow",
    "TrackingTable",
]
