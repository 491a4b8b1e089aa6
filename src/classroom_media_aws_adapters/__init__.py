"""AWS implementations of the classroom media storage, record and queue interfaces."""

from .dynamodb_stores import DynamoDBUploadSessionStore, DynamoDBVideoStore, DynamoDBVideoViewStore
from .s3_storage import S3ObjectStorage
from .sqs_job_queue import SQSJobQueue

__all__ = [
    "DynamoDBUploadSessionStore",
    "DynamoDBVideoStore",
    "DynamoDBVideoViewStore",
    "S3ObjectStorage",
    "SQSJobQueue",
]
