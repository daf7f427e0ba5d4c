"""
SQS-backed job queue.

Delivery is at-least-once with a visibility timeout (the "lease"). There is no
negative acknowledgement: a message that is not acknowledged before its lease
expires becomes visible again, and after the queue's maxReceiveCount the redrive
policy moves it to the dead-letter queue.
"""
import json
import logging
from dataclasses import dataclass

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import PipelineConfig
from .errors import UpstreamUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobMessage:
    message_id: str
    receipt_handle: str
    body: str
    receive_count: int = 1

    def payload(self) -> dict:
        return json.loads(self.body)


def get_sqs_client(config: PipelineConfig):
    session = boto3.session.Session(
        aws_access_key_id=config.access_key,
        aws_secret_access_key=config.secret_key,
        region_name=config.queue_region,
    )
    return session.client("sqs", endpoint_url=config.queue_endpoint_url)


class JobQueue:
    def __init__(self, config: PipelineConfig, client=None):
        self.config = config
        self.queue_url = config.queue_url
        self.client = client or get_sqs_client(config)

    def _require_queue(self):
        if not self.queue_url:
            raise UpstreamUnavailable("Job queue is not configured (JOBS_QUEUE_URL)")

    def enqueue(self, payload: dict, attributes: dict | None = None) -> str:
        self._require_queue()
        message_attributes = {
            name: {"DataType": "String", "StringValue": str(value)}
            for name, value in (attributes or {}).items()
        }
        try:
            resp = self.client.send_message(
                QueueUrl=self.queue_url,
                MessageBody=json.dumps(payload),
                MessageAttributes=message_attributes,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("Failed to enqueue job %s: %s", payload, e)
            raise UpstreamUnavailable("Job queue unavailable")
        return resp["MessageId"]

    def receive(self, max_messages: int = 1, wait_seconds: int = 20) -> list[JobMessage]:
        """Long-poll for up to max_messages; each received message is leased for lease_seconds."""
        self._require_queue()
        try:
            resp = self.client.receive_message(
                QueueUrl=self.queue_url,
                MaxNumberOfMessages=max(1, min(10, max_messages)),
                WaitTimeSeconds=wait_seconds,
                VisibilityTimeout=self.config.lease_seconds,
                AttributeNames=["ApproximateReceiveCount"],
                MessageAttributeNames=["All"],
            )
        except (ClientError, BotoCoreError) as e:
            raise UpstreamUnavailable(f"Job queue receive failed: {e}")
        return [
            JobMessage(
                message_id=m["MessageId"],
                receipt_handle=m["ReceiptHandle"],
                body=m["Body"],
                receive_count=int(m.get("Attributes", {}).get("ApproximateReceiveCount", "1")),
            )
            for m in resp.get("Messages", [])
        ]

    def extend_lease(self, message: JobMessage, seconds: int) -> None:
        try:
            self.client.change_message_visibility(
                QueueUrl=self.queue_url,
                ReceiptHandle=message.receipt_handle,
                VisibilityTimeout=seconds,
            )
        except (ClientError, BotoCoreError) as e:
            raise UpstreamUnavailable(f"Lease extension failed: {e}")

    def acknowledge(self, message: JobMessage) -> None:
        try:
            self.client.delete_message(QueueUrl=self.queue_url, ReceiptHandle=message.receipt_handle)
        except (ClientError, BotoCoreError) as e:
            raise UpstreamUnavailable(f"Acknowledge failed: {e}")
