"""DynamoDB-backed job tracking table."""

from __future__ import annotations

import logging
import math
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from sermon_audio.adapters.aws.base import TrackingRow, TrackingTable
from sermon_audio.adapters.aws.clients import AwsClientFactory
from sermon_audio.core.config import Settings
from sermon_audio.core.logging_safety import safe_log_identifier
from sermon_audio.errors import ConflictError, MalformedDataError, StoreError
from sermon_audio.schemas.job import RemoteJobStatus

logger = logging.getLogger(__name__)

INPUT_KEY_ATTRIBUTE = "input-sub-key"
OUTPUT_KEY_ATTRIBUTE = "output-sub-key"
STATUS_ATTRIBUTE = "job-status"
QUEUE_TIME_ATTRIBUTE = "queue-time"
DURATION_ATTRIBUTE = "audio-duration"

_CONDITION_EXPRESSION = (
    "NOT attribute_exists(#isk) OR #js = :completed OR #js = :notStarted OR #js = :failed"
    " OR (#js = :inProgress AND #qt < :thresholdTime)"
)
_PROJECTED_ATTRIBUTES = {
    "#isk": INPUT_KEY_ATTRIBUTE,
    "#js": STATUS_ATTRIBUTE,
    "#osk": OUTPUT_KEY_ATTRIBUTE,
    "#qt": QUEUE_TIME_ATTRIBUTE,
    "#d": DURATION_ATTRIBUTE,
    "#sn": "sermon-name",
    "#ss": "sermon-speaker",
    "#sy": "sermon-year",
    "#sc": "sermon-congregation",
    "#odf": "output-display-filename",
}
_METADATA_ATTRIBUTES = (
    "sermon-name",
    "sermon-speaker",
    "sermon-year",
    "sermon-congregation",
    "output-display-filename",
)


class DynamoDbTrackingTable(TrackingTable):
    def __init__(self, *, settings: Settings, client_factory: AwsClientFactory) -> None:
        self._settings = settings
        self._client_factory = client_factory

    def conditional_put(self, row: TrackingRow, *, now: int, reclaim_window: int) -> None:
        table_name = self._settings.require("jobs_table_name")
        client = self._client()
        item: dict[str, Any] = {
            INPUT_KEY_ATTRIBUTE: {"S": row.input_key},
            OUTPUT_KEY_ATTRIBUTE: {"S": row.output_sub_key},
            QUEUE_TIME_ATTRIBUTE: {"N": str(row.queue_time)},
            STATUS_ATTRIBUTE: {"N": str(int(row.status))},
        }
        for name, value in row.metadata.items():
            item[name] = {"S": value}

        safe_input_key = safe_log_identifier(row.input_key, prefix="ikey")
        try:
            client.put_item(
                TableName=table_name,
                Item=item,
                ConditionExpression=_CONDITION_EXPRESSION,
                ExpressionAttributeNames={
                    "#isk": INPUT_KEY_ATTRIBUTE,
                    "#js": STATUS_ATTRIBUTE,
                    "#qt": QUEUE_TIME_ATTRIBUTE,
                },
                ExpressionAttributeValues={
                    ":completed": {"N": str(int(RemoteJobStatus.COMPLETED))},
                    ":notStarted": {"N": str(int(RemoteJobStatus.NOT_STARTED))},
                    ":failed": {"N": str(int(RemoteJobStatus.FAILED))},
                    ":inProgress": {"N": str(int(RemoteJobStatus.IN_PROGRESS))},
                    ":thresholdTime": {"N": str(now - reclaim_window)},
                },
            )
        except ClientError as exc:
            error_code = exc.response.get("Error", {}).get("Code", "")
            if error_code == "ConditionalCheckFailedException":
                logger.info("tracking.put_conflict input_key=%s", safe_input_key)
                raise ConflictError(
                    "The job cannot be queued because it conflicts with an existing job."
                ) from exc
            logger.warning("tracking.put_failed input_key=%s error_code=%s", safe_input_key, error_code)
            raise StoreError("Failed to write the job tracking row.", details={"aws_error_code": error_code}) from exc
        except BotoCoreError as exc:
            logger.warning("tracking.put_failed input_key=%s error=%s", safe_input_key, type(exc).__name__)
            raise StoreError("Failed to write the job tracking row.") from exc

    def get(self, input_key: str) -> TrackingRow | None:
        table_name = self._settings.require("jobs_table_name")
        client = self._client()
        try:
            response = client.get_item(
                TableName=table_name,
                Key={INPUT_KEY_ATTRIBUTE: {"S": input_key}},
                ProjectionExpression=", ".join(_PROJECTED_ATTRIBUTES),
                ExpressionAttributeNames=_PROJECTED_ATTRIBUTES,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.warning(
                "tracking.get_failed input_key=%s error=%s",
                safe_log_identifier(input_key, prefix="ikey"),
                type(exc).__name__,
            )
            raise StoreError("Failed to read the job tracking row.") from exc

        item = response.get("Item")
        if item is None:
            return None
        if not isinstance(item, dict):
            raise MalformedDataError('Jobs table response "Item" is of the wrong type.')
        return parse_tracking_item(input_key, item)

    def _client(self) -> Any:
        return self._client_factory.client("dynamodb", self._settings.require("jobs_db_aws_region"))


def parse_tracking_item(input_key: str, item: dict[str, Any]) -> TrackingRow:
    """Convert a low-level DynamoDB item into a TrackingRow, validating as it goes."""
    raw_status = _attribute(item, STATUS_ATTRIBUTE, "N")
    if raw_status is None:
        raise MalformedDataError(f'Jobs table item has no valid "{STATUS_ATTRIBUTE}" attribute.')
    try:
        status = RemoteJobStatus(int(raw_status))
    except ValueError as exc:
        raise MalformedDataError(f'Jobs table item has an unknown "{STATUS_ATTRIBUTE}" value.') from exc

    output_sub_key = _attribute(item, OUTPUT_KEY_ATTRIBUTE, "S")
    if not output_sub_key:
        raise MalformedDataError(f'Jobs table item has no valid "{OUTPUT_KEY_ATTRIBUTE}" attribute.')

    queue_time = 0
    raw_queue_time = _attribute(item, QUEUE_TIME_ATTRIBUTE, "N")
    if raw_queue_time is not None:
        try:
            queue_time = int(float(raw_queue_time))
        except ValueError as exc:
            raise MalformedDataError(f'Jobs table item has an invalid "{QUEUE_TIME_ATTRIBUTE}" value.') from exc

    duration = None
    raw_duration = _attribute(item, DURATION_ATTRIBUTE, "N")
    if raw_duration is not None:
        try:
            duration = float(raw_duration)
        except ValueError as exc:
            raise MalformedDataError(f'Jobs table item has an invalid "{DURATION_ATTRIBUTE}" value.') from exc
        if not math.isfinite(duration) or duration < 0:
            raise MalformedDataError("The audio duration was not finite or was negative.")

    metadata = {}
    for name in _METADATA_ATTRIBUTES:
        value = _attribute(item, name, "S")
        if value is not None:
            metadata[name] = value

    return TrackingRow(
        input_key=input_key,
        output_sub_key=output_sub_key,
        status=status,
        queue_time=queue_time,
        metadata=metadata,
        audio_duration=duration,
    )


def _attribute(item: dict[str, Any], name: str, type_key: str) -> str | None:
    value = item.get(name)
    if not isinstance(value, dict):
        return None
    raw = value.get(type_key)
    return str(raw) if raw is not None else None


__all__ = ["DynamoDbTrackingTable", "parse_tracking_item"]
