"""In-memory tracking table and object storage for local development and tests."""

from __future__ import annotations

from dataclasses import replace
import threading

from sermon_audio.adapters.aws.base import ObjectStorage, TrackingRow, TrackingTable, accepts_overwrite
from sermon_audio.errors import ConflictError, StoreError


class InMemoryTrackingTable(TrackingTable):
    """Applies the same overwrite guard as the DynamoDB condition expression.

    ``put_failure_message`` makes the next puts fail with StoreError, the
    way a throttled or unreachable table would.
    """

    def __init__(self) -> None:
        self.rows: dict[str, TrackingRow] = {}
        self.put_count = 0
        self.put_failure_message: str | None = None
        self._lock = threading.Lock()

    def conditional_put(self, row: TrackingRow, *, now: int, reclaim_window: int) -> None:
        with self._lock:
            if self.put_failure_message is not None:
                raise StoreError(self.put_failure_message)
            if not accepts_overwrite(self.rows.get(row.input_key), now=now, reclaim_window=reclaim_window):
                raise ConflictError("The job cannot be queued because it conflicts with an existing job.")
            self.rows[row.input_key] = replace(row, metadata=dict(row.metadata))
            self.put_count += 1

    def get(self, input_key: str) -> TrackingRow | None:
        with self._lock:
            row = self.rows.get(input_key)
            return replace(row, metadata=dict(row.metadata)) if row is not None else None


class InMemoryObjectStorage(ObjectStorage):
    def __init__(self, objects: dict[tuple[str, str], bytes] | None = None) -> None:
        self.objects = dict(objects or {})
        self.size_probe_count = 0

    def size_of(self, bucket: str, key: str) -> int:
        self.size_probe_count += 1
        return len(self._body(bucket, key))

    def read_text(self, bucket: str, key: str) -> str:
        return self._body(bucket, key).decode("utf-8")

    def _body(self, bucket: str, key: str) -> bytes:
        try:
            return self.objects[(bucket, key)]
        except KeyError as exc:
            raise StoreError("Object not found.", details={"bucket": bucket}) from exc
