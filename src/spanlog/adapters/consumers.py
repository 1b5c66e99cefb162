"""Downstream log consumers."""

from __future__ import annotations

import json
import threading
from typing import TextIO

from spanlog.codec.otlp_json import encode_log_batch
from spanlog.contracts.telemetry import LogBatch


class CollectingLogConsumer:
    """Keeps every received batch in memory.

    Useful when embedding the connector or in tests. Thread-safe.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._batches: list[LogBatch] = []

    def consume(self, batch: LogBatch) -> None:
        with self._lock:
            self._batches.append(batch)

    @property
    def batches(self) -> list[LogBatch]:
        with self._lock:
            return list(self._batches)

    def log_record_count(self) -> int:
        return sum(batch.log_record_count() for batch in self.batches)

    def clear(self) -> None:
        with self._lock:
            self._batches.clear()


class StreamLogConsumer:
    """Writes each batch to a text stream as one line of OTLP/JSON.

    Write errors propagate to the transform caller.
    """

    def __init__(self, stream: TextIO, *, flush: bool = True) -> None:
        self._stream = stream
        self._flush = flush
        self._lock = threading.Lock()

    def consume(self, batch: LogBatch) -> None:
        line = json.dumps(encode_log_batch(batch), separators=(",", ":"), ensure_ascii=False)
        with self._lock:
            self._stream.write(line + "\n")
            if self._flush:
                self._stream.flush()
