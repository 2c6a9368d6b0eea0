"""Payload rendering and delivery.

The transport callback must return quickly and must never contend with the
main thread, so it only enqueues. ``PayloadPump`` drains the queue on its own
thread and hands each frame to the sink.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable

PayloadSink = Callable[[bytes], None]
LOGGER = logging.getLogger(__name__)

_STOP = object()


def format_hex(data: bytes) -> str:
    return " ".join(f"{byte:02X}" for byte in data)


def format_payload(data: bytes) -> str:
    return f"Indication ({len(data)} bytes): {format_hex(data)}"


class HexPayloadSink:
    """Default sink: writes one hex line per received frame."""

    def __init__(self, write: Callable[[str], None] = print) -> None:
        self._write = write

    def __call__(self, data: bytes) -> None:
        self._write(format_payload(data))


class PayloadPump:
    def __init__(self, sink: PayloadSink) -> None:
        self._sink = sink
        self._queue: queue.Queue[object] = queue.Queue()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._thread = threading.Thread(target=self._drain, name="shbctl-payloads", daemon=True)
        self._thread.start()

    def submit(self, data: bytes) -> None:
        self._queue.put(bytes(data))

    def stop(self, timeout_s: float = 2.0) -> None:
        """Deliver everything already queued, then stop the consumer thread."""
        if self._thread is None:
            return
        self._queue.put(_STOP)
        self._thread.join(timeout=timeout_s)
        self._thread = None

    def _drain(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            try:
                self._sink(item)  # type: ignore[arg-type]
            except Exception:
                LOGGER.exception("Payload sink failed; dropping frame")
