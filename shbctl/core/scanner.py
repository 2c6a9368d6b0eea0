"""Time-bounded BLE discovery with address deduplication."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from shbctl.core.model import DiscoveredDevice
from shbctl.transports.base import Adapter

LOGGER = logging.getLogger(__name__)


def _ignore(*_: object) -> None:
    return None


class ScanCollector:
    """Accumulates scan-found events, keeping the first sighting per address.

    ``add`` runs on the transport's callback thread; ``devices`` may be called
    from any thread, including while the scan is still running.
    """

    def __init__(self, on_found: Callable[[DiscoveredDevice], None] = _ignore) -> None:
        self._lock = threading.Lock()
        self._seen: set[str] = set()
        self._devices: list[DiscoveredDevice] = []
        self._on_found = on_found

    def add(self, device: DiscoveredDevice) -> bool:
        if not device.address:
            return False
        with self._lock:
            if device.address in self._seen:
                return False
            # The first sighting decides, so a non-connectable one blocks the address.
            self._seen.add(device.address)
            if not device.connectable:
                return False
            self._devices.append(device)
        LOGGER.debug("Found device %s [%s]", device.identifier, device.address)
        self._on_found(device)
        return True

    def devices(self) -> list[DiscoveredDevice]:
        with self._lock:
            return list(self._devices)


def scan(
    adapter: Adapter,
    timeout_s: float,
    *,
    on_start: Callable[[], None] = _ignore,
    on_found: Callable[[DiscoveredDevice], None] = _ignore,
    on_stop: Callable[[], None] = _ignore,
) -> list[DiscoveredDevice]:
    """Scan for ``timeout_s`` seconds and return connectable devices in discovery order.

    An empty list is a valid outcome; callers decide whether that is fatal.
    """
    collector = ScanCollector(on_found)

    def _started() -> None:
        LOGGER.info("Scan started on adapter %s", adapter.name)
        on_start()

    def _stopped() -> None:
        LOGGER.info("Scan stopped")
        on_stop()

    adapter.scan_for(timeout_s, on_start=_started, on_found=collector.add, on_stop=_stopped)
    devices = collector.devices()
    LOGGER.info("Scan found %d connectable device(s)", len(devices))
    return devices
