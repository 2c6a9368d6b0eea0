"""Transport interfaces."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Protocol

from shbctl.core.model import DiscoveredDevice, ServiceDescriptor, SubscriptionMode

PayloadCallback = Callable[[bytes], None]


class Peripheral(Protocol):
    @property
    def address(self) -> str:
        """Address of the remote device."""

    def connect(self) -> None:
        """Open the GATT connection."""

    def disconnect(self) -> None:
        """Close the GATT connection."""

    def services(self) -> Sequence[ServiceDescriptor]:
        """Return a fresh snapshot of the remote GATT services."""

    def subscribe(
        self,
        service_uuid: str,
        characteristic_uuid: str,
        mode: SubscriptionMode,
        callback: PayloadCallback,
    ) -> None:
        """Enable indications or notifications, delivering payloads to callback."""

    def unsubscribe(self, service_uuid: str, characteristic_uuid: str) -> None:
        """Disable indications/notifications on a characteristic."""


class Adapter(Protocol):
    @property
    def name(self) -> str:
        """Human-readable adapter name."""

    def scan_for(
        self,
        timeout_s: float,
        *,
        on_start: Callable[[], None],
        on_found: Callable[[DiscoveredDevice], None],
        on_stop: Callable[[], None],
    ) -> None:
        """Scan for timeout_s seconds, reporting every advertisement to on_found."""

    def peripheral(self, device: DiscoveredDevice) -> Peripheral:
        """Return a connectable handle for a scanned device."""

    def close(self) -> None:
        """Release resources held by the adapter."""
