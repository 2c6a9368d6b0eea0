"""Stable public API for building tooling on top of shbctl.

This module is the supported integration surface for third-party callers,
e.g. a flight-simulator bridge that wants the bezel's raw frames. Avoid
importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

from shbctl.core.device_match import IntegerPrompt
from shbctl.core.errors import (
    AdapterNotFoundError,
    CharacteristicNotFoundError,
    ConfigLoadError,
    ConfigValidationError,
    ConnectionFailedError,
    DeviceSelectionError,
    InvalidSelectionError,
    NoConnectablePeripheralsError,
    NoTargetDeviceFoundError,
    ScanFailedError,
    ServiceDiscoveryFailedError,
    SessionError,
    ShbctlError,
    SubscriptionFailedError,
    UnsubscribeFailedError,
    UnsupportedCharacteristicError,
)
from shbctl.core.model import (
    AppConfig,
    CharacteristicDescriptor,
    DiscoveredDevice,
    SelectionDefault,
    ServiceDescriptor,
    SessionState,
    StreamResult,
    Subscription,
    SubscriptionMode,
)
from shbctl.core.service import AdapterLocator, StreamService
from shbctl.core.sink import PayloadSink, format_hex, format_payload

__all__ = [
    "ShbctlError",
    "AdapterNotFoundError",
    "CharacteristicNotFoundError",
    "ConfigLoadError",
    "ConfigValidationError",
    "ConnectionFailedError",
    "DeviceSelectionError",
    "InvalidSelectionError",
    "NoConnectablePeripheralsError",
    "NoTargetDeviceFoundError",
    "ScanFailedError",
    "ServiceDiscoveryFailedError",
    "SessionError",
    "SubscriptionFailedError",
    "UnsubscribeFailedError",
    "UnsupportedCharacteristicError",
    "AppConfig",
    "CharacteristicDescriptor",
    "DiscoveredDevice",
    "SelectionDefault",
    "ServiceDescriptor",
    "SessionState",
    "StreamResult",
    "Subscription",
    "SubscriptionMode",
    "format_hex",
    "format_payload",
    "Client",
]


class Client:
    """Public client for scanning for and streaming from a G1000 bezel.

    ``stream`` blocks until ``stop`` is called from another thread (or until
    a custom ``wait_for_stop`` returns). Every payload is handed to ``sink``
    on a background thread.
    """

    def __init__(
        self,
        sink: PayloadSink,
        *,
        config: AppConfig | None = None,
        config_path: Path | None = None,
        prompt: IntegerPrompt | None = None,
        wait_for_stop: Callable[[], None] | None = None,
        adapter_locator: AdapterLocator | None = None,
    ) -> None:
        self._service = StreamService(
            config=config,
            config_path=config_path,
            adapter_locator=adapter_locator,
            sink=sink,
            prompt=prompt,
            wait_for_stop=wait_for_stop,
        )

    @property
    def config(self) -> AppConfig:
        return self._service.config

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._service.load_warnings

    def list_devices(self) -> list[DiscoveredDevice]:
        return self._service.list_devices()

    def select(self, devices: list[DiscoveredDevice]) -> DiscoveredDevice:
        return self._service.select(devices)

    def stream(self) -> StreamResult:
        return self._service.stream()

    def stop(self) -> None:
        self._service.request_stop()
