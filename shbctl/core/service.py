"""Service layer used by CLI and API frontends."""

from __future__ import annotations

import logging
import shutil
import sys
import threading
from collections.abc import Callable
from pathlib import Path

from shbctl.core.config_loader import load_config
from shbctl.core.device_match import IntegerPrompt, select_device
from shbctl.core.errors import NoConnectablePeripheralsError
from shbctl.core.model import AppConfig, DiscoveredDevice, StreamResult
from shbctl.core.scanner import scan
from shbctl.core.session import Session
from shbctl.core.sink import HexPayloadSink, PayloadSink
from shbctl.transports.base import Adapter
from shbctl.transports.ble_gatt import locate_adapter

AdapterLocator = Callable[..., Adapter]
LOGGER = logging.getLogger(__name__)


def _accept_default(_: str, default: int) -> int | None:
    return default


class StreamService:
    def __init__(
        self,
        *,
        config: AppConfig | None = None,
        config_path: Path | None = None,
        adapter_locator: AdapterLocator | None = None,
        sink: PayloadSink | None = None,
        prompt: IntegerPrompt | None = None,
        wait_for_stop: Callable[[], None] | None = None,
        notify: Callable[[str], None] = LOGGER.info,
    ) -> None:
        if config is None:
            loaded = load_config(config_path)
            config = loaded.config
            self.load_warnings = loaded.warnings
        else:
            self.load_warnings = ()
        self.config = config
        self.runtime_warnings = _runtime_warnings()
        self._stop_requested = threading.Event()
        self._locate = adapter_locator or locate_adapter
        self._sink = sink or HexPayloadSink()
        self._prompt = prompt or _accept_default
        self._wait_for_stop = wait_for_stop or self._wait_for_stop_request
        self._notify = notify

    def request_stop(self) -> None:
        """Release a ``stream`` call blocked on the default stop signal."""
        self._stop_requested.set()

    def _wait_for_stop_request(self) -> None:
        # Each request releases exactly one stream.
        self._stop_requested.wait()
        self._stop_requested.clear()

    def locate_adapter(self) -> Adapter:
        return self._locate(connect_timeout_s=self.config.connect_timeout_s)

    def list_devices(self, adapter: Adapter | None = None) -> list[DiscoveredDevice]:
        """Scan and return every connectable peripheral, targets or not."""
        owned = adapter is None
        active = self.locate_adapter() if adapter is None else adapter
        try:
            return scan(
                active,
                self.config.scan_timeout_s,
                on_start=lambda: self._notify("Scan started."),
                on_found=lambda d: self._notify(f"Found device: {d.identifier} [{d.address}]"),
                on_stop=lambda: self._notify("Scan stopped."),
            )
        finally:
            if owned:
                active.close()

    def select(self, devices: list[DiscoveredDevice]) -> DiscoveredDevice:
        return select_device(
            devices,
            self.config.target_identifier,
            prompt=self._prompt,
            default_policy=self.config.selection_default,
            notify=self._notify,
        )

    def stream(self) -> StreamResult:
        """Run adapter lookup, scan, selection and the peripheral session end to end."""
        adapter = self.locate_adapter()
        try:
            devices = self.list_devices(adapter)
            if not devices:
                raise NoConnectablePeripheralsError("No connectable peripherals discovered.")

            device = self.select(devices)
            self._notify(f"Connecting to {device.identifier} [{device.address}]")
            session = Session(
                adapter.peripheral(device),
                self.config.characteristic_uuid,
                sink=self._sink,
                diagnostics=self.config.diagnostics,
                notify=self._notify,
            )
            subscription = session.run(self._wait_for_stop)
            self._notify("Disconnected. Exiting.")
            return StreamResult(device=device, subscription=subscription)
        finally:
            adapter.close()


def _runtime_warnings() -> tuple[str, ...]:
    warnings: list[str] = []
    if sys.platform.startswith("linux") and shutil.which("bluetoothctl") is None:
        warnings.append(
            "bluetoothctl not found; adapter presence is only checked once scanning starts."
        )
    return tuple(warnings)
