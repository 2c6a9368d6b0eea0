"""BLE GATT transport implementation backed by bleak.

bleak is asyncio-only while the session state machine is synchronous, so
every adapter owns one event loop running on a daemon thread. Scan and
payload callbacks are delivered on that thread, never on the caller's.
"""

from __future__ import annotations

import asyncio
import logging
import re
import subprocess
import sys
import threading
from collections.abc import Callable, Coroutine, Sequence
from typing import Any, TypeVar

from shbctl.core.errors import (
    AdapterNotFoundError,
    ConnectionFailedError,
    ScanFailedError,
    ServiceDiscoveryFailedError,
    SubscriptionFailedError,
    UnsubscribeFailedError,
)
from shbctl.core.model import (
    CharacteristicDescriptor,
    DiscoveredDevice,
    ServiceDescriptor,
    SubscriptionMode,
)
from shbctl.transports.base import PayloadCallback

_CONTROLLER_LINE_RE = re.compile(
    r"^Controller\s+([0-9A-F]{2}(?::[0-9A-F]{2}){5})\s+(.*?)(?:\s*\[default\])?$",
    re.IGNORECASE,
)
# WinRT BluetoothLEAdvertisementType: ConnectableUndirected, ConnectableDirected
_WINRT_CONNECTABLE_TYPES = (0, 1)
LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class _EventLoopThread:
    def __init__(self) -> None:
        self._loop = asyncio.new_event_loop()
        self._ready = threading.Event()
        self._thread = threading.Thread(target=self._run, name="shbctl-ble-loop", daemon=True)
        self._thread.start()
        self._ready.wait()

    def _run(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.call_soon(self._ready.set)
        self._loop.run_forever()

    def run(self, coro: Coroutine[Any, Any, T]) -> T:
        return asyncio.run_coroutine_threadsafe(coro, self._loop).result()

    def close(self) -> None:
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=2.0)
        if not self._thread.is_alive():
            self._loop.close()


def _is_connectable(advertisement: Any) -> bool:
    for item in getattr(advertisement, "platform_data", None) or ():
        # CoreBluetooth advertisement dictionary
        if isinstance(item, dict) and "kCBAdvDataIsConnectable" in item:
            return bool(item["kCBAdvDataIsConnectable"])
        # WinRT raw advertisement event
        raw_adv = getattr(item, "adv", None)
        adv_type = getattr(raw_adv, "advertisement_type", None)
        if adv_type is not None:
            return int(adv_type) in _WINRT_CONNECTABLE_TYPES
    # BlueZ does not expose the flag; it only lists devices it could connect to.
    return True


def _characteristic_properties(properties: Sequence[str]) -> tuple[bool, bool]:
    lowered = {p.lower() for p in properties}
    return "notify" in lowered, "indicate" in lowered


class BleakPeripheral:
    def __init__(
        self,
        device: DiscoveredDevice,
        runner: _EventLoopThread,
        *,
        connect_timeout_s: float = 10.0,
    ) -> None:
        self._device = device
        self._runner = runner
        self._connect_timeout_s = connect_timeout_s
        self._client: Any = None

    @property
    def address(self) -> str:
        return self._device.address

    def connect(self) -> None:
        from bleak import BleakClient

        target = self._device.handle if self._device.handle is not None else self._device.address
        client = BleakClient(target, timeout=self._connect_timeout_s)
        try:
            self._runner.run(client.connect())
        except Exception as exc:
            raise ConnectionFailedError(
                f"BLE connect failed for {self._device.address}: {exc}"
            ) from exc
        self._client = client

    def disconnect(self) -> None:
        if self._client is None:
            return
        client, self._client = self._client, None
        try:
            self._runner.run(client.disconnect())
        except Exception as exc:
            raise ConnectionFailedError(
                f"BLE disconnect failed for {self._device.address}: {exc}"
            ) from exc

    def services(self) -> list[ServiceDescriptor]:
        client = self._require_client(ServiceDiscoveryFailedError)
        try:
            collection = client.services
            descriptors: list[ServiceDescriptor] = []
            for service in collection:
                characteristics = []
                for characteristic in service.characteristics:
                    can_notify, can_indicate = _characteristic_properties(characteristic.properties)
                    characteristics.append(
                        CharacteristicDescriptor(
                            uuid=str(characteristic.uuid),
                            can_notify=can_notify,
                            can_indicate=can_indicate,
                        )
                    )
                descriptors.append(
                    ServiceDescriptor(uuid=str(service.uuid), characteristics=tuple(characteristics))
                )
        except Exception as exc:
            raise ServiceDiscoveryFailedError(f"GATT service discovery failed: {exc}") from exc
        return descriptors

    def subscribe(
        self,
        service_uuid: str,
        characteristic_uuid: str,
        mode: SubscriptionMode,
        callback: PayloadCallback,
    ) -> None:
        client = self._require_client(SubscriptionFailedError)

        def _handler(_: Any, data: bytearray) -> None:
            callback(bytes(data))

        kwargs: dict[str, Any] = {}
        if mode is SubscriptionMode.INDICATE and sys.platform == "win32":
            # BlueZ and CoreBluetooth pick indicate on their own when notify is absent.
            kwargs["force_indicate"] = True

        try:
            characteristic = self._resolve(client, service_uuid, characteristic_uuid)
            self._runner.run(client.start_notify(characteristic, _handler, **kwargs))
        except Exception as exc:
            raise SubscriptionFailedError(
                f"Enabling {mode.value} on {characteristic_uuid} failed: {exc}"
            ) from exc

    def unsubscribe(self, service_uuid: str, characteristic_uuid: str) -> None:
        client = self._require_client(UnsubscribeFailedError)
        try:
            characteristic = self._resolve(client, service_uuid, characteristic_uuid)
            self._runner.run(client.stop_notify(characteristic))
        except Exception as exc:
            raise UnsubscribeFailedError(
                f"Disabling updates on {characteristic_uuid} failed: {exc}"
            ) from exc

    def _require_client(self, error: type[Exception]) -> Any:
        if self._client is None:
            raise error(f"Not connected to {self._device.address}")
        return self._client

    @staticmethod
    def _resolve(client: Any, service_uuid: str, characteristic_uuid: str) -> Any:
        service = client.services.get_service(service_uuid)
        if service is None:
            raise LookupError(f"service {service_uuid} not present")
        characteristic = service.get_characteristic(characteristic_uuid)
        if characteristic is None:
            raise LookupError(f"characteristic {characteristic_uuid} not present in {service_uuid}")
        return characteristic


class BleakAdapter:
    def __init__(
        self,
        name: str = "default",
        address: str | None = None,
        *,
        connect_timeout_s: float = 10.0,
    ) -> None:
        self._name = name
        self.address = address
        self.connect_timeout_s = connect_timeout_s
        self._runner: _EventLoopThread | None = None

    @property
    def name(self) -> str:
        return self._name

    def _loop(self) -> _EventLoopThread:
        if self._runner is None:
            self._runner = _EventLoopThread()
        return self._runner

    def scan_for(
        self,
        timeout_s: float,
        *,
        on_start: Callable[[], None],
        on_found: Callable[[DiscoveredDevice], None],
        on_stop: Callable[[], None],
    ) -> None:
        from bleak import BleakScanner
        from bleak.exc import BleakBluetoothNotAvailableError

        # Unnamed sightings wait for a scan response carrying the name; any
        # still unnamed when the scan ends are reported then.
        unnamed: dict[str, DiscoveredDevice] = {}

        def _detection_callback(device: Any, advertisement: Any) -> None:
            found = DiscoveredDevice(
                identifier=advertisement.local_name or device.name or "",
                address=device.address or "",
                connectable=_is_connectable(advertisement),
                handle=device,
            )
            if found.identifier or not found.address:
                unnamed.pop(found.address, None)
                on_found(found)
            else:
                unnamed.setdefault(found.address, found)

        async def _run() -> None:
            scanner = BleakScanner(detection_callback=_detection_callback)
            await scanner.start()
            on_start()
            try:
                await asyncio.sleep(timeout_s)
            finally:
                await scanner.stop()
                for found in unnamed.values():
                    on_found(found)
                on_stop()

        try:
            self._loop().run(_run())
        except BleakBluetoothNotAvailableError as exc:
            raise AdapterNotFoundError(f"Bluetooth adapter '{self._name}' is not available: {exc}") from exc
        except Exception as exc:
            raise ScanFailedError(f"BLE scan failed: {exc}") from exc

    def peripheral(self, device: DiscoveredDevice) -> BleakPeripheral:
        return BleakPeripheral(device, self._loop(), connect_timeout_s=self.connect_timeout_s)

    def close(self) -> None:
        if self._runner is not None:
            self._runner.close()
            self._runner = None


def locate_adapter(*, connect_timeout_s: float = 10.0) -> BleakAdapter:
    """Return the first Bluetooth adapter the host reports.

    Linux hosts are queried through ``bluetoothctl list``. Where that tool is
    missing the OS default adapter is assumed and its absence surfaces when
    the scan starts.
    """
    if not sys.platform.startswith("linux"):
        return BleakAdapter(connect_timeout_s=connect_timeout_s)

    result = _run_adapter_query(["bluetoothctl", "list"])
    if result is None:
        LOGGER.debug("bluetoothctl not installed; falling back to default adapter")
        return BleakAdapter(connect_timeout_s=connect_timeout_s)
    if result.returncode != 0:
        stderr = (result.stderr or "").strip()
        raise AdapterNotFoundError(
            f"Bluetooth adapter query failed. Ensure a working D-Bus/BlueZ session. Details: {stderr}"
        )

    for line in result.stdout.splitlines():
        match = _CONTROLLER_LINE_RE.match(line.strip())
        if not match:
            continue
        address, name = match.group(1).upper(), match.group(2).strip()
        LOGGER.debug("Using adapter %s [%s]", name, address)
        return BleakAdapter(name or address, address, connect_timeout_s=connect_timeout_s)

    raise AdapterNotFoundError("No Bluetooth adapter found.")


def _run_adapter_query(cmd: Sequence[str]) -> subprocess.CompletedProcess[str] | None:
    try:
        return subprocess.run(
            cmd,
            check=False,
            capture_output=True,
            text=True,
        )
    except FileNotFoundError:
        return None
