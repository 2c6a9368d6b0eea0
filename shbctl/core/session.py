"""Peripheral session lifecycle.

A session walks one peripheral through::

    IDLE -> CONNECTED -> SERVICES_DISCOVERED -> CHARACTERISTIC_FOUND
         -> SUBSCRIBED -> UNSUBSCRIBING -> DISCONNECTED

Once CONNECTED has been entered every exit path, success or failure, ends in
DISCONNECTED. ``Session`` is a context manager: entering connects, leaving
unsubscribes (when a subscription exists) and disconnects exactly once.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from types import TracebackType

from shbctl.core.errors import (
    CharacteristicNotFoundError,
    ConnectionFailedError,
    ServiceDiscoveryFailedError,
    SessionError,
    SubscriptionFailedError,
    UnsubscribeFailedError,
    UnsupportedCharacteristicError,
)
from shbctl.core.model import (
    CharacteristicDescriptor,
    ServiceDescriptor,
    SessionState,
    Subscription,
    SubscriptionMode,
)
from shbctl.core.sink import PayloadPump, PayloadSink
from shbctl.transports.base import Peripheral

LOGGER = logging.getLogger(__name__)


def _ignore(_: str) -> None:
    return None


def find_characteristic(
    services: Sequence[ServiceDescriptor],
    characteristic_uuid: str,
) -> tuple[ServiceDescriptor, CharacteristicDescriptor] | None:
    """Return the first (service, characteristic) pair whose UUID matches, ignoring case."""
    wanted = characteristic_uuid.lower()
    for service in services:
        for characteristic in service.characteristics:
            if characteristic.uuid.lower() == wanted:
                return service, characteristic
    return None


def choose_mode(characteristic: CharacteristicDescriptor) -> SubscriptionMode | None:
    # Indications are acknowledged by the client, so they win when both exist.
    if characteristic.can_indicate:
        return SubscriptionMode.INDICATE
    if characteristic.can_notify:
        return SubscriptionMode.NOTIFY
    return None


def describe_services(services: Sequence[ServiceDescriptor]) -> list[str]:
    lines: list[str] = []
    for service in services:
        lines.append(f"Service {service.uuid}")
        for characteristic in service.characteristics:
            lines.append(
                f"  Characteristic {characteristic.uuid} "
                f"notify={'yes' if characteristic.can_notify else 'no'} "
                f"indicate={'yes' if characteristic.can_indicate else 'no'}"
            )
    return lines


class Session:
    def __init__(
        self,
        peripheral: Peripheral,
        characteristic_uuid: str,
        *,
        sink: PayloadSink,
        diagnostics: bool = False,
        notify: Callable[[str], None] = _ignore,
    ) -> None:
        self.state = SessionState.IDLE
        self.subscription: Subscription | None = None
        self._peripheral = peripheral
        self._characteristic_uuid = characteristic_uuid
        self._diagnostics = diagnostics
        self._notify = notify
        self._pump = PayloadPump(sink)
        self._target: tuple[str, str] | None = None

    def __enter__(self) -> Session:
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            self.close()
        except SessionError as close_exc:
            if exc is None:
                raise
            LOGGER.warning("Cleanup after failure also failed: %s", close_exc)

    def connect(self) -> None:
        if self.state is not SessionState.IDLE:
            raise SessionError(f"Cannot connect from state {self.state.value}")
        try:
            self._peripheral.connect()
        except ConnectionFailedError:
            raise
        except Exception as exc:
            raise ConnectionFailedError(f"Connection failed: {exc}") from exc
        self.state = SessionState.CONNECTED
        LOGGER.info("Connected to %s", self._peripheral.address)

    def discover_services(self) -> list[ServiceDescriptor]:
        self._require(SessionState.CONNECTED)
        services = self._query_services()
        self.state = SessionState.SERVICES_DISCOVERED
        LOGGER.debug("Discovered %d service(s)", len(services))
        return services

    def locate_characteristic(self, services: Sequence[ServiceDescriptor]) -> tuple[str, str]:
        self._require(SessionState.SERVICES_DISCOVERED)
        match = find_characteristic(services, self._characteristic_uuid)
        if match is None:
            if self._diagnostics:
                self._notify("Discovered services and characteristics:")
                for line in describe_services(services):
                    self._notify(line)
            raise CharacteristicNotFoundError(
                f"Characteristic {self._characteristic_uuid} not found on selected device."
            )
        service, characteristic = match
        self._target = (service.uuid, characteristic.uuid)
        self.state = SessionState.CHARACTERISTIC_FOUND
        LOGGER.debug("Matched characteristic %s in service %s", characteristic.uuid, service.uuid)
        return self._target

    def subscribe(self) -> Subscription:
        self._require(SessionState.CHARACTERISTIC_FOUND)
        if self._target is None:
            raise SessionError("No characteristic has been located")
        service_uuid, characteristic_uuid = self._target

        # Descriptors are snapshots, so capabilities come from a fresh query.
        live = self._query_services()
        match = find_characteristic(
            [s for s in live if s.uuid.lower() == service_uuid.lower()],
            characteristic_uuid,
        )
        if match is None:
            raise CharacteristicNotFoundError(
                f"Characteristic {characteristic_uuid} disappeared from service {service_uuid}."
            )
        mode = choose_mode(match[1])
        if mode is None:
            raise UnsupportedCharacteristicError(
                f"Characteristic {characteristic_uuid} supports neither indicate nor notify."
            )

        self._pump.start()
        try:
            self._peripheral.subscribe(service_uuid, characteristic_uuid, mode, self._pump.submit)
        except Exception as exc:
            self._pump.stop()
            if isinstance(exc, SubscriptionFailedError):
                raise
            raise SubscriptionFailedError(f"Subscription failed: {exc}") from exc

        self.subscription = Subscription(
            service_uuid=service_uuid,
            characteristic_uuid=characteristic_uuid,
            mode=mode,
        )
        self.state = SessionState.SUBSCRIBED
        LOGGER.info("Subscribed to %s via %s", characteristic_uuid, mode.value)
        return self.subscription

    def close(self) -> None:
        """Tear the session down. Safe to call more than once."""
        if self.state in (SessionState.IDLE, SessionState.DISCONNECTED):
            return
        try:
            if self.subscription is not None:
                self.state = SessionState.UNSUBSCRIBING
                try:
                    self._unsubscribe(self.subscription)
                except UnsubscribeFailedError as exc:
                    LOGGER.warning("Unsubscribe failed (continuing): %s", exc)
                    self._notify(f"Unsubscribe failed (continuing): {exc}")
                finally:
                    self._pump.stop()
                    self.subscription = None
        finally:
            self.state = SessionState.DISCONNECTED
            self._peripheral.disconnect()
            LOGGER.info("Disconnected from %s", self._peripheral.address)

    def run(self, wait_for_stop: Callable[[], None]) -> Subscription:
        """Drive the full lifecycle, streaming until ``wait_for_stop`` returns."""
        with self:
            services = self.discover_services()
            self.locate_characteristic(services)
            subscription = self.subscribe()
            label = "Indication" if subscription.mode is SubscriptionMode.INDICATE else "Notification"
            self._notify(f"{label} active on characteristic {subscription.characteristic_uuid}.")
            wait_for_stop()
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        try:
            self._peripheral.unsubscribe(subscription.service_uuid, subscription.characteristic_uuid)
        except UnsubscribeFailedError:
            raise
        except Exception as exc:
            raise UnsubscribeFailedError(f"Unsubscribe failed: {exc}") from exc

    def _query_services(self) -> list[ServiceDescriptor]:
        try:
            return list(self._peripheral.services())
        except ServiceDiscoveryFailedError:
            raise
        except Exception as exc:
            raise ServiceDiscoveryFailedError(f"Service discovery failed: {exc}") from exc

    def _require(self, expected: SessionState) -> None:
        if self.state is not expected:
            raise SessionError(
                f"Session is {self.state.value}; expected {expected.value}"
            )
