"""Core data models used across scanner, session, service, and CLI."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class DiscoveredDevice:
    identifier: str
    address: str
    connectable: bool
    # Transport object used to connect (e.g. a bleak BLEDevice).
    handle: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class CharacteristicDescriptor:
    uuid: str
    can_notify: bool
    can_indicate: bool


@dataclass(frozen=True)
class ServiceDescriptor:
    uuid: str
    characteristics: tuple[CharacteristicDescriptor, ...]


class SubscriptionMode(str, enum.Enum):
    INDICATE = "indicate"
    NOTIFY = "notify"


@dataclass(frozen=True)
class Subscription:
    service_uuid: str
    characteristic_uuid: str
    mode: SubscriptionMode


class SessionState(str, enum.Enum):
    IDLE = "idle"
    CONNECTED = "connected"
    SERVICES_DISCOVERED = "services_discovered"
    CHARACTERISTIC_FOUND = "characteristic_found"
    SUBSCRIBED = "subscribed"
    UNSUBSCRIBING = "unsubscribing"
    DISCONNECTED = "disconnected"


class SelectionDefault(str, enum.Enum):
    LAST = "last"
    FIRST = "first"


@dataclass(frozen=True)
class AppConfig:
    target_identifier: str = "SHB1000"
    characteristic_uuid: str = "f62a9f56-f29e-48a8-a317-47ee37a58999"
    scan_timeout_s: float = 10.0
    selection_default: SelectionDefault = SelectionDefault.LAST
    diagnostics: bool = True
    connect_timeout_s: float = 10.0


@dataclass(frozen=True)
class StreamResult:
    device: DiscoveredDevice
    subscription: Subscription
