"""Domain-specific errors for shbctl."""


class ShbctlError(Exception):
    """Base error for shbctl."""


class ConfigValidationError(ShbctlError):
    """Raised when a config file does not conform to schema or semantics."""


class ConfigLoadError(ShbctlError):
    """Raised when reading config sources fails."""


class AdapterNotFoundError(ShbctlError):
    """Raised when the host exposes no usable Bluetooth adapter."""


class ScanFailedError(ShbctlError):
    """Raised when the BLE discovery scan itself fails."""


class NoConnectablePeripheralsError(ShbctlError):
    """Raised when a scan finished without any connectable peripheral."""


class DeviceSelectionError(ShbctlError):
    """Raised when device matching cannot resolve a single target."""


class NoTargetDeviceFoundError(DeviceSelectionError):
    """Raised when no scanned device carries the target identifier."""


class InvalidSelectionError(DeviceSelectionError):
    """Raised when the user picks a non-numeric or out-of-range index."""


class SessionError(ShbctlError):
    """Base error for peripheral session failures."""


class ConnectionFailedError(SessionError):
    """Raised on BLE connect failures."""


class ServiceDiscoveryFailedError(SessionError):
    """Raised when the GATT service list cannot be retrieved."""


class CharacteristicNotFoundError(SessionError):
    """Raised when no service exposes the target characteristic."""


class UnsupportedCharacteristicError(SessionError):
    """Raised when the characteristic supports neither indicate nor notify."""


class SubscriptionFailedError(SessionError):
    """Raised when enabling indications/notifications fails."""


class UnsubscribeFailedError(SessionError):
    """Raised when disabling indications/notifications fails.

    Never fatal: the session logs it and disconnects anyway.
    """
