"""Domain-specific errors for blescope."""


class BlescopeError(Exception):
    """Base error for blescope."""


class ConfigError(BlescopeError):
    """Base configuration error."""


class ConfigLoadError(ConfigError):
    """Raised when the settings file cannot be read."""


class ConfigValidationError(ConfigError):
    """Raised when the settings file does not conform to schema or semantics."""


class DeviceSelectionError(BlescopeError):
    """Raised when an identity cannot be resolved to a catalog device."""


class RadioError(BlescopeError):
    """Base radio error."""


class RadioUnavailableError(RadioError):
    """Raised when no BLE backend or adapter is usable."""


class RadioScanError(RadioError):
    """Raised when a scan cannot be started or aborts."""


class RadioConnectError(RadioError):
    """Raised on BLE connect failures."""


class RadioCommandError(RadioError):
    """Raised when a disconnect or GATT operation fails."""


class RadioTimeoutError(RadioError):
    """Raised when a radio operation times out."""
