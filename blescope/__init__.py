"""BLE advertisement scanning, reconciliation, and decoding."""
