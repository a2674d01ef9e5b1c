"""Radio transports."""
