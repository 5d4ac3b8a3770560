"""Wi-Fi station connectivity manager."""

__version__ = "0.1.0"
