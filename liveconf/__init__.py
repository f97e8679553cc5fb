"""Live configuration hot-reload engine: snapshots, watch, reload, broadcast."""

__version__ = "0.1.0"
