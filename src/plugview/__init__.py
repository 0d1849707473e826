"""plugview: plugin/host UI synchronization over RPC."""

__version__ = "0.1.0"
