"""Client-side server selection, circuit breaking, hashing, plugins, in-process calls and service discovery for RPC."""

__version__ = "0.1.0"