"""Keep a local machinepack cache in sync with a remote pack server."""

__version__ = "0.3.0"
