"""Simulated task kernel with priority round-robin and LSTF real-time scheduling."""

__version__ = "0.1.0"
__all__ = ["kernel", "rtsched"]