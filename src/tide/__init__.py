"""Tide: refresh a macOS system with one configurable maintenance run."""

__version__ = "1.3.1"
