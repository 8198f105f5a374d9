"""Whale Watcher - multi-chain large transfer feed and webhook alerts."""

__version__ = "0.1.0"
