"""Alerting - webhook payloads and dispatch."""

from whale_watcher.alerter.dispatcher import AlertDispatcher, DispatchResult
from whale_watcher.alerter.formatter import (
    build_payload,
    explorer_url,
    format_amount,
    format_usd,
    short_address,
    summary_line,
)

__all__ = [
    "AlertDispatcher",
    "DispatchResult",
    "build_payload",
    "explorer_url",
    "format_amount",
    "format_usd",
    "short_address",
    "summary_line",
]
