"""Diagnostic sinks for scrape runs.

The orchestrator reports state transitions and capture statistics
(html length, API responses seen, strategies tried) to a sink instead of
writing debug files to disk.
"""

from typing import Any, Dict, List, Protocol, runtime_checkable

import structlog

logger = structlog.get_logger(__name__)


@runtime_checkable
class DiagnosticSink(Protocol):
    """Receives structured diagnostic events."""

    def record(self, event: str, **fields: Any) -> None:
        ...


class StructlogDiagnosticSink:
    """Default sink: forwards every event to structlog at debug level."""

    def __init__(self, **bound: Any):
        self.logger = logger.bind(component="scrape_diagnostics", **bound)

    def record(self, event: str, **fields: Any) -> None:
        self.logger.debug(event, **fields)


class MemoryDiagnosticSink:
    """Collects events in memory (tests, ad-hoc inspection)."""

    def __init__(self):
        self.events: List[Dict[str, Any]] = []

    def record(self, event: str, **fields: Any) -> None:
        self.events.append({"event": event, **fields})

    def names(self) -> List[str]:
        return [e["event"] for e in self.events]

    def find(self, event: str) -> List[Dict[str, Any]]:
        return [e for e in self.events if e["event"] == event]
