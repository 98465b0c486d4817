"""
Audit — Comparison events.

Every proposal set comparison produces a ComparisonEvent that is routed to
the configured sinks:
- Python logging (default)
- JSON Lines file (PROPOSAL_EVAL_AUDIT_FILE)
- In-memory (tests)

A failing sink is logged and never breaks a comparison.
"""
import json
import logging
import threading
from pathlib import Path
from typing import Optional, TextIO

from evaluation.proposals import settings
from evaluation.proposals.canonical import hash_canonical
from evaluation.proposals.types import ComparisonEvent, ProposalComparisonResult

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# AUDIT SINK INTERFACE
# ═══════════════════════════════════════════════════════════════════════════════

class AuditSink:
    """Abstract interface for audit sinks."""

    def write_event(self, event: ComparisonEvent) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class FileAuditSink(AuditSink):
    """
    Append-only JSON Lines sink.

    Thread-safe for concurrent writes.
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._file: Optional[TextIO] = None

    def _get_file(self) -> TextIO:
        if self._file is None or self._file.closed:
            self._file = open(self.path, "a", encoding="utf-8")
        return self._file

    def write_event(self, event: ComparisonEvent) -> None:
        with self._lock:
            try:
                f = self._get_file()
                f.write(json.dumps(event.to_dict(), separators=(",", ":")) + "\n")
                f.flush()
            except OSError as e:
                logger.error(f"Failed to write comparison event: {e}")

    def close(self) -> None:
        with self._lock:
            if self._file and not self._file.closed:
                self._file.close()
                self._file = None


class MemoryAuditSink(AuditSink):
    """In-memory audit sink for testing."""

    def __init__(self):
        self.events: list[ComparisonEvent] = []
        self._lock = threading.Lock()

    def write_event(self, event: ComparisonEvent) -> None:
        with self._lock:
            self.events.append(event)

    def clear(self) -> None:
        with self._lock:
            self.events.clear()

    def get_events(self) -> list[ComparisonEvent]:
        with self._lock:
            return list(self.events)


class LoggingAuditSink(AuditSink):
    """Audit sink that writes to Python logging."""

    def __init__(self, logger_name: str = "evaluation.proposals.audit.events"):
        self.logger = logging.getLogger(logger_name)

    def write_event(self, event: ComparisonEvent) -> None:
        self.logger.info(
            "COMPARISON: %s matched=%d/%d expected, %d actual (matches=%s, ref=%s)",
            event.event_id,
            event.matched_count,
            event.expected_count,
            event.actual_count,
            event.matches,
            event.reference_key,
        )
        self.logger.debug(
            "  HASHES: expected=%s actual=%s",
            event.expected_hash,
            event.actual_hash,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# GLOBAL AUDIT MANAGER
# ═══════════════════════════════════════════════════════════════════════════════

class AuditManager:
    """Routes events to every registered sink."""

    def __init__(self):
        self.sinks: list[AuditSink] = []
        self._lock = threading.Lock()

    def add_sink(self, sink: AuditSink) -> None:
        with self._lock:
            self.sinks.append(sink)

    def remove_sink(self, sink: AuditSink) -> None:
        with self._lock:
            if sink in self.sinks:
                self.sinks.remove(sink)

    def write_event(self, event: ComparisonEvent) -> None:
        with self._lock:
            for sink in self.sinks:
                try:
                    sink.write_event(event)
                except Exception as e:
                    logger.error(f"Audit sink {sink} failed: {e}")

    def close(self) -> None:
        with self._lock:
            for sink in self.sinks:
                try:
                    sink.close()
                except Exception as e:
                    logger.error(f"Failed to close audit sink: {e}")


_audit_manager: Optional[AuditManager] = None


def get_audit_manager() -> AuditManager:
    """Global audit manager, built from settings on first use."""
    global _audit_manager
    if _audit_manager is None:
        _audit_manager = configure_audit(
            file_path=settings.AUDIT_FILE,
            enable_logging=settings.AUDIT_LOGGING,
        )
    return _audit_manager


def configure_audit(
    file_path: Optional[str] = None,
    enable_logging: bool = True,
) -> AuditManager:
    """
    Replace the global audit manager.

    Args:
        file_path: JSON Lines file for events (optional)
        enable_logging: Enable the logging sink

    Returns:
        Configured AuditManager
    """
    global _audit_manager
    if _audit_manager is not None:
        _audit_manager.close()
    _audit_manager = AuditManager()

    if enable_logging:
        _audit_manager.add_sink(LoggingAuditSink())

    if file_path:
        _audit_manager.add_sink(FileAuditSink(file_path))

    return _audit_manager


def audit_comparison(
    expected: list[dict],
    actual: list[dict],
    result: ProposalComparisonResult,
    reference_key: Optional[str] = None,
) -> ComparisonEvent:
    """Create and route a comparison event. Returns the event."""
    event = ComparisonEvent.create(
        expected=expected,
        actual=actual,
        result=result,
        expected_hash=hash_canonical(expected),
        actual_hash=hash_canonical(actual),
        reference_key=reference_key,
    )
    get_audit_manager().write_event(event)
    return event
