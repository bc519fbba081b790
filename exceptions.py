"""
Exception hierarchy for the WIP tracker.

    WIPTrackerError (base)
    ├── ConfigurationMissing    - a source's credentials / URL are absent
    ├── SourceQueryFailure      - a source failed at request time (degraded to empty)
    ├── SyncAlreadyRunning      - another sync run holds the lease
    ├── SyncTransactionFailure  - mirror refresh rolled back
    └── OpenOpsParseError       - open-ops spreadsheet could not be read
"""
from typing import Optional


class WIPTrackerError(Exception):
    """Base exception for all WIP tracker errors."""

    def __init__(self, message: str, details: Optional[str] = None):
        self.message = message
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class ConfigurationMissing(WIPTrackerError):
    """Connection settings for a source are absent."""

    def __init__(self, source: str, missing: Optional[list] = None):
        self.source = source
        self.missing = missing or []
        details = ", ".join(self.missing) if self.missing else None
        super().__init__(f"{source} is not configured", details)


class SourceQueryFailure(WIPTrackerError):
    """A source query raised or timed out while serving a request."""

    def __init__(self, source: str, details: Optional[str] = None):
        self.source = source
        super().__init__(f"{source} query failed", details)


class SyncAlreadyRunning(WIPTrackerError):
    """Another sync run is active and its lease has not expired."""

    def __init__(self, run_id: int, started_at=None):
        self.run_id = run_id
        self.started_at = started_at
        super().__init__("Another mirror sync is running", f"run {run_id} started at {started_at}")


class SyncTransactionFailure(WIPTrackerError):
    """
    The mirror refresh failed and was rolled back.

    The previous mirror contents are intact and the run is recorded as 'error'.
    """

    def __init__(self, run_id: Optional[int], details: Optional[str] = None):
        self.run_id = run_id
        super().__init__("Mirror sync rolled back", details)


class OpenOpsParseError(WIPTrackerError):
    """The uploaded open-ops spreadsheet has no usable OPS numbers."""
