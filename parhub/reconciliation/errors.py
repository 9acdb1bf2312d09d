"""
Error taxonomy for reconciliation runs.

Row-level problems are tallied and never abort a batch; table and schema
level problems abort the whole run.
"""

from __future__ import annotations


class ReconciliationError(Exception):
    """Base exception for reconciliation failures."""


class ValidationError(ReconciliationError):
    """A VIN, phone or required identity field is malformed."""

    def __init__(self, field: str, value: object, message: str | None = None) -> None:
        self.field = field
        self.value = value
        super().__init__(message or f"Invalid {field}: {value!r}")


class NotFoundError(ReconciliationError):
    """An expected legacy table or column is absent."""

    def __init__(self, kind: str, hints, message: str | None = None) -> None:
        self.kind = kind
        self.hints = tuple(hints)
        super().__init__(message or f"No legacy {kind} matched {', '.join(self.hints)}")


class VerificationError(ReconciliationError):
    """Post-migration row counts disagree with the legacy source."""

    def __init__(self, subject: str, legacy: int, new: int, detail: str | None = None) -> None:
        self.subject = subject
        self.legacy = legacy
        self.new = new
        message = f"{subject} migration verification failed: legacy={legacy}, new={new}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class UpstreamDecodeError(ReconciliationError):
    """The VIN decode provider timed out, failed or returned garbage."""

    def __init__(self, vin: str, detail: str, status_code: int | None = None) -> None:
        self.vin = vin
        self.detail = detail
        self.status_code = status_code
        super().__init__(f"VIN decode failed for {vin}: {detail}")


class MigrationNotFound(ReconciliationError):
    """Raised when an unknown migration version is requested."""

    def __init__(self, version: str) -> None:
        self.version = version
        super().__init__(f"Unknown migration version '{version}'")
