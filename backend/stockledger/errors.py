"""
Ledger error taxonomy.

Every error raised by the service layer is a LedgerError subclass carrying the
HTTP-class status code the routes respond with, a human-readable message naming
the offending item or field, and an optional ``details`` dict with the numbers
involved (available/requested quantities, expected/submitted totals).

Anything that is NOT a LedgerError is treated as an internal failure and
surfaces to clients as a generic 500.
"""


class LedgerError(Exception):
    """Base class for every business-rule and validation failure."""

    status_code = 400
    retryable = False

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(LedgerError):
    """Malformed input."""


class NotFoundError(LedgerError):
    """Unknown item, operation, sale or log entry (or one owned by another business)."""

    status_code = 404


class PermissionDeniedError(LedgerError):
    """The authorization gate refused the caller."""

    status_code = 403


class SchemaError(LedgerError):
    """A column role the operation needs is not configured."""


class SchemaDriftError(SchemaError):
    """Stored data no longer fits the business's current schema."""


class DataIntegrityError(LedgerError):
    """Stored item data is unusable for ledger arithmetic (e.g. a negative price)."""


class InsufficientStockError(LedgerError):
    """A sale requests more units than are on hand."""


class OverReturnError(LedgerError):
    """A return requests more units than remain returnable for the sale."""


class FinancialMismatchError(LedgerError):
    """Client-submitted sale totals disagree with the server's computation."""


class AlreadyUndoneError(LedgerError):
    """The record has already been undone; undo is not re-entrant."""

    status_code = 409


class NotUndoableError(LedgerError):
    """The record's action or type has no reverse procedure."""


class ConcurrentModificationError(LedgerError):
    """A concurrent writer changed the same rows; the caller may retry."""

    status_code = 409
    retryable = True
