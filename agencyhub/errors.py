"""
Exception types raised by the Agency Hub sync layer.
"""


class AgencyError(Exception):
    """Base class for every error raised by this package."""
    pass


class RemoteError(AgencyError):
    """Raised when a Supabase call fails. Wraps the original exception."""

    def __init__(self, operation: str, table: str, original: Exception = None):
        self.operation = operation
        self.table = table
        self.original = original
        super().__init__(f"{operation} on {table} failed: {original}")


class SyncError(AgencyError):
    """Raised when a sync engine operation failed. The cache is untouched."""

    def __init__(self, message: str, original: Exception = None):
        self.original = original
        super().__init__(message)


class ValidationError(AgencyError):
    """Raised before any remote call when an entity is rejected locally."""
    pass


class TenantNotResolved(AgencyError):
    """Raised for unscoped writes when AGENCY_REJECT_UNSCOPED_WRITES is set."""
    pass


class FunctionError(AgencyError):
    """Raised when an edge function call fails."""
    pass
