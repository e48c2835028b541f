"""Error taxonomy shared by the store, units, orchestrator and surfaces."""


class IntelError(Exception):
    """Base class for Intelligence OS errors."""
    pass


class WriteError(IntelError):
    """Raised when the ledger store cannot persist a write."""
    pass


class NotFoundError(IntelError):
    """Raised when a referenced analysis or ledger record does not exist."""
    pass


class MalformedPayloadError(IntelError):
    """Raised when stored JSON text cannot be decoded."""
    pass


class ValidationError(IntelError, ValueError):
    """Raised for bad configuration or arguments, before any store access."""
    pass
