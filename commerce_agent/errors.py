"""
Error taxonomy for the commerce agent core.

AI Assistant Notes:
- IsolationError: missing tenant scope, a programming error that must abort
- ValidationError: empty/malformed input, the operation is a no-op
- ParseError: model output is not valid JSON, mapped to status 'error'
- PersistenceFailure: durable write / order creation failed, reported to caller
- ConfigurationError: a required setting (API key) is missing at startup
- Nothing else should escape a public method of the core
"""


class CommerceAgentError(Exception):
    """Base class for all documented error kinds raised by the core."""


class IsolationError(CommerceAgentError):
    """Raised when a memory operation is attempted without a tenant scope."""


class ValidationError(CommerceAgentError):
    """Raised when input is empty or malformed; the operation did nothing."""


class ParseError(CommerceAgentError):
    """Raised when language-model output cannot be read as an extraction result."""


class PersistenceFailure(CommerceAgentError):
    """Raised when a durable write or order creation fails or times out."""


class ConfigurationError(CommerceAgentError):
    """Raised when a required setting is missing."""
