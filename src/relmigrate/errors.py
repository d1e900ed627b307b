class MigrationError(Exception):
    """Base class for all errors raised by a migration job."""


class ConfigurationError(MigrationError):
    """Raised when the job file or the entity graph is invalid."""


class JobAbortedError(MigrationError):
    """Raised when the user answers an abort prompt negatively."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Job aborted by the user: {reason}")
        self.reason = reason


class TransportError(MigrationError):
    """Raised when the remote service cannot be reached or rejects a call."""


class SuccessExit(Exception):
    """
    Not an error: signals that the job finished early on purpose
    (validate-only mode) and the remaining phases must be skipped.
    """
