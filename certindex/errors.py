class CertIndexError(Exception):
    """Base error for the project."""


class StoreError(CertIndexError):
    """Raised when the underlying record store fails an operation."""


class ConfigError(CertIndexError):
    """Raised when configuration cannot be loaded or validated."""
