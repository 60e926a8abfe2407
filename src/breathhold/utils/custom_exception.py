class InvalidCycleError(ValueError):
    """Exception raised when a breath cycle has unusable breathe/hold durations."""
    pass


class InvalidSettingsError(ValueError):
    """Exception raised when timer settings fall outside their allowed ranges."""
    pass


class TableNotFoundError(LookupError):
    """Exception raised when a training table is not found in the store."""
    pass


class PersistenceError(RuntimeError):
    """Exception raised when the store fails to write tables, records or settings."""
    pass
