"""Storage error types."""


class StorageError(Exception):
    """
    A persistence operation failed for operational reasons.

    Raised by repository implementations when the backing store rejects a
    read or write. Policy outcomes (missing rows, duplicates) are never
    reported this way.
    """

    def __init__(self, operation: str, message: str):
        self.operation = operation
        self.message = message
        super().__init__(f"{operation}: {message}")
