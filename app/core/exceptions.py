class StorageUnavailableError(Exception):
    """Raised when the quota store or the record store cannot be reached.

    Nothing is recorded when this is raised, so the request is safe to retry.
    """

    def __init__(self, operation: str, cause: Exception = None):
        self.operation = operation
        self.cause = cause
        message = f"Storage unavailable during {operation}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)
