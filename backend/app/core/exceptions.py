class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class SchedulerError(AppError):
    """Raised when a schedule operation would break a scheduling constraint."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)

class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} with id {resource_id} not found",
            status_code=404,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )

class ConfigurationError(AppError):
    """Raised when system configuration is invalid."""
    def __init__(self, message: str):
        super().__init__(message, status_code=500)

class ScopeValidationError(AppError):
    """Raised before any search starts when the requested scope cannot be scheduled."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=422, details=details)

class AutomationBusyError(AppError):
    """Raised when another automation run already holds the same scope."""
    def __init__(self, scope_key: str):
        super().__init__(
            "Another scheduling run is in progress for this scope",
            status_code=409,
            details={"scope": scope_key},
        )

class StaleVariantError(AppError):
    """Raised when a cached variant no longer fits the persisted baseline."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)

class StoreWriteError(AppError):
    """Raised when the store fails while committing a schedule; the run has been rolled back."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=500, details=details)

class LockedEntryError(AppError):
    """Raised when a manual edit targets a locked schedule entry."""
    def __init__(self, entry_id: str):
        super().__init__(
            "Schedule entry is locked; unlock it before changing it",
            status_code=409,
            details={"entry_id": entry_id},
        )
