"""Custom exceptions for the Agenda application."""

class AgendaError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv

class ValidationError(AgendaError):
    """Raised when a draft field or request value is missing or invalid."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)

class NotFoundError(AgendaError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)

class BillingError(AgendaError):
    """Raised when a catalog item cannot be added to a bill."""
    def __init__(self, message, payload=None):
        super().__init__(message, 422, payload)

class FetchError(AgendaError):
    """Raised when catalog data cannot be loaded.

    The payload carries ``retry_url`` so the caller can re-issue the same
    request manually; nothing is retried automatically.
    """
    def __init__(self, resource, detail=None, retry_url=None):
        message = f"Could not load {resource}"
        if detail:
            message = f"{message}: {detail}"
        payload = {'retry_url': retry_url} if retry_url else None
        super().__init__(message, 502, payload)
        self.resource = resource

class UnauthorizedError(AgendaError):
    """Raised when a user lacks permission for an action."""
    def __init__(self, message="Unauthorized access"):
        super().__init__(message, 403)
