"""Custom exceptions for the eAlbarán application."""

class AlbaranError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['error'] = self.message
        rv['status'] = 'error'
        return rv

class BusinessLogicError(AlbaranError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)

class ValidationError(BusinessLogicError):
    """Raised when user input fails validation (missing or malformed fields)."""
    def __init__(self, message, field=None):
        payload = {'field': field} if field else None
        super().__init__(message, 400, payload)
        self.field = field

class ConflictError(BusinessLogicError):
    """Raised when a write is based on a stale version of the record."""
    def __init__(self, message, current_version=None):
        payload = {'currentVersion': current_version} if current_version is not None else None
        super().__init__(message, status_code=409, payload=payload)

class NotFoundError(AlbaranError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)

class UnauthorizedError(AlbaranError):
    """Raised when a user lacks permission for an action."""
    def __init__(self, message="Unauthorized access"):
        super().__init__(message, 403)

class AuthenticationError(AlbaranError):
    """Raised when the request has no valid session."""
    def __init__(self, message="Authentication required"):
        super().__init__(message, 401)
