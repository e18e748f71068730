"""
Domain errors raised by the service modules.

Each carries the HTTP status the API layer answers with; main.py turns them
into the {"success": false, "error": ...} envelope.
"""


class ShopError(Exception):
    status_code = 500

    def __init__(self, message: str = "Server Error"):
        super().__init__(message)
        self.message = message


class ValidationError(ShopError):
    status_code = 400


class Conflict(ShopError):
    status_code = 400


class DuplicateIdentity(Conflict):
    pass


class InvalidTransition(ShopError):
    status_code = 400


class Unauthenticated(ShopError):
    status_code = 401


class InvalidCredentials(Unauthenticated):
    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message)


class Forbidden(ShopError):
    status_code = 403


class NotFound(ShopError):
    status_code = 404


class ServerError(ShopError):
    status_code = 500
