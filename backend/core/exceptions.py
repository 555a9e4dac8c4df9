"""
Service-layer exceptions.

Each exception carries the HTTP status the API layer answers with, so
services stay free of FastAPI imports.
"""


class ServiceError(Exception):
    """Base class for expected, user-facing service failures."""

    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationFailedError(ServiceError):
    status_code = 400


class PermissionDeniedError(ServiceError):
    status_code = 403


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    status_code = 409
