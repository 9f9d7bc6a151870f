"""Domain exceptions raised by services and translated to HTTP errors by routers."""
from fastapi import HTTPException, status


class AcademyError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details


class NotFoundError(AcademyError):
    status_code = status.HTTP_404_NOT_FOUND


class ValidationError(AcademyError):
    status_code = status.HTTP_400_BAD_REQUEST


class PermissionDeniedError(AcademyError):
    status_code = status.HTTP_403_FORBIDDEN


class ConflictError(AcademyError):
    status_code = status.HTTP_409_CONFLICT


def to_http(exc: AcademyError) -> HTTPException:
    """Build the HTTPException a router raises for a domain error."""
    if exc.details:
        return HTTPException(status_code=exc.status_code, detail={"message": exc.message, **exc.details})
    return HTTPException(status_code=exc.status_code, detail=exc.message)
