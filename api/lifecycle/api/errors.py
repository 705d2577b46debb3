from fastapi import status
from fastapi.responses import JSONResponse

from lifecycle.services.errors import ErrorKind, TransitionError

HTTP_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.REASON_REQUIRED: status.HTTP_422_UNPROCESSABLE_CONTENT,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.STORE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.VALIDATION: status.HTTP_422_UNPROCESSABLE_CONTENT,
    ErrorKind.CANCELLED: status.HTTP_409_CONFLICT,
}


def error_response(error: TransitionError | None) -> JSONResponse:
    if error is None:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"status": "error", "kind": "Internal", "message": "operation failed without an error"},
        )
    return JSONResponse(status_code=HTTP_STATUS_BY_KIND[error.kind], content=error.to_dict())
