# shopcore/api/errors.py
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from shopcore.domain.errors import ErrorKind, ShopError
from shopcore.utils.logging import get_logger

logger = get_logger(__name__)

STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.TRANSIENT: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


async def shop_error_handler(request: Request, exc: ShopError) -> JSONResponse:
    status_code = STATUS_BY_KIND.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code}")

    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(status_code=status_code, content={"error": exc.to_dict()}, headers=headers)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ShopError, shop_error_handler)
