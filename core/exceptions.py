"""
Exception to HTTP mapping and global exception handlers.

Every error leaves the API in the ``Response`` envelope with ``data=None``.
Business exceptions carry their own code; the HTTP status is derived from
it so services never deal with HTTP.
"""
import traceback
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette import status as http_status
from starlette.exceptions import HTTPException

from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode

from .response import Response, error_response


logger = get_logger(__name__)

_CODE_TO_HTTP_STATUS = {
    BusinessCode.PARAM_VALIDATION_ERROR: http_status.HTTP_422_UNPROCESSABLE_ENTITY,
    BusinessCode.USER_NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    BusinessCode.NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    BusinessCode.ORDER_NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    BusinessCode.ORDER_CONFLICT: http_status.HTTP_409_CONFLICT,
    BusinessCode.ORDER_INVALID_STATE: http_status.HTTP_409_CONFLICT,
    BusinessCode.INVALID_TRANSITION: http_status.HTTP_409_CONFLICT,
    BusinessCode.UNAUTHORIZED: http_status.HTTP_401_UNAUTHORIZED,
    BusinessCode.PERMISSION_ERROR: http_status.HTTP_403_FORBIDDEN,
    BusinessCode.FORBIDDEN: http_status.HTTP_403_FORBIDDEN,
    BusinessCode.SYSTEM_ERROR: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    BusinessCode.DATABASE_ERROR: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    BusinessCode.NETWORK_ERROR: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    BusinessCode.SERVICE_UNAVAILABLE: http_status.HTTP_503_SERVICE_UNAVAILABLE,
    PaymentCode.PROVIDER_ERROR: http_status.HTTP_502_BAD_GATEWAY,
}

# status codes raised by starlette itself (404 route, 405 method, ...)
_HTTP_STATUS_TO_CODE = {
    401: BusinessCode.UNAUTHORIZED,
    403: BusinessCode.FORBIDDEN,
    404: BusinessCode.NOT_FOUND,
    503: BusinessCode.SERVICE_UNAVAILABLE,
}


def business_code_to_http_status(code: int) -> int:
    """Map a business code to an HTTP status; anything unlisted is a 400."""
    return _CODE_TO_HTTP_STATUS.get(int(code), http_status.HTTP_400_BAD_REQUEST)


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


def _json(status_code: int, body: Response, headers=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"), headers=headers)


async def handle_business_exception(request: Request, exc: BusinessException) -> JSONResponse:
    status_code = business_code_to_http_status(exc.code)
    if status_code >= 500:
        logger.error("business_exception", code=int(exc.code), error_type=exc.error_type, message=exc.message)
    body = error_response(
        code=exc.code,
        message=exc.message,
        error_type=exc.error_type,
        details=exc.details,
        field=exc.field,
        request_id=_request_id(request),
    )
    return _json(status_code, body)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    # loc is ("body"|"query"|"header", field, ...)
    field = ".".join(str(part) for part in first.get("loc", ())[1:]) or None
    body = error_response(
        code=BusinessCode.PARAM_VALIDATION_ERROR,
        message=f"Validation failed: {first.get('msg', 'invalid request')}",
        error_type="ValidationError",
        details={"errors": [
            {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
            for e in errors
        ]},
        field=field,
        request_id=_request_id(request),
    )
    return _json(http_status.HTTP_422_UNPROCESSABLE_ENTITY, body)


async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
    default = BusinessCode.SYSTEM_ERROR if exc.status_code >= 500 else BusinessCode.PARAM_ERROR
    body = error_response(
        code=_HTTP_STATUS_TO_CODE.get(exc.status_code, default),
        message=str(exc.detail),
        error_type="HTTPError",
        details={"status_code": exc.status_code},
        request_id=_request_id(request),
    )
    return _json(exc.status_code, body, headers=getattr(exc, "headers", None))


async def handle_database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    request_id = _request_id(request)
    logger.error("database_error", request_id=request_id, error=str(exc), exc_info=True)
    body = error_response(
        code=BusinessCode.DATABASE_ERROR,
        message="Storage is unavailable",
        error_type="DatabaseError",
        request_id=request_id,
    )
    return _json(http_status.HTTP_500_INTERNAL_SERVER_ERROR, body)


def _make_unhandled_handler(debug: bool):
    async def handle_unhandled(request: Request, exc: Exception) -> JSONResponse:
        request_id = _request_id(request)
        logger.error("unhandled_exception", request_id=request_id, error=str(exc), exc_info=True)
        details = {"exception": str(exc), "traceback": traceback.format_exc()} if debug else None
        body = error_response(
            code=BusinessCode.SYSTEM_ERROR,
            message="Internal server error",
            error_type="SystemError",
            details=details,
            request_id=request_id,
        )
        return _json(http_status.HTTP_500_INTERNAL_SERVER_ERROR, body)

    return handle_unhandled


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BusinessException, handle_business_exception)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(HTTPException, handle_http_exception)
    app.add_exception_handler(SQLAlchemyError, handle_database_error)
    app.add_exception_handler(Exception, _make_unhandled_handler(app.debug))
