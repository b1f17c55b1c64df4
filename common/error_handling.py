"""
Error handling with standardized responses
"""
from typing import Optional, Dict, Any
from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from pydantic import BaseModel
import logging
import traceback
import time

logger = logging.getLogger(__name__)

class ErrorDetail(BaseModel):
    """Detailed error information"""
    code: str
    message: str
    field: Optional[str] = None
    context: Optional[Dict[str, Any]] = None

class StandardErrorResponse(BaseModel):
    """Standard error response format"""
    success: bool = False
    error: ErrorDetail
    timestamp: float
    trace_id: Optional[str] = None
    request_id: Optional[str] = None

class ErrorCodes:
    """Standard error codes"""
    # Validation
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"

    # Business Logic
    MERCHANT_REJECTED = "MERCHANT_REJECTED"

    # System Errors
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    DATABASE_ERROR = "DATABASE_ERROR"
    CACHE_UNAVAILABLE = "CACHE_UNAVAILABLE"

class BusinessLogicError(Exception):
    """Custom exception for business logic errors"""
    def __init__(self, code: str, message: str, field: str = None, context: Dict[str, Any] = None):
        self.code = code
        self.message = message
        self.field = field
        self.context = context or {}
        super().__init__(message)

class ServiceError(Exception):
    """Custom exception for service-level errors"""
    def __init__(self, code: str, message: str, original_error: Exception = None):
        self.code = code
        self.message = message
        self.original_error = original_error
        super().__init__(message)

def create_error_response(
    error_code: str,
    message: str,
    status_code: int = 500,
    field: str = None,
    context: Dict[str, Any] = None,
    trace_id: str = None,
    request_id: str = None
) -> JSONResponse:
    """Create standardized error response"""

    error_detail = ErrorDetail(
        code=error_code,
        message=message,
        field=field,
        context=context
    )

    error_response = StandardErrorResponse(
        error=error_detail,
        timestamp=time.time(),
        trace_id=trace_id,
        request_id=request_id
    )

    return JSONResponse(
        status_code=status_code,
        content=error_response.model_dump(mode="json")
    )

def _trace_context(request: Request):
    return getattr(request.state, 'trace_id', None), getattr(request.state, 'request_id', None)

async def business_logic_exception_handler(request: Request, exc: BusinessLogicError):
    """Handle business logic exceptions"""

    status_code_map = {
        ErrorCodes.VALIDATION_ERROR: 400,
        ErrorCodes.MERCHANT_REJECTED: 400,
    }

    status_code = status_code_map.get(exc.code, 400)
    trace_id, request_id = _trace_context(request)

    logger.warning(f"Business logic error: {exc.code} - {exc.message}", extra={
        "error_code": exc.code,
        "trace_id": trace_id,
        "request_id": request_id,
        "field": exc.field,
        "context": exc.context
    })

    return create_error_response(
        error_code=exc.code,
        message=exc.message,
        status_code=status_code,
        field=exc.field,
        context=exc.context,
        trace_id=trace_id,
        request_id=request_id
    )

async def service_exception_handler(request: Request, exc: ServiceError):
    """Handle service-level exceptions"""

    status_code_map = {
        ErrorCodes.SERVICE_UNAVAILABLE: 503,
        ErrorCodes.DATABASE_ERROR: 503,
        ErrorCodes.CACHE_UNAVAILABLE: 503,
    }

    status_code = status_code_map.get(exc.code, 500)
    trace_id, request_id = _trace_context(request)

    logger.error(f"Service error: {exc.code} - {exc.message}", extra={
        "error_code": exc.code,
        "trace_id": trace_id,
        "request_id": request_id,
        "original_error": str(exc.original_error) if exc.original_error else None
    })

    return create_error_response(
        error_code=exc.code,
        message=exc.message,
        status_code=status_code,
        trace_id=trace_id,
        request_id=request_id
    )

async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request body validation exceptions"""

    trace_id, request_id = _trace_context(request)

    errors = [
        {"loc": [str(loc) for loc in err.get("loc", [])], "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    first_error = errors[0] if errors else {"loc": [], "msg": "Validation error"}
    field = ".".join(first_error["loc"])
    message = first_error["msg"]

    logger.warning(f"Validation error: {message} on field {field}", extra={
        "trace_id": trace_id,
        "request_id": request_id,
        "validation_errors": errors
    })

    return create_error_response(
        error_code=ErrorCodes.VALIDATION_ERROR,
        message=f"Validation error on field '{field}': {message}",
        status_code=400,
        field=field,
        context={"validation_errors": errors},
        trace_id=trace_id,
        request_id=request_id
    )

async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions raised by routing and handlers"""

    trace_id, request_id = _trace_context(request)

    status_to_code = {
        400: ErrorCodes.VALIDATION_ERROR,
        404: ErrorCodes.NOT_FOUND,
        405: ErrorCodes.METHOD_NOT_ALLOWED,
        500: ErrorCodes.INTERNAL_SERVER_ERROR,
        503: ErrorCodes.SERVICE_UNAVAILABLE,
    }

    error_code = status_to_code.get(exc.status_code, ErrorCodes.INTERNAL_SERVER_ERROR)

    logger.warning(f"HTTP exception: {exc.status_code} - {exc.detail}", extra={
        "status_code": exc.status_code,
        "trace_id": trace_id,
        "request_id": request_id
    })

    return create_error_response(
        error_code=error_code,
        message=str(exc.detail),
        status_code=exc.status_code,
        trace_id=trace_id,
        request_id=request_id
    )

async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions"""

    trace_id, request_id = _trace_context(request)

    logger.error(f"Unexpected error: {str(exc)}", extra={
        "trace_id": trace_id,
        "request_id": request_id,
        "traceback": traceback.format_exc()
    })

    # Don't expose internal error details
    return create_error_response(
        error_code=ErrorCodes.INTERNAL_SERVER_ERROR,
        message="An unexpected error occurred. Please try again later.",
        status_code=500,
        trace_id=trace_id,
        request_id=request_id
    )

def add_error_handlers(app):
    """Add all error handlers to FastAPI app"""
    app.add_exception_handler(BusinessLogicError, business_logic_exception_handler)
    app.add_exception_handler(ServiceError, service_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
