"""
Error taxonomy and the global handlers that turn every failure into the
`{"success": false, "message": ...}` envelope.
"""

import logging
from typing import Any, Dict, List, Optional

from bson.errors import InvalidId
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from jose import JWTError
from pydantic import ValidationError
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import TOKEN_COOKIE

logger = logging.getLogger(__name__)


class NotAuthenticated(HTTPException):
    clear_cookie = True

    def __init__(self, detail: str = "Authentication required"):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


class PermissionDenied(HTTPException):
    def __init__(self, detail: str = "Access denied", clear_cookie: bool = True):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
        self.clear_cookie = clear_cookie


class NotFound(HTTPException):
    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ValidationFailed(HTTPException):
    def __init__(self, detail: str, fields: Optional[List[str]] = None):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
        self.fields = fields or []


class DuplicateField(HTTPException):
    def __init__(self, field: str, detail: Optional[str] = None):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail or f"{field} already in use")
        self.field = field


class OutOfStock(HTTPException):
    def __init__(self, detail: str = "Product is out of stock"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class InsufficientStock(HTTPException):
    def __init__(self, available: int, size: str, detail: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail or f"Only {available} items available in size {size}",
        )
        self.available = available
        self.size = size


class Conflict(HTTPException):
    def __init__(self, detail: str = "Resource was modified by another request, please retry"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class UpstreamError(HTTPException):
    """A third-party collaborator (email, SMS, OAuth, storage) failed."""

    def __init__(self, detail: str = "An unexpected error occurred. Please try again later."):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


def error_body(message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "message": message}
    if details:
        body["details"] = details
    return body


def _details_for(exc: HTTPException) -> Dict[str, Any]:
    details: Dict[str, Any] = {}
    if isinstance(exc, ValidationFailed) and exc.fields:
        details["fields"] = exc.fields
    if isinstance(exc, DuplicateField):
        details["field"] = exc.field
    if isinstance(exc, InsufficientStock):
        details["available"] = exc.available
        details["size"] = exc.size
    return details


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    response = JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail), _details_for(exc) if isinstance(exc, HTTPException) else None),
        headers=getattr(exc, "headers", None),
    )
    if getattr(exc, "clear_cookie", False):
        response.delete_cookie(TOKEN_COOKIE)
    return response


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    fields = [".".join(str(p) for p in err.get("loc", ()) if p != "body") for err in exc.errors()]
    message = ", ".join(err.get("msg", "Invalid value") for err in exc.errors())
    return JSONResponse(status_code=400, content=error_body(message, {"fields": fields}))


async def model_validation_handler(request: Request, exc: ValidationError):
    fields = [".".join(str(p) for p in err.get("loc", ())) for err in exc.errors()]
    message = ", ".join(err.get("msg", "Invalid value") for err in exc.errors())
    return JSONResponse(status_code=400, content=error_body(message, {"fields": fields}))


async def invalid_id_handler(request: Request, exc: InvalidId):
    return JSONResponse(status_code=404, content=error_body(f"Resource not found with ID: {exc}"))


async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    key_pattern = (exc.details or {}).get("keyPattern") or {}
    field = next(iter(key_pattern), "unknown")
    return JSONResponse(status_code=400, content=error_body("Duplicate field value entered", {"field": field}))


async def jwt_error_handler(request: Request, exc: JWTError):
    response = JSONResponse(status_code=401, content=error_body("Invalid authentication token"))
    response.delete_cookie(TOKEN_COOKIE)
    return response


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=error_body("An unexpected error occurred. Please try again later."),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValidationError, model_validation_handler)
    app.add_exception_handler(InvalidId, invalid_id_handler)
    app.add_exception_handler(DuplicateKeyError, duplicate_key_handler)
    app.add_exception_handler(JWTError, jwt_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
