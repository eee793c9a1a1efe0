from fastapi import Request
from fastapi.exceptions import RequestValidationError, HTTPException
from starlette.responses import JSONResponse

from CatalogBridge.exceptions import CatalogBridgeException, get_http_status_code, log_exception
from CatalogBridge.schemas.response import ResponseSchema


def register_exception_handlers(app):
    """Register all exception handlers for the FastAPI app."""

    @app.exception_handler(CatalogBridgeException)
    async def catalog_bridge_exception_handler(request: Request, exc: CatalogBridgeException):
        log_exception(exc, context=f"{request.method} {request.url.path}")

        return JSONResponse(
            status_code=get_http_status_code(exc),
            content=ResponseSchema(
                status="error", message=exc.message, data=exc.details if exc.details else None
            ).model_dump(),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        messages = []
        for error in exc.errors():
            messages.append(f"Error in {error.get('loc')}: {error.get('msg')} ({error.get('type')})")

        return JSONResponse(
            status_code=422,
            content=ResponseSchema(status="error", message="Validation error", data=messages).model_dump(),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=ResponseSchema(
                status="error", message=exc.detail if isinstance(exc.detail, str) else str(exc.detail), data=None
            ).model_dump(),
            headers=getattr(exc, "headers", None),
        )
