"""HTTP rendering of domain errors.

Protean's handlers are registered first; the Ordering-specific ones are
added on top. Starlette picks the handler registered for the most
specific class in the exception's MRO, so InvalidTransition answers 409
even though it is a ValidationError.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.integrations.fastapi import register_exception_handlers

from ordering.errors import InvalidTransition


def _messages(exc):
    return getattr(exc, "messages", None) or str(exc)


async def _bad_request(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": _messages(exc)})


async def _not_found(request: Request, exc: ObjectNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": _messages(exc)})


async def _conflict(request: Request, exc: InvalidTransition) -> JSONResponse:
    return JSONResponse(status_code=409, content={"error": _messages(exc)})


def register_error_handlers(app: FastAPI) -> None:
    register_exception_handlers(app)
    app.add_exception_handler(ValidationError, _bad_request)
    app.add_exception_handler(ObjectNotFoundError, _not_found)
    app.add_exception_handler(InvalidTransition, _conflict)
