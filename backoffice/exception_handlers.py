"""
Map the error taxonomy onto HTTP responses: {"detail": message} with the
error's status code. Storage errors never leak driver text.
"""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
import logging

from backoffice.exceptions import BackofficeError, PersistenceError

logger = logging.getLogger(__name__)


def setup_exception_handlers(app: FastAPI):

    @app.exception_handler(BackofficeError)
    async def backoffice_error_handler(request: Request, exc: BackofficeError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        logger.error(f"Unhandled database error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=PersistenceError.status_code, content={"detail": PersistenceError.public_message})
