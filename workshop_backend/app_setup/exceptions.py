"""
Gestionnaires d'exceptions de l'application.
- DomainError (et sous-classes): {"success": false, "message": ...} avec le status de l'erreur.
- RequestValidationError sur /api/: 400 avec la liste des champs fautifs.
- HTTPException: JSON {"detail": ...} (401/403 d'authentification, 429 du rate limit).
"""
import logging
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from workshop_backend.errors import DomainError, scrub_secrets

logger = logging.getLogger(__name__)

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError):
        if exc.status_code >= 500:
            logger.error("%s %s -> %s: %s (%s)", request.method, request.url.path, exc.status_code, exc.message, exc.detail)
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = [
            {
                "field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"),
                "message": scrub_secrets(err.get("msg")),
            }
            for err in exc.errors()
        ]
        status = 400 if request.url.path.startswith("/api/") else 422
        return JSONResponse(
            status_code=status,
            content={"success": False, "message": "Invalid request body", "errors": errors},
        )

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)
