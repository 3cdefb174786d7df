"""
Gestionnaires d'exceptions (utilisés par la factory).
- HTTPException (dont les erreurs métier de backend.errors): {"detail": ..., **extra}
- Corps de requête invalide: 400 (et non 422), aligné sur les erreurs de validation métier
- Erreur inattendue: journalisée, 500 générique
"""
import logging
from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(HTTPException)
    async def json_http_error(request: Request, exc: HTTPException):
        content = {"detail": exc.detail}
        content.update(getattr(exc, "extra", None) or {})
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(content), headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def json_validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"detail": "Requête invalide", "errors": jsonable_encoder(exc.errors())})

    @app.exception_handler(Exception)
    async def json_unexpected_error(request: Request, exc: Exception):
        logger.exception("Erreur inattendue %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Erreur interne du serveur"})
