"""
Gestionnaires d'exceptions utilisés par la factory.
- CheckoutError (llc_backend.errors): code HTTP porté par l'exception, body {"detail": ...}
- RequestValidationError: 400 (champs manquants/invalides) au lieu du 422 FastAPI
- HTTPException: JSON standard {"detail": ...}
"""
from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from llc_backend.errors import CheckoutError

def register_exception_handlers(app: FastAPI) -> None:
    """
    Enregistre les handlers d'erreurs de l'API.
    - Les erreurs métier ne remontent jamais en 500 générique: chacune a son code.
    """
    @app.exception_handler(CheckoutError)
    async def checkout_error_handler(request: Request, exc: CheckoutError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = [
            {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
            for e in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content={"detail": "Missing required fields", "errors": jsonable_encoder(errors)},
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=getattr(exc, "headers", None))
