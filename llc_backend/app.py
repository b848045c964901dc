# module llc_backend.app
from fastapi import FastAPI

from llc_backend.app_setup.middlewares import register_basic_middlewares, register_security_middleware, register_force_https_middleware
from llc_backend.app_setup.exceptions import register_exception_handlers
from llc_backend.app_setup.routers import register_routers
from llc_backend.app_setup.lifespan import lifespan

def create_app() -> FastAPI:
    """
    Crée et configure l'instance FastAPI de l'application.
    Étapes et ordre:
      1) register_basic_middlewares: CORS, TrustedHost, ProxyHeaders.
      2) register_security_middleware: en-têtes de sécurité.
      3) register_exception_handlers: erreurs métier -> JSON {"detail": ...} avec leur code.
      4) register_routers: payments (API v1) et health.
      5) register_force_https_middleware: ajouté en dernier pour s'exécuter en premier.
    Retourne:
      - FastAPI: l'application prête à être servie (ASGI).
    """
    app = FastAPI(title="LLC Checkout API", lifespan=lifespan)
    register_basic_middlewares(app)
    register_security_middleware(app)
    register_exception_handlers(app)
    register_routers(app)
    register_force_https_middleware(app)
    return app

# App globale
app = create_app()
