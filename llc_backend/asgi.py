"""
ASGI entrypoint: expose `app` for process managers / deployments.

- En production, un process manager (ex: gunicorn/uvicorn-workers) importe `llc_backend.asgi:app`.
- Toute la configuration FastAPI est centralisée dans llc_backend.app, ce fichier
  ne fait qu'exposer l'instance `app`.
"""

from llc_backend.app import app

if __name__ == "__main__":
    import os
    import uvicorn
    uvicorn.run(
        "llc_backend.asgi:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=True,     # rechargement automatique en dev
    )
