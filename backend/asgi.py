"""
ASGI entrypoint: expose `app` pour les process managers / déploiements.

- En production, un process manager (ex: gunicorn/uvicorn-workers) importe `backend.asgi:app`.
- Toute la configuration FastAPI est centralisée dans backend.app_setup; ce fichier n'expose que l'instance.
"""

from backend.app import app

__all__ = ["app"]
