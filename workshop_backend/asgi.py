"""
ASGI entrypoint: expose `app` for process managers / deployments.

- En production, un process manager (ex: gunicorn + uvicorn workers) importe `workshop_backend.asgi:app`.
- Toute la configuration (routes, middlewares, lifespan) est centralisée dans la factory.
"""

from workshop_backend.app import app

__all__ = ["app"]
