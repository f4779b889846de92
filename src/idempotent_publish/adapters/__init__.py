"""Framework adapters for idempotent publishing.

- asgi.py: FastAPI application exposing the publish endpoint, plus the
  conversion between Starlette responses and stored ``HttpResponse`` values.
"""

from idempotent_publish.adapters.asgi import create_app, from_starlette, to_starlette

__all__ = ["create_app", "from_starlette", "to_starlette"]
