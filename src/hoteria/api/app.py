"""ASGI entrypoint: uvicorn hoteria.api.app:app (role from APP_ROLE)."""

from hoteria.api.factory import create_app

app = create_app()
