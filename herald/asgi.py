"""ASGI entry point: ``hypercorn herald.asgi:app``."""

from herald.app_factory import create_app

app = create_app()
