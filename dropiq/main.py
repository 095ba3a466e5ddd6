from __future__ import annotations

# Minimal entrypoint module for ASGI servers
# Exposes the FastAPI app constructed in dropiq.api.routes
from dropiq.api.routes import app

__all__ = ["app"]
