"""
ASGI entry point for the care recurrence API.

Re-exports the FastAPI app from care_recurrence/api/main.py, e.g.:
    uvicorn care_recurrence.app:app
"""

from care_recurrence.api.main import app

__all__ = ["app"]
