"""
HTTP API for the care recurrence service.

FastAPI application exposing rule editing, previews and item completion.
"""
