"""
App assembly entry point.

Re-exports the FastAPI `app` from `academy.api.main` for `uvicorn app:app`.
"""

from academy.api.main import app  # noqa: F401
