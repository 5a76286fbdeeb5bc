"""
HTTP surface - FastAPI app factory and trigger authentication.
"""

from .app import AppServices, AuthError, create_app, verify_secret

__all__ = ["AppServices", "AuthError", "create_app", "verify_secret"]
