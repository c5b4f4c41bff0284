"""API routers for HR Desk."""

from . import auth
from . import health
from . import request_types
from . import requests

__all__ = [
    "auth",
    "health",
    "request_types",
    "requests",
]
