# File: app/api/__init__.py
"""
API package for LodgePay.

This package contains the HTTP layer: endpoints, dependencies, error
mapping and routing configuration.
"""

from app.api import deps, endpoints
from app.api.api import api_router
