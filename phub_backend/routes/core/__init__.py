"""
Core utilities for route handlers.
"""
from .response import _json_response, safe_error_message
from .services import SERVICES_KEY, _require_services

__all__ = ["_json_response", "safe_error_message", "SERVICES_KEY", "_require_services"]
