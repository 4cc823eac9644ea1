"""
Route handlers.
"""
from .index import register_index_routes

__all__ = ["register_index_routes"]
