"""
HTTP surface of the indexer.
"""
from aiohttp import web

from .core import SERVICES_KEY
from .handlers import register_index_routes


def build_app(services: dict) -> web.Application:
    """aiohttp application exposing the index routes over `services`."""
    app = web.Application()
    app[SERVICES_KEY] = services
    routes = web.RouteTableDef()
    register_index_routes(routes)
    app.add_routes(routes)

    async def _close_db(app: web.Application) -> None:
        db = app[SERVICES_KEY].get("db")
        if db is not None:
            await db.aclose()

    app.on_cleanup.append(_close_db)
    return app


__all__ = ["build_app", "SERVICES_KEY"]
