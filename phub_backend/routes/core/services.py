"""
Access to the service container attached to the aiohttp application.
"""
from typing import Any

from aiohttp import web

from ...shared import ErrorCode, Result

SERVICES_KEY: web.AppKey[dict] = web.AppKey("photohub_services", dict)


def _require_services(request: web.Request) -> tuple[dict[str, Any] | None, Result | None]:
    services = request.app.get(SERVICES_KEY)
    if not services:
        return None, Result.Err(ErrorCode.DB_ERROR, "Services are not initialized")
    return services, None
