"""
Catalog indexing endpoints.
"""
import json
from contextlib import aclosing
from pathlib import Path
from typing import Optional

from aiohttp import web

from ...features.index.scan_streaming import stream_scan
from ...path_utils import normalize_path
from ...shared import ErrorCode, Result, get_logger
from ..core import _json_response, _require_services

logger = get_logger(__name__)

NDJSON_CONTENT_TYPE = "application/x-ndjson"


def _resolve_scan_root(request: web.Request, services: dict) -> Result[Optional[Path]]:
    """Optional `root` query parameter; it must lie inside the managed library."""
    raw = str(request.query.get("root") or "").strip()
    if not raw:
        return Result.Ok(None)
    resolver = services["resolver"]
    candidate = resolver.resolve(raw) if resolver.is_virtual(raw) else normalize_path(raw)
    if candidate is None or not resolver.is_managed(candidate):
        return Result.Err(ErrorCode.INVALID_INPUT, "Scan root must be inside the library")
    return Result.Ok(candidate)


def register_index_routes(routes: web.RouteTableDef) -> None:
    """Register catalog indexing routes."""

    @routes.get("/api/assets/index")
    async def index_assets(request: web.Request) -> web.Response:
        """Run one scan and return its statistics."""
        svc, error_result = _require_services(request)
        if error_result:
            return _json_response(error_result)
        root_res = _resolve_scan_root(request, svc)
        if not root_res.ok:
            return _json_response(root_res)

        result = await svc["synchronizer"].run(root_res.data)
        if not result.ok:
            return _json_response(result)
        stats = result.data
        return _json_response(Result.Ok(stats.to_dict(), message=stats.summary(), **result.meta))

    @routes.get("/api/assets/index/stream")
    async def index_assets_stream(request: web.Request) -> web.StreamResponse:
        """Run one scan and stream its progress as newline-delimited JSON."""
        svc, error_result = _require_services(request)
        if error_result:
            return _json_response(error_result)
        root_res = _resolve_scan_root(request, svc)
        if not root_res.ok:
            return _json_response(root_res)

        response = web.StreamResponse(headers={"Content-Type": NDJSON_CONTENT_TYPE, "Cache-Control": "no-cache"})
        await response.prepare(request)
        connected = True
        async with aclosing(stream_scan(svc["synchronizer"], root_res.data)) as updates:
            async for update in updates:
                line = json.dumps(update.to_dict(), ensure_ascii=False, default=str) + "\n"
                try:
                    await response.write(line.encode("utf-8"))
                except ConnectionResetError:
                    logger.info("Progress client disconnected")
                    connected = False
                    break
        if connected:
            await response.write_eof()
        return response
