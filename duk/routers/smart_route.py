from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response, StreamingResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ..classifier import ClientKind, classify, classify_with_rule, wants_json
from ..db import get_db
from ..errors import AccessError, PasswordRequired, UpstreamFetchFailure
from ..fetcher import UpstreamFetcher, get_fetcher
from ..gate import check_access
from ..pages import error_page, gate_page
from ..resolver import content_type_for, parse_hash_filename, record_view, resolve
from ..routing import (
    RedirectToPreview,
    StreamObject,
    cache_control_for,
    decide,
    placeholder_image,
)
from ..s3 import open_object
from ..schemas import ResolvedMapping

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/smart-route", tags=["smart-route"])
# Bare /<hash>; included last so it never shadows other routes
root_router = APIRouter(tags=["smart-route"], include_in_schema=False)


def placeholder_response(status_code: int = 200) -> Response:
    body, media_type = placeholder_image()
    return Response(
        content=body,
        status_code=status_code,
        media_type=media_type,
        headers={"Cache-Control": "no-store", "X-Duk-Fallback": "placeholder"},
    )


def error_response(exc: AccessError, request: Request, hash_: str) -> Response:
    """Render a terminal state for the kind of caller asking."""
    if wants_json(request.headers):
        return JSONResponse({"detail": exc.detail}, status_code=exc.status_code)
    if classify(request.headers) is ClientKind.BROWSER:
        if isinstance(exc, PasswordRequired):
            content = gate_page(hash_)
        else:
            content = error_page(exc.status_code, exc.detail)
        return HTMLResponse(content, status_code=exc.status_code, headers={"Cache-Control": "no-store"})
    # Embeds and tools always get an image body, never an HTML error page
    return placeholder_response(exc.status_code)


def _image_headers(mapping: ResolvedMapping, content_length) -> dict[str, str]:
    headers = {
        "Cache-Control": cache_control_for(mapping),
        "X-Content-Type-Options": "nosniff",
    }
    if content_length is not None:
        headers["Content-Length"] = str(content_length)
    return headers


async def _proxy_external(
    url: str,
    extension: str | None,
    mapping: ResolvedMapping,
    fetcher: UpstreamFetcher,
    head_only: bool = False,
) -> Response | None:
    try:
        upstream = await fetcher.open(url)
    except UpstreamFetchFailure as exc:
        logger.warning(f"Serving placeholder for {mapping.hash}: {exc.detail}")
        return None
    headers = _image_headers(mapping, upstream.content_length)
    if upstream.content_encoding:
        headers["Content-Encoding"] = upstream.content_encoding
    media_type = upstream.content_type or content_type_for(extension) or "application/octet-stream"
    if head_only:
        await upstream.aclose()
        return Response(status_code=200, media_type=media_type, headers=headers)
    return StreamingResponse(upstream.iter_bytes(), media_type=media_type, headers=headers)


async def _stream_object(
    strategy: StreamObject,
    mapping: ResolvedMapping,
    fetcher: UpstreamFetcher,
    head_only: bool = False,
) -> Response | None:
    target = strategy.target
    try:
        stored = await run_in_threadpool(open_object, target.key, target.tier)
    except FileNotFoundError:
        if target.public_url:
            logger.info(f"Object {target.key} not readable in-process, proxying {mapping.hash} from origin")
            return await _proxy_external(target.public_url, strategy.extension, mapping, fetcher, head_only)
        logger.warning(f"Object {target.key} for {mapping.hash} is missing")
        return None
    media_type = content_type_for(strategy.extension) or stored.content_type or "application/octet-stream"
    if head_only:
        stored.close()
        return Response(status_code=200, media_type=media_type, headers=_image_headers(mapping, stored.content_length))
    return StreamingResponse(
        stored.iter_chunks(),
        media_type=media_type,
        headers=_image_headers(mapping, stored.content_length),
    )


async def route(
    raw_hash: str,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session,
    fetcher: UpstreamFetcher,
) -> Response:
    hash_, extension = parse_hash_filename(raw_hash)
    try:
        mapping = await run_in_threadpool(resolve, db, hash_)
        check_access(mapping, request.cookies)
    except AccessError as exc:
        logger.info(f"Smart route {hash_}: {exc.status_code} {exc.detail}")
        return error_response(exc, request, hash_)

    kind, rule = classify_with_rule(request.headers)
    force_direct = request.query_params.get("direct") == "true"
    strategy = decide(mapping, kind, extension, force_direct=force_direct)
    logger.info(f"Smart route {hash_}: client={kind.value} rule={rule} strategy={type(strategy).__name__}")

    if isinstance(strategy, RedirectToPreview):
        return RedirectResponse(url=strategy.location, status_code=302)
    # HEAD gets the image headers without a body and is not a view
    head_only = request.method == "HEAD"
    if isinstance(strategy, StreamObject):
        response = await _stream_object(strategy, mapping, fetcher, head_only)
    else:
        response = await _proxy_external(strategy.url, strategy.extension, mapping, fetcher, head_only)

    if response is None:
        return placeholder_response()
    if head_only:
        return response
    # Runs after the body has been sent
    background_tasks.add_task(record_view, db.get_bind(), mapping.hash)
    return response


@router.get("/{raw_hash}")
@router.head("/{raw_hash}")
async def smart_route(
    raw_hash: str,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    fetcher: UpstreamFetcher = Depends(get_fetcher),
):
    return await route(raw_hash, request, background_tasks, db, fetcher)


@root_router.get("/{raw_hash}")
@root_router.head("/{raw_hash}")
async def bare_hash(
    raw_hash: str,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    fetcher: UpstreamFetcher = Depends(get_fetcher),
):
    return await route(raw_hash, request, background_tasks, db, fetcher)
