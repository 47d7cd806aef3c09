from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse
from sqlalchemy.orm import Session

from ..config import get_settings
from ..db import get_db
from ..errors import AccessError, PasswordRequired
from ..gate import check_access, is_expired, set_session_cookie, verify_password
from ..pages import error_page, gate_page, preview_page
from ..resolver import resolve
from ..schemas import ErrorResponse, MappingInfo, VerifyPasswordRequest, VerifyPasswordResponse
from ..security import session_cookie_name, session_is_valid

logger = logging.getLogger(__name__)

api_router = APIRouter(prefix="/api", tags=["access"])
page_router = APIRouter(tags=["pages"], include_in_schema=False)


def _resolve_or_http(db: Session, hash_: str):
    try:
        return resolve(db, hash_)
    except AccessError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc


@api_router.post(
    "/verify-password",
    response_model=VerifyPasswordResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        410: {"model": ErrorResponse},
    },
)
def verify_password_route(payload: VerifyPasswordRequest, db: Session = Depends(get_db)):
    if not payload.hash or payload.password in (None, ""):
        raise HTTPException(status_code=400, detail="Missing required fields")
    mapping = _resolve_or_http(db, payload.hash)
    try:
        token = verify_password(mapping, str(payload.password))
    except AccessError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc
    response = JSONResponse(VerifyPasswordResponse(success=True).model_dump())
    if token:
        logger.info(f"Password verified for {mapping.hash}")
        set_session_cookie(response, mapping.hash, token)
    return response


@api_router.get(
    "/mapping/{hash}",
    response_model=MappingInfo,
    response_model_by_alias=True,
    responses={404: {"model": ErrorResponse}, 410: {"model": ErrorResponse}},
)
def mapping_info(hash: str, request: Request, db: Session = Depends(get_db)):
    mapping = _resolve_or_http(db, hash)
    if is_expired(mapping):
        raise HTTPException(status_code=410, detail="Link expired")
    unlocked = not mapping.password or session_is_valid(
        request.cookies.get(session_cookie_name(mapping.hash)), mapping.hash
    )
    base_url = get_settings().public_base_url.rstrip("/")
    return MappingInfo(
        hash=mapping.hash,
        filename=mapping.filename,
        # Only reveal where a protected image lives once the caller is verified
        url=mapping.url if unlocked else None,
        short_url=f"{base_url}/{mapping.hash}",
        file_extension=mapping.file_extension,
        created_at=mapping.created_at,
        expires_at=mapping.expires_at,
        has_password=mapping.has_password,
    )


@page_router.get("/{hash}/p", response_class=HTMLResponse)
def preview(hash: str, request: Request, db: Session = Depends(get_db)):
    try:
        mapping = resolve(db, hash)
        check_access(mapping, request.cookies)
    except PasswordRequired:
        return HTMLResponse(gate_page(hash), headers={"Cache-Control": "no-store"})
    except AccessError as exc:
        return HTMLResponse(error_page(exc.status_code, exc.detail), status_code=exc.status_code)
    suffix = f".{mapping.file_extension}" if mapping.file_extension else ""
    return HTMLResponse(preview_page(mapping.hash, f"/{mapping.hash}{suffix}", mapping.filename))
