# Session endpoints: simulated login/register against the user collection, logout, profile edit.
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, status

from .. import schemas
from ..console import Console, get_console, login_required, require_session
from ..errors import UserNotFound
from ..rate_limit import rate_limit
from ..session import RegistrationFailed, describe

router = APIRouter()


@router.get("/auth/me", response_model=schemas.SessionRead)
def me(console: Console = Depends(get_console)) -> Dict[str, Any]:
    return describe(console.session.current_user())


@router.post(
    "/auth/login",
    response_model=schemas.SessionRead,
    dependencies=[Depends(rate_limit("login"))],
)
async def login(payload: schemas.LoginRequest, console: Console = Depends(get_console)) -> Dict[str, Any]:
    try:
        user = await console.session.login(payload.email)
    except UserNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message) from exc
    return describe(user)


@router.post(
    "/auth/register",
    response_model=schemas.SessionRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("register"))],
)
async def register(payload: schemas.RegisterRequest, console: Console = Depends(get_console)) -> Dict[str, Any]:
    try:
        user = await console.session.register(payload.model_dump(exclude_none=True))
    except RegistrationFailed as exc:
        raise HTTPException(status_code=exc.result.status_code, detail=exc.result.as_dict()) from exc
    return describe(user)


@router.post("/auth/logout", response_model=schemas.SessionRead)
def logout(console: Console = Depends(get_console)) -> Dict[str, Any]:
    console.session.logout()
    return describe(None)


@router.put(
    "/auth/profile",
    response_model=schemas.SessionRead,
    dependencies=[Depends(rate_limit("write"))],
)
async def update_profile(
    values: Dict[str, Any] = Body(...),
    console: Console = Depends(require_session),
) -> Dict[str, Any]:
    """
    Update the logged-in user's own record and replace the session subject with
    the server's answer.
    """
    current = console.session.current_user() or {}
    if current.get("id") is None:
        raise login_required()
    merged = {
        "username": current.get("username"),
        "email": current.get("email"),
        "role": current.get("role"),
        **values,
    }
    result = await console.pipeline.update(
        "users", int(current["id"]), merged,
        success="Profile updated successfully!",
        failure="Failed to update profile",
    )
    if not result.ok:
        raise HTTPException(status_code=result.status_code, detail=result.as_dict())
    updated = result.entity or {**current, **{k: v for k, v in merged.items() if k != "password"}}
    return describe(console.session.update_user(updated))
