from typing import Optional

from fastapi import APIRouter, Depends, Form, Request
from pydantic import ValidationError

from ..backend.service import AuthFailure, BackendError
from ..config import settings
from ..logging import structlog
from ..routes.ui import back_to, render
from ..schemas.auth import REGISTRABLE_ROLES, RegisterRequest, Role
from .credentials import register_member
from .security import (
    LOGIN_PATH,
    Area,
    create_session_token,
    get_session_context,
    get_session_store,
    guard,
    require_supervisor,
)
from .session import SessionContext, SessionStore


router = APIRouter(tags=["auth"])
logger = structlog.get_logger(__name__)

LOGIN_FAILED = "RUT o contraseña incorrectos"


@router.get("/login")
def login_page(request: Request, _: Optional[SessionContext] = Depends(guard(Area.PUBLIC))):
    return render(request, "login.html")


@router.post("/login")
def login(
    request: Request,
    rut: str = Form(""),
    password: str = Form(""),
    _: Optional[SessionContext] = Depends(guard(Area.PUBLIC)),
    store: SessionStore = Depends(get_session_store),
):
    if not rut.strip() or not password:
        return render(request, "login.html", error=LOGIN_FAILED, rut=rut, status_code=401)
    try:
        ctx = store.sign_in(rut, password)
    except BackendError as e:
        # Wrong credentials, missing profile and deactivated accounts look the same to the visitor
        logger.info("sign_in_failed", error=e.message, auth=isinstance(e, AuthFailure))
        return render(request, "login.html", error=LOGIN_FAILED, rut=rut, status_code=401)
    request.state.session_cookie = create_session_token(ctx)
    return back_to("/")


@router.post("/logout")
def logout(
    request: Request,
    ctx: Optional[SessionContext] = Depends(get_session_context),
    store: SessionStore = Depends(get_session_store),
):
    if ctx is not None:
        store.sign_out(ctx.sid)
    request.state.session_cookie = ""
    return back_to(LOGIN_PATH)


def _register_page(request: Request, ctx: SessionContext, **context):
    return render(
        request,
        "register.html",
        ctx,
        roles=REGISTRABLE_ROLES,
        min_password_length=settings.min_password_length,
        **context,
    )


@router.get("/register")
def register_page(request: Request, ctx: SessionContext = Depends(require_supervisor)):
    return _register_page(request, ctx)


@router.post("/register")
def register(
    request: Request,
    rut: str = Form(""),
    full_name: str = Form(""),
    password: str = Form(""),
    role: str = Form(Role.WORKER.value),
    ctx: SessionContext = Depends(require_supervisor),
    store: SessionStore = Depends(get_session_store),
):
    form = {"rut": rut, "full_name": full_name, "role": role}
    try:
        req = RegisterRequest(rut=rut, full_name=full_name, password=password, role=role)
    except ValidationError:
        return _register_page(request, ctx, error="Rol inválido", form=form, status_code=400)
    if req.role not in REGISTRABLE_ROLES:
        return _register_page(request, ctx, error="Rol inválido", form=form, status_code=400)
    if not req.rut or not req.full_name or len(req.password) < settings.min_password_length:
        return _register_page(
            request,
            ctx,
            error=f"Completa todos los campos (contraseña de al menos {settings.min_password_length} caracteres)",
            form=form,
            status_code=400,
        )
    try:
        profile = register_member(store.factory, req)
    except BackendError as e:
        logger.error("register_failed", rut=req.rut, error=e.message)
        return _register_page(request, ctx, error=f"Error al registrar: {e.message}", form=form, status_code=400)

    team = ctx.screens.get("team")
    if team is not None:
        team.add_member(profile)
        team.alert(f"Usuario {profile.full_name} registrado correctamente.", level="info")
    return back_to("/team")
