import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import jwt
import structlog
from fastapi import Depends, HTTPException, Request, status

from ..config import settings
from ..schemas.auth import Role
from .session import SessionContext, SessionStore


logger = structlog.get_logger(__name__)

LOGIN_PATH = "/login"
PORTAL_PATH = "/client-view"
WORKFLOW_PATH = "/workflow"


def create_session_token(ctx: SessionContext) -> str:
    now = int(time.time())
    payload = {
        "sid": ctx.sid,
        "at": ctx.session.access_token,
        "rt": ctx.session.refresh_token,
        "iat": now,
        "exp": now + settings.session_ttl_seconds,
    }
    return jwt.encode(payload, settings.session_secret, algorithm=settings.session_algorithm)


def decode_session_token(token: str) -> Optional[dict]:
    try:
        claims = jwt.decode(token, settings.session_secret, algorithms=[settings.session_algorithm])
    except jwt.ExpiredSignatureError:
        logger.info("session_cookie_expired")
        return None
    except jwt.InvalidTokenError:
        logger.info("session_cookie_invalid")
        return None
    if not all(claims.get(k) for k in ("sid", "at", "rt")):
        return None
    return claims


class Area(str, Enum):
    PUBLIC = "public"     # login
    PORTAL = "portal"     # client portal, any authenticated identity
    STAFF = "staff"       # workflow, cashflow, team, register
    INDEX = "index"       # "/" role router


class Outcome(str, Enum):
    ALLOW = "allow"
    REDIRECT = "redirect"
    LOADING = "loading"


@dataclass
class Navigation:
    outcome: Outcome
    location: Optional[str] = None


def home_for(role: Optional[Role]) -> str:
    return PORTAL_PATH if role == Role.CLIENT else WORKFLOW_PATH


def resolve_navigation(ctx: Optional[SessionContext], area: Area) -> Navigation:
    """Decide whether the viewer described by ``ctx`` may see a route in ``area``."""
    if ctx is not None and ctx.loading:
        return Navigation(Outcome.LOADING)
    authenticated = ctx is not None and ctx.authenticated
    if area == Area.PUBLIC:
        if authenticated:
            return Navigation(Outcome.REDIRECT, "/")
        return Navigation(Outcome.ALLOW)
    if not authenticated:
        return Navigation(Outcome.REDIRECT, LOGIN_PATH)
    if area == Area.INDEX:
        return Navigation(Outcome.REDIRECT, home_for(ctx.role))
    if area == Area.STAFF and ctx.role == Role.CLIENT:
        return Navigation(Outcome.REDIRECT, PORTAL_PATH)
    return Navigation(Outcome.ALLOW)


class GuardRedirect(Exception):
    """Raised by route dependencies when navigation must not reach the endpoint."""

    def __init__(self, navigation: Navigation):
        super().__init__(navigation.outcome.value)
        self.navigation = navigation


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store


def get_session_context(
    request: Request,
    store: SessionStore = Depends(get_session_store),
) -> Optional[SessionContext]:
    token = request.cookies.get(settings.session_cookie_name)
    if not token:
        return None
    claims = decode_session_token(token)
    if claims is None:
        request.state.session_cookie = ""
        return None
    ctx = store.get(claims["sid"])
    if ctx is None:
        ctx = store.restore(claims["sid"], claims["at"], claims["rt"])
        if ctx is None:
            request.state.session_cookie = ""
            return None
    # Tokens rotate on refresh; keep the browser copy current
    if ctx.authenticated and ctx.session.refresh_token != claims["rt"]:
        request.state.session_cookie = create_session_token(ctx)
    return ctx


def guard(area: Area):
    def _dep(ctx: Optional[SessionContext] = Depends(get_session_context)) -> Optional[SessionContext]:
        nav = resolve_navigation(ctx, area)
        if nav.outcome != Outcome.ALLOW:
            raise GuardRedirect(nav)
        return ctx

    return _dep


def require_supervisor(ctx: SessionContext = Depends(guard(Area.STAFF))) -> SessionContext:
    if not ctx.is_supervisor:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return ctx
