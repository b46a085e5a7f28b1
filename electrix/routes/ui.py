from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from ..auth.security import Area, guard, home_for
from ..auth.session import SessionContext
from ..config import settings
from ..schemas.auth import Role
from ..utils import format_currency, format_rut


router = APIRouter(tags=["ui"])

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
templates.env.filters["currency"] = format_currency
templates.env.filters["rut"] = format_rut
templates.env.globals["app_name"] = settings.app_name
templates.env.globals["Role"] = Role


def render(
    request: Request,
    name: str,
    ctx: Optional[SessionContext] = None,
    screen=None,
    status_code: int = 200,
    **context,
) -> HTMLResponse:
    """Render ``name`` for the viewer; a pending screen alert is shown once and cleared."""
    notice = screen.pop_notice() if screen is not None else None
    return templates.TemplateResponse(
        request,
        name,
        {
            "viewer": ctx.profile if ctx is not None else None,
            "is_supervisor": bool(ctx and ctx.is_supervisor),
            "notice": notice,
            "screen": screen,
            "path": request.url.path,
            **context,
        },
        status_code=status_code,
    )


def back_to(path: str) -> RedirectResponse:
    # 303 so the browser follows a form POST with a GET
    return RedirectResponse(url=path, status_code=303)


def render_loading(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(request, "loading.html", {"viewer": None, "notice": None, "path": request.url.path})


@router.get("/")
def index(ctx: SessionContext = Depends(guard(Area.INDEX))):
    # The guard always redirects authenticated viewers to their home screen
    return back_to(home_for(ctx.role))


@router.get("/healthz")
def healthz():
    return {"status": "ok"}
