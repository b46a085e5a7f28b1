from fastapi import APIRouter, Depends, Form, Request

from ..auth.security import PORTAL_PATH, Area, guard
from ..auth.session import SessionContext
from ..schemas.workflow import STATUS_OPTIONS
from ..screens.client_view import ClientPortalScreen
from .ui import back_to, render


router = APIRouter(prefix=PORTAL_PATH, tags=["client-view"])


def get_portal(ctx: SessionContext = Depends(guard(Area.PORTAL))) -> ClientPortalScreen:
    return ctx.open_screen("client_view", lambda: ClientPortalScreen(ctx.backend, ctx.profile))


@router.get("")
def client_view_page(
    request: Request,
    ctx: SessionContext = Depends(guard(Area.PORTAL)),
    screen: ClientPortalScreen = Depends(get_portal),
):
    return render(request, "client_view.html", ctx, screen, status_options=STATUS_OPTIONS)


@router.post("/select-client")
def select_client(client_id: str = Form(""), screen: ClientPortalScreen = Depends(get_portal)):
    screen.select_client(client_id)
    return back_to(PORTAL_PATH)


@router.post("/select-project")
def select_project(project_id: str = Form(""), screen: ClientPortalScreen = Depends(get_portal)):
    screen.select_project(project_id)
    return back_to(PORTAL_PATH)
