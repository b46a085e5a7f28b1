from fastapi import APIRouter, Depends, Form, Request

from ..auth.security import Area, guard, require_supervisor
from ..auth.session import SessionContext
from ..config import settings
from ..schemas.auth import Role
from ..screens.team import TeamScreen
from .ui import back_to, render


router = APIRouter(prefix="/team", tags=["team"])

TEAM_PATH = "/team"


def get_team(ctx: SessionContext = Depends(guard(Area.STAFF))) -> TeamScreen:
    return ctx.open_screen("team", lambda: TeamScreen(ctx.backend, ctx.profile))


@router.get("")
def team_page(
    request: Request,
    q: str = "",
    ctx: SessionContext = Depends(guard(Area.STAFF)),
    screen: TeamScreen = Depends(get_team),
):
    return render(
        request,
        "team.html",
        ctx,
        screen,
        q=q,
        members=screen.search(q),
        roles=list(Role),
        min_password_length=settings.min_password_length,
    )


@router.post("/{user_id}/role")
def change_role(
    user_id: str,
    role: Role = Form(...),
    _: SessionContext = Depends(require_supervisor),
    screen: TeamScreen = Depends(get_team),
):
    screen.change_role(user_id, role)
    return back_to(TEAM_PATH)


@router.post("/{user_id}/active")
def set_active(
    user_id: str,
    active: bool = Form(False),
    confirmed: bool = Form(False),
    _: SessionContext = Depends(require_supervisor),
    screen: TeamScreen = Depends(get_team),
):
    screen.set_active(user_id, active, confirmed)
    return back_to(TEAM_PATH)


@router.post("/{user_id}/delete")
def delete_member(
    user_id: str,
    confirmed: bool = Form(False),
    _: SessionContext = Depends(require_supervisor),
    screen: TeamScreen = Depends(get_team),
):
    screen.delete_member(user_id, confirmed)
    return back_to(TEAM_PATH)


@router.post("/{user_id}/password")
def reset_password(
    user_id: str,
    new_password: str = Form(""),
    _: SessionContext = Depends(require_supervisor),
    screen: TeamScreen = Depends(get_team),
):
    screen.reset_password(user_id, new_password)
    return back_to(TEAM_PATH)
