from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile

from ..auth.security import WORKFLOW_PATH, Area, get_session_store, guard
from ..auth.session import SessionContext, SessionStore
from ..config import settings
from ..schemas.workflow import CLIENT_TYPES, STATUS_OPTIONS
from ..screens.housing_unit import HousingUnitRow
from ..screens.workflow import WorkflowScreen
from .ui import back_to, render


router = APIRouter(prefix="/workflow", tags=["workflow"])


def get_workflow(
    ctx: SessionContext = Depends(guard(Area.STAFF)),
    store: SessionStore = Depends(get_session_store),
) -> WorkflowScreen:
    return ctx.open_screen("workflow", lambda: WorkflowScreen(ctx.backend, ctx.profile, store.factory))


def get_row(unit_id: str, screen: WorkflowScreen = Depends(get_workflow)) -> HousingUnitRow:
    row = screen.row(unit_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Vivienda no encontrada")
    return row


@router.get("")
def workflow_page(
    request: Request,
    edit: Optional[str] = None,
    ctx: SessionContext = Depends(guard(Area.STAFF)),
    screen: WorkflowScreen = Depends(get_workflow),
):
    return render(
        request,
        "workflow.html",
        ctx,
        screen,
        edit=edit,
        client_types=CLIENT_TYPES,
        status_options=STATUS_OPTIONS,
        min_password_length=settings.min_password_length,
    )


# Clients

@router.post("/clients/select")
def select_client(client_id: str = Form(""), screen: WorkflowScreen = Depends(get_workflow)):
    screen.select_client(client_id)
    return back_to(WORKFLOW_PATH)


@router.post("/clients")
def create_client(
    name: str = Form(""),
    type: str = Form(CLIENT_TYPES[0]),
    rut: str = Form(""),
    screen: WorkflowScreen = Depends(get_workflow),
):
    screen.create_client(name, type, rut)
    return back_to(WORKFLOW_PATH)


@router.post("/clients/update")
def update_client(
    name: str = Form(""),
    type: str = Form(CLIENT_TYPES[0]),
    rut: str = Form(""),
    screen: WorkflowScreen = Depends(get_workflow),
):
    screen.update_client(name, type, rut)
    return back_to(WORKFLOW_PATH)


@router.post("/clients/delete")
def delete_client(confirmed: bool = Form(False), screen: WorkflowScreen = Depends(get_workflow)):
    screen.delete_client(confirmed)
    return back_to(WORKFLOW_PATH)


@router.post("/clients/access")
def generate_access(password: str = Form(""), screen: WorkflowScreen = Depends(get_workflow)):
    if not screen.is_supervisor:
        raise HTTPException(status_code=403, detail="Forbidden")
    screen.generate_access(password)
    return back_to(WORKFLOW_PATH)


# Projects

@router.post("/projects/select")
def select_project(project_id: str = Form(""), screen: WorkflowScreen = Depends(get_workflow)):
    screen.select_project(project_id)
    return back_to(WORKFLOW_PATH)


@router.post("/projects")
def create_project(name: str = Form(""), screen: WorkflowScreen = Depends(get_workflow)):
    screen.create_project(name)
    return back_to(WORKFLOW_PATH)


@router.post("/projects/update")
def update_project(
    name: str = Form(""),
    status: str = Form(""),
    screen: WorkflowScreen = Depends(get_workflow),
):
    screen.update_project(name, status)
    return back_to(WORKFLOW_PATH)


@router.post("/projects/delete")
def delete_project(confirmed: bool = Form(False), screen: WorkflowScreen = Depends(get_workflow)):
    screen.delete_project(confirmed)
    return back_to(WORKFLOW_PATH)


# Housing units

@router.post("/units")
def create_unit(name: str = Form(""), screen: WorkflowScreen = Depends(get_workflow)):
    screen.create_unit(name)
    return back_to(WORKFLOW_PATH)


@router.post("/units/{unit_id}/delete")
def delete_unit(unit_id: str, confirmed: bool = Form(False), screen: WorkflowScreen = Depends(get_workflow)):
    screen.delete_unit(unit_id, confirmed)
    return back_to(WORKFLOW_PATH)


@router.post("/units/{unit_id}/status")
def toggle_status(stage: str = Form(""), row: HousingUnitRow = Depends(get_row)):
    try:
        row.toggle_status(stage)
    except ValueError:
        raise HTTPException(status_code=400, detail="Etapa inválida")
    return back_to(WORKFLOW_PATH)


@router.post("/units/{unit_id}/tab")
def select_tab(tab: str = Form(""), row: HousingUnitRow = Depends(get_row)):
    row.select_tab(tab or None)
    return back_to(WORKFLOW_PATH)


@router.post("/units/{unit_id}/expand")
def toggle_expanded(row: HousingUnitRow = Depends(get_row)):
    row.toggle_expanded()
    return back_to(WORKFLOW_PATH)


@router.post("/units/{unit_id}/comments")
def save_comment(comments: str = Form(""), row: HousingUnitRow = Depends(get_row)):
    row.save_comment(comments)
    return back_to(WORKFLOW_PATH)


@router.post("/units/{unit_id}/rename")
def rename_unit(name: str = Form(""), row: HousingUnitRow = Depends(get_row)):
    row.rename(name)
    return back_to(WORKFLOW_PATH)


@router.post("/units/{unit_id}/images")
def upload_image(file: UploadFile = File(...), row: HousingUnitRow = Depends(get_row)):
    content = file.file.read()
    row.upload_image(file.filename or "", content, file.content_type)
    return back_to(WORKFLOW_PATH)


@router.post("/units/{unit_id}/images/delete")
def delete_image(url: str = Form(""), confirmed: bool = Form(False), row: HousingUnitRow = Depends(get_row)):
    row.delete_image(url, confirmed)
    return back_to(WORKFLOW_PATH)
