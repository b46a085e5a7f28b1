from typing import Optional

from fastapi import APIRouter, Depends, Form, Request

from ..auth.security import Area, guard
from ..auth.session import SessionContext
from ..schemas.cashflow import CATEGORIES, TransactionForm, TransactionType
from ..screens.cashflow import CashFlowScreen
from .ui import back_to, render


router = APIRouter(prefix="/cashflow", tags=["cashflow"])

CASHFLOW_PATH = "/cashflow"


def get_cashflow(ctx: SessionContext = Depends(guard(Area.STAFF))) -> CashFlowScreen:
    return ctx.open_screen("cashflow", lambda: CashFlowScreen(ctx.backend, ctx.profile))


@router.get("")
def cashflow_page(
    request: Request,
    edit: Optional[str] = None,
    new: bool = False,
    ctx: SessionContext = Depends(guard(Area.STAFF)),
    screen: CashFlowScreen = Depends(get_cashflow),
):
    editing = screen.get(edit) if edit else None
    form = screen.form_for(editing.id) if editing else (TransactionForm() if new else None)
    return render(
        request,
        "cashflow.html",
        ctx,
        screen,
        form=form,
        editing=editing,
        categories=CATEGORIES,
        types=list(TransactionType),
    )


@router.post("/transactions")
def save_transaction(
    type: TransactionType = Form(TransactionType.EXPENSE),
    amount: str = Form(""),
    category: str = Form(CATEGORIES[0]),
    description: str = Form(""),
    date: str = Form(""),
    editing_id: str = Form(""),
    screen: CashFlowScreen = Depends(get_cashflow),
):
    form = TransactionForm(type=type, amount=amount, category=category, description=description, date=date)
    screen.save(form, editing_id or None)
    return back_to(CASHFLOW_PATH)


@router.post("/transactions/{transaction_id}/delete")
def delete_transaction(
    transaction_id: str,
    confirmed: bool = Form(False),
    screen: CashFlowScreen = Depends(get_cashflow),
):
    screen.delete(transaction_id, confirmed)
    return back_to(CASHFLOW_PATH)
