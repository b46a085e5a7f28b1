from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional

from ..schemas.cashflow import Transaction, TransactionForm, TransactionType
from .base import Screen


@dataclass
class Totals:
    income: Decimal
    expense: Decimal

    @property
    def balance(self) -> Decimal:
        return self.income - self.expense


def compute_totals(transactions: Iterable[Transaction]) -> Totals:
    income = Decimal(0)
    expense = Decimal(0)
    for t in transactions:
        if t.type == TransactionType.INCOME:
            income += t.amount
        elif t.type == TransactionType.EXPENSE:
            expense += t.amount
    return Totals(income=income, expense=expense)


class CashFlowScreen(Screen):
    """
    Transaction ledger.

    Which rows come back is decided by the backend's policies (workers do
    not receive income rows); totals are always recomputed from whatever
    list the viewer holds.
    """

    name = "cashflow"

    def __init__(self, backend, profile):
        super().__init__(backend, profile)
        self.transactions: List[Transaction] = []
        self.totals = compute_totals([])

    def _set_transactions(self, transactions: List[Transaction]) -> None:
        self.transactions = transactions
        self.totals = compute_totals(transactions)

    def load(self) -> None:
        self.run(
            "transactions",
            "load_transactions",
            lambda: self.backend.select("transactions", order="date", ascending=False),
            lambda rows: self._set_transactions([Transaction(**r) for r in rows]),
            "Error al cargar transacciones",
        )

    def get(self, transaction_id: str) -> Optional[Transaction]:
        return next((t for t in self.transactions if t.id == transaction_id), None)

    def form_for(self, transaction_id: Optional[str]) -> TransactionForm:
        t = self.get(transaction_id) if transaction_id else None
        if t is None:
            return TransactionForm()
        return TransactionForm(
            type=t.type,
            amount=str(t.amount),
            category=t.category,
            description=t.description,
            date=t.day,
        )

    def save(self, form: TransactionForm, editing_id: Optional[str] = None) -> bool:
        if not form.is_complete():
            return False
        values = form.to_record()
        if editing_id:
            current = self.get(editing_id)
            if current is None:
                return False

            def apply_update(_):
                updated = current.model_copy(update={**values, "type": form.type, "amount": form.parsed_amount()})
                self._set_transactions([updated if t.id == editing_id else t for t in self.transactions])

            return self.run(
                f"transaction:{editing_id}",
                "update_transaction",
                lambda: self.backend.update("transactions", values, eq={"id": editing_id}),
                apply_update,
                "Error al actualizar",
            )

        values["created_by"] = self.profile.id
        return self.run(
            "transactions",
            "create_transaction",
            lambda: self.backend.insert("transactions", values),
            lambda row: self._set_transactions([Transaction(**row), *self.transactions]),
            "Error al guardar",
        )

    def delete(self, transaction_id: str, confirmed: bool) -> bool:
        if not confirmed or self.get(transaction_id) is None:
            return False
        return self.run(
            f"transaction:{transaction_id}",
            "delete_transaction",
            lambda: self.backend.delete("transactions", eq={"id": transaction_id}),
            lambda _: self._set_transactions([t for t in self.transactions if t.id != transaction_id]),
            "Error al eliminar",
        )
