# Overview: Deposit arithmetic. The one place cash sales and expenses are combined.

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Iterable

from .sales_service import SalesBuckets


def _expense_amount(expense: Any) -> int:
    if isinstance(expense, dict):
        return int(expense.get("amount") or 0)
    if isinstance(expense, (int, float)):
        return int(expense)
    return int(getattr(expense, "amount", 0) or 0)


def total_expenses(expenses: Iterable[Any]) -> int:
    return sum(_expense_amount(e) for e in expenses)


def compute_deposit(cash_sales: int, expenses: Iterable[Any]) -> int:
    """
    Cash the rider must hand over: cash sales minus expenses, floored at zero.

    Accepts expense dicts, objects with an ``amount`` attribute, or plain
    numbers. A shortfall is never represented as a negative deposit.
    """
    return max(0, int(cash_sales) - total_expenses(expenses))


@dataclass(frozen=True)
class ClosingTotals:
    total_sales: int
    cash_sales: int
    qris_sales: int
    transfer_sales: int
    total_expenses: int
    deposit: int
    total_transactions: int

    def to_dict(self) -> dict:
        return asdict(self)


def compute_closing_totals(sales: SalesBuckets, expenses: Iterable[Any]) -> ClosingTotals:
    """
    Closing figures written to both the shift and the daily report.

    Computed once per submission so the two records cannot diverge.
    """
    expenses = list(expenses)
    return ClosingTotals(
        total_sales=sales.total,
        cash_sales=sales.cash,
        qris_sales=sales.qris,
        transfer_sales=sales.transfer,
        total_expenses=total_expenses(expenses),
        deposit=compute_deposit(sales.cash, expenses),
        total_transactions=sales.count,
    )
