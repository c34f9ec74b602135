"""
Financial Formula Module

Pure functions for the flat-interest loan product and the cash-flow
aggregates shown on summary views. Nothing here touches state.

Interest is a flat 20% of principal, not amortized or compounded.
Fractional interest is rounded half-up to the whole rupiah, so every
figure returned here is an integer.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List

from .currency import round_whole
from .cashflow import CashTransaction, TransactionType, TransactionCategory


INTEREST_RATE = Decimal('0.20')
REPAYMENT_FACTOR = Decimal('1') + INTEREST_RATE


def _check_principal(principal: int) -> None:
    if principal < 0:
        raise ValueError(f"Principal must be non-negative, got {principal}")


def exact_interest(principal: int) -> Decimal:
    """Unrounded interest, for callers that apply their own rounding"""
    _check_principal(principal)
    return Decimal(principal) * INTEREST_RATE


def interest(principal: int) -> int:
    """Flat interest on a principal, rounded to the whole rupiah"""
    return round_whole(exact_interest(principal))


def total_due(principal: int) -> int:
    """Amount a borrower repays: principal plus flat interest"""
    return principal + interest(principal)


@dataclass(frozen=True)
class RepaymentSplit:
    """Principal/interest recovered from a repayment total"""
    total: int
    principal: int
    interest: int

    @property
    def exact(self) -> bool:
        """True when the total is exactly what total_due() gives for this principal.

        A False here means the row was entered or edited by hand and the
        split is only an approximation.
        """
        return total_due(self.principal) == self.total


def inverse_split(total_repayment: int) -> RepaymentSplit:
    """Recover principal and interest from a repayment amount alone.

    Only exact for totals produced by total_due(); any other figure gets
    a split fabricated by dividing by 1.2.
    """
    if total_repayment < 0:
        raise ValueError(f"Repayment total must be non-negative, got {total_repayment}")
    principal = round_whole(Decimal(total_repayment) / REPAYMENT_FACTOR)
    return RepaymentSplit(
        total=total_repayment,
        principal=principal,
        interest=total_repayment - principal,
    )


# Ledger aggregates

def _sum(transactions: Iterable[CashTransaction]) -> int:
    return sum(t.amount for t in transactions)


def initial_balance(transactions: Iterable[CashTransaction]) -> int:
    return _sum(t for t in transactions if t.category == TransactionCategory.INITIAL_BALANCE)


def gross_income(transactions: Iterable[CashTransaction]) -> int:
    """All INCOME rows except the opening balance"""
    return _sum(
        t for t in transactions
        if t.type == TransactionType.INCOME and t.category != TransactionCategory.INITIAL_BALANCE
    )


def gross_expense(transactions: Iterable[CashTransaction]) -> int:
    """All EXPENSE rows, disbursements included"""
    return _sum(t for t in transactions if t.type == TransactionType.EXPENSE)


def manual_income(transactions: Iterable[CashTransaction]) -> int:
    return _sum(
        t for t in transactions
        if t.type == TransactionType.INCOME and t.category == TransactionCategory.MANUAL
    )


def repayments(transactions: Iterable[CashTransaction]) -> List[CashTransaction]:
    return [t for t in transactions if t.category == TransactionCategory.LOAN_REPAYMENT]


def repayment_interest(transactions: Iterable[CashTransaction]) -> int:
    """Interest portion of all repayment rows, via inverse_split()"""
    return sum(inverse_split(t.amount).interest for t in repayments(transactions))


def reported_income(transactions: Iterable[CashTransaction]) -> int:
    """Opening balance + manual income + interest earned.

    Returned principal is left out: that capital is already counted in
    the opening balance it was lent from.
    """
    rows = list(transactions)
    return initial_balance(rows) + manual_income(rows) + repayment_interest(rows)


def closing_balance(transactions: Iterable[CashTransaction]) -> int:
    """Physical cash on hand.

    Expense already includes disbursements, so lent capital leaves once
    and comes back once through the full repayment amount.
    """
    rows = list(transactions)
    return (
        initial_balance(rows)
        + manual_income(rows)
        + _sum(repayments(rows))
        - gross_expense(rows)
    )


@dataclass(frozen=True)
class LedgerSummary:
    """Every derived figure of the cash-flow view"""
    initial_balance: int
    gross_income: int
    gross_expense: int
    manual_income: int
    repayment_total: int
    repayment_principal: int
    repayment_interest: int
    reported_income: int
    closing_balance: int
    loan_income: int
    cash_income: int
    loan_expense: int
    cash_expense: int
    inexact_repayments: int

    def to_dict(self) -> dict:
        return {
            'initial_balance': self.initial_balance,
            'gross_income': self.gross_income,
            'gross_expense': self.gross_expense,
            'manual_income': self.manual_income,
            'repayment_total': self.repayment_total,
            'repayment_principal': self.repayment_principal,
            'repayment_interest': self.repayment_interest,
            'reported_income': self.reported_income,
            'closing_balance': self.closing_balance,
            'loan_income': self.loan_income,
            'cash_income': self.cash_income,
            'loan_expense': self.loan_expense,
            'cash_expense': self.cash_expense,
            'inexact_repayments': self.inexact_repayments,
        }


def summarize_ledger(transactions: Iterable[CashTransaction]) -> LedgerSummary:
    """Compute all cash-flow aggregates in one pass over a snapshot"""
    rows = list(transactions)
    splits = [inverse_split(t.amount) for t in repayments(rows)]

    income_rows = [
        t for t in rows
        if t.type == TransactionType.INCOME and t.category != TransactionCategory.INITIAL_BALANCE
    ]
    expense_rows = [t for t in rows if t.type == TransactionType.EXPENSE]

    return LedgerSummary(
        initial_balance=initial_balance(rows),
        gross_income=_sum(income_rows),
        gross_expense=_sum(expense_rows),
        manual_income=manual_income(rows),
        repayment_total=sum(s.total for s in splits),
        repayment_principal=sum(s.principal for s in splits),
        repayment_interest=sum(s.interest for s in splits),
        reported_income=reported_income(rows),
        closing_balance=closing_balance(rows),
        loan_income=_sum(t for t in income_rows if t.is_loan_linked),
        cash_income=_sum(t for t in income_rows if not t.is_loan_linked),
        loan_expense=_sum(t for t in expense_rows if t.is_loan_linked),
        cash_expense=_sum(t for t in expense_rows if not t.is_loan_linked),
        inexact_repayments=sum(1 for s in splits if not s.exact),
    )
