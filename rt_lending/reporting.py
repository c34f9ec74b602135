"""
Reporting Module

Read-only views over loans and the cash ledger: portfolio totals for the
dashboard, year and status filters for the list screens, and the stage
timeline a borrower sees for one loan.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Iterable, List, Optional

from .cashflow import CashTransaction, TransactionType
from .loans import Loan, LoanStatus, STATUS_DATE_FIELDS


@dataclass(frozen=True)
class PortfolioSummary:
    """Loan book totals"""
    total_loans: int
    pending_count: int
    active_count: int
    verifying_count: int
    paid_count: int
    rejected_count: int
    total_principal: int         # every loan on the books, any status
    potential_interest: int      # flat interest on total_principal
    principal_lent: int          # approved at some point, never rejected
    interest_earned: int         # interest on loans confirmed paid
    outstanding_principal: int   # lent, not yet confirmed paid
    outstanding_total_due: int

    def to_dict(self) -> dict:
        return {
            'total_loans': self.total_loans,
            'pending_count': self.pending_count,
            'active_count': self.active_count,
            'verifying_count': self.verifying_count,
            'paid_count': self.paid_count,
            'rejected_count': self.rejected_count,
            'total_principal': self.total_principal,
            'potential_interest': self.potential_interest,
            'principal_lent': self.principal_lent,
            'interest_earned': self.interest_earned,
            'outstanding_principal': self.outstanding_principal,
            'outstanding_total_due': self.outstanding_total_due,
        }


def portfolio_summary(loans: Iterable[Loan]) -> PortfolioSummary:
    """Aggregate a loan snapshot into dashboard totals"""
    loans = list(loans)

    def count(status: LoanStatus) -> int:
        return sum(1 for loan in loans if loan.status == status)

    lent = [loan for loan in loans if loan.was_disbursed]
    outstanding = [loan for loan in lent if loan.status != LoanStatus.PAID]
    paid = [loan for loan in loans if loan.status == LoanStatus.PAID]

    return PortfolioSummary(
        total_loans=len(loans),
        pending_count=count(LoanStatus.PENDING),
        active_count=count(LoanStatus.APPROVED),
        verifying_count=count(LoanStatus.PAYMENT_VERIFYING),
        paid_count=len(paid),
        rejected_count=count(LoanStatus.REJECTED),
        total_principal=sum(loan.amount for loan in loans),
        potential_interest=sum(loan.interest for loan in loans),
        principal_lent=sum(loan.amount for loan in lent),
        interest_earned=sum(loan.interest for loan in paid),
        outstanding_principal=sum(loan.amount for loan in outstanding),
        outstanding_total_due=sum(loan.total_due for loan in outstanding),
    )


def filter_loans(loans: Iterable[Loan], status: Optional[LoanStatus] = None,
                 year: Optional[int] = None) -> List[Loan]:
    """Loans matching a status and/or submission year, newest first"""
    result = [
        loan for loan in loans
        if (status is None or loan.status == status)
        and (year is None or loan.submission_date.year == year)
    ]
    return sorted(result, key=lambda l: (l.submission_date, l.id), reverse=True)


def filter_transactions(transactions: Iterable[CashTransaction],
                        transaction_type: Optional[TransactionType] = None,
                        year: Optional[int] = None) -> List[CashTransaction]:
    """Ledger rows matching a type and/or year, newest first"""
    result = [
        t for t in transactions
        if (transaction_type is None or t.type == transaction_type)
        and (year is None or t.date.year == year)
    ]
    return sorted(result, key=lambda t: (t.date, t.id), reverse=True)


def available_years(loans: Iterable[Loan] = (),
                    transactions: Iterable[CashTransaction] = ()) -> List[int]:
    """Distinct years present in the data, latest first"""
    years = {loan.submission_date.year for loan in loans}
    years.update(t.date.year for t in transactions)
    return sorted(years, reverse=True)


def loans_for_borrower(loans: Iterable[Loan], borrower_name: str) -> List[Loan]:
    """Loans whose borrower name matches, ignoring case and surrounding spaces"""
    wanted = borrower_name.strip().lower()
    return filter_loans(l for l in loans if l.borrower_name.strip().lower() == wanted)


class StepState(Enum):
    COMPLETED = "completed"
    CURRENT = "current"
    PENDING = "pending"
    REJECTED = "rejected"


@dataclass(frozen=True)
class TimelineStep:
    """One stage in a loan's progress view"""
    status: LoanStatus
    state: StepState
    reached_on: Optional[date] = None

    def to_dict(self) -> dict:
        return {
            'status': self.status.name,
            'label': self.status.value,
            'state': self.state.value,
            'date': self.reached_on.isoformat() if self.reached_on else None,
        }


_HAPPY_PATH = (LoanStatus.PENDING, LoanStatus.APPROVED,
               LoanStatus.PAYMENT_VERIFYING, LoanStatus.PAID)


def loan_timeline(loan: Loan) -> List[TimelineStep]:
    """
    Stage-by-stage progress of a loan.

    A rejected loan shows submission followed by the rejection. Otherwise
    the four happy-path stages are listed; those reached are COMPLETED,
    the next one is CURRENT, and the rest PENDING. A paid loan has every
    stage completed.
    """
    if loan.status == LoanStatus.REJECTED:
        return [
            TimelineStep(LoanStatus.PENDING, StepState.COMPLETED, loan.submission_date),
            TimelineStep(LoanStatus.REJECTED, StepState.REJECTED, loan.rejection_date),
        ]

    reached = _HAPPY_PATH.index(loan.status)
    steps = []
    for index, status in enumerate(_HAPPY_PATH):
        if status == LoanStatus.PENDING:
            step_date = loan.submission_date
        else:
            step_date = getattr(loan, STATUS_DATE_FIELDS[status])

        if index <= reached:
            state = StepState.COMPLETED
        elif index == reached + 1:
            state = StepState.CURRENT
        else:
            state = StepState.PENDING
        steps.append(TimelineStep(status, state, step_date if index <= reached else None))
    return steps
